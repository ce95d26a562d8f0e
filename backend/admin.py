import logging
import os
import secrets
from typing import Optional, Union

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from email_service import send_newsletter, smtp_configured
from models import Interview, NewsletterSubscriber, PlatformFeedback, utcnow
from retell_client import RetellError, end_call

logger = logging.getLogger(__name__)


async def require_admin(authorization: Optional[str] = Header(None)) -> None:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "Unauthorized: No token provided")
    token = authorization[len("Bearer "):].strip()
    expected = os.getenv("ADMIN_API_TOKEN")
    if not expected or not secrets.compare_digest(token, expected):
        logger.warning("[ADMIN] Rejected admin request with invalid token")
        raise HTTPException(403, "Forbidden: Admin access only")


router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])


# ── Dashboard ───────────────────────────────────────────

@router.get("/stats")
async def stats(db: AsyncSession = Depends(get_db)):
    live = await db.scalar(select(func.count()).select_from(Interview).where(Interview.status == "started"))
    total = await db.scalar(select(func.count()).select_from(Interview))
    users = await db.scalar(
        select(func.count(func.distinct(Interview.user_id))).where(Interview.user_id.is_not(None))
    )
    return {"liveInterviews": live or 0, "totalInterviews": total or 0, "totalUsers": users or 0}


@router.get("/users")
async def list_users(db: AsyncSession = Depends(get_db)):
    # Users are only known through the interviews they started.
    result = await db.execute(
        select(
            Interview.user_id,
            func.count(Interview.id),
            func.min(Interview.created_at),
            func.max(Interview.created_at),
        )
        .where(Interview.user_id.is_not(None))
        .group_by(Interview.user_id)
        .order_by(func.max(Interview.created_at).desc(), Interview.user_id)
    )
    users = [
        {
            "userId": user_id,
            "interviewCount": count,
            "firstInterviewAt": first.isoformat() if first else None,
            "lastInterviewAt": last.isoformat() if last else None,
        }
        for user_id, count, first, last in result.all()
    ]
    return {"users": users}


@router.get("/interviews")
async def list_interviews(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Interview).order_by(Interview.created_at.desc(), Interview.id.desc()))
    return {"interviews": [i.to_dict() for i in result.scalars().all()]}


@router.delete("/interviews/{interview_id}")
async def terminate_interview(interview_id: int, db: AsyncSession = Depends(get_db)):
    interview = await db.get(Interview, interview_id)
    if not interview:
        raise HTTPException(404, "Interview not found")

    # Phase 1: ask the provider to hang up a live call. Phase 2 runs regardless.
    hangup = "skipped"
    hangup_error = None
    if interview.status == "started" and interview.call_id:
        try:
            await end_call(interview.call_id)
            hangup = "ended"
        except RetellError as e:
            hangup = "failed"
            hangup_error = str(e)
            logger.warning("[ADMIN] Hangup failed for call %s: %s", interview.call_id, e)

    interview.status = "terminated"
    interview.terminated_at = utcnow()
    interview.cancelled_by = "admin"
    await db.commit()

    response = {
        "success": True,
        "message": "Interview terminated successfully",
        "interviewId": interview.id,
        "hangup": hangup,
    }
    if hangup_error:
        response["hangupError"] = hangup_error
    return response


@router.get("/subscribers")
async def list_subscribers(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(NewsletterSubscriber).order_by(NewsletterSubscriber.subscribed_at.desc(), NewsletterSubscriber.id.desc())
    )
    return {"subscribers": [s.to_dict() for s in result.scalars().all()]}


@router.get("/feedback")
async def list_platform_feedback(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(PlatformFeedback).order_by(PlatformFeedback.created_at.desc(), PlatformFeedback.id.desc())
    )
    return {"feedback": [f.to_dict() for f in result.scalars().all()]}


# ── Newsletter ──────────────────────────────────────────

class NewsletterRequest(BaseModel):
    subject: str = ""
    message: str = ""
    recipients: Union[str, list[str]] = "all"


@router.post("/newsletter")
async def newsletter(body: NewsletterRequest, db: AsyncSession = Depends(get_db)):
    if not body.subject.strip() or not body.message.strip():
        raise HTTPException(400, "Subject and message are required")

    if body.recipients == "all":
        result = await db.execute(select(NewsletterSubscriber.email))
        emails = [e for e in result.scalars().all() if e]
    elif isinstance(body.recipients, list):
        emails = [e.strip() for e in body.recipients if e and e.strip()]
    else:
        raise HTTPException(400, "recipients must be 'all' or a list of emails")

    if not emails:
        raise HTTPException(400, "No recipients")

    if not smtp_configured():
        logger.info("[ADMIN] SMTP not configured, simulating newsletter to %d recipients", len(emails))
        return {
            "success": True,
            "message": "Simulated sending (configure SMTP env vars for real email)",
            "count": len(emails),
        }

    try:
        await run_in_threadpool(send_newsletter, emails, body.subject, body.message)
    except Exception as e:
        raise HTTPException(500, f"Failed to send newsletter: {e}") from e
    return {"success": True, "message": f"Email sent to {len(emails)} users", "count": len(emails)}
