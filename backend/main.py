from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import BaseModel
from typing import Optional
import datetime
import logging
import os
from dotenv import load_dotenv

load_dotenv()

from database import init_db, get_db
from models import Interview, NewsletterSubscriber, PlatformFeedback, utcnow
from reconciler import reconcile_payload
from retell_client import RetellError, create_role_agent, create_web_call, get_call
import admin
import chatbot

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="MockPrep Relay API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[os.getenv("FRONTEND_URL", "http://localhost:5173")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(admin.router)
app.include_router(chatbot.router)


@app.on_event("startup")
async def startup():
    await init_db()
    if not os.getenv("RETELL_API_KEY") or not os.getenv("RETELL_AGENT_ID"):
        logger.warning("RETELL_API_KEY or RETELL_AGENT_ID missing; /create-interview will fail")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info("%s %s", request.method, request.url.path)
    return await call_next(request)


@app.exception_handler(StarletteHTTPException)
async def not_found_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return JSONResponse(status_code=404, content={"success": False, "error": "Endpoint not found"})
    return await http_exception_handler(request, exc)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


# ── Helpers ──────────────────────────────────────────────

def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _ack(**fields) -> dict:
    return {"success": True, **fields}


# ── Health ───────────────────────────────────────────────

@app.get("/health")
async def health():
    return {
        "status": "ok",
        "message": "Mock Interview Backend Running",
        "time": datetime.datetime.now(datetime.timezone.utc).isoformat(),
    }


# ── Create Interview ────────────────────────────────────

class CreateInterviewRequest(BaseModel):
    jobRole: Optional[str] = None
    userId: Optional[str] = None


async def resolve_agent_id(job_role: str) -> str:
    default_agent = os.getenv("RETELL_AGENT_ID")
    if _env_flag("RETELL_TAILOR_AGENT", False):
        try:
            return await create_role_agent(job_role)
        except RetellError as e:
            logger.warning("[RETELL] Role agent provisioning failed, using default agent: %s", e)
    if not default_agent:
        raise RetellError("RETELL_AGENT_ID not configured")
    return default_agent


async def write_placeholder(db: AsyncSession, call_id: str, job_role: str, user_id: Optional[str]) -> None:
    db.add(Interview(
        call_id=call_id,
        job_role=job_role,
        transcript="",
        status="started",
        duration=0.0,
        user_id=user_id,
        started_at=utcnow(),
    ))
    try:
        await db.commit()
    except IntegrityError:
        # The webhook already created this call's record.
        await db.rollback()
    except Exception:
        await db.rollback()
        logger.exception("[RETELL] Could not write placeholder for call %s", call_id)


async def start_interview(db: AsyncSession, job_role: str, user_id: Optional[str]) -> dict:
    agent_id = await resolve_agent_id(job_role)
    call = await create_web_call(agent_id, job_role, user_id)
    await write_placeholder(db, call["call_id"], job_role, user_id)
    return {
        "callId": call["call_id"],
        "accessToken": call["access_token"],
        "agentId": agent_id,
    }


@app.post("/create-interview")
async def create_interview(body: CreateInterviewRequest, db: AsyncSession = Depends(get_db)):
    job_role = (body.jobRole or "").strip()
    if not job_role:
        raise HTTPException(400, "jobRole is required")

    try:
        session = await start_interview(db, job_role, body.userId)
    except RetellError as e:
        logger.error("[RETELL] Create interview failed: %s", e)
        return JSONResponse(status_code=500, content={"success": False, "error": "Failed to create interview"})

    logger.info("[RETELL] Created web call %s for role=%s", session["callId"], job_role)
    return {"success": True, **session}


# ── Interview Complete (Retell webhook) ─────────────────

@app.post("/retell/interview-complete")
async def interview_complete(request: Request, db: AsyncSession = Depends(get_db)):
    # Always 200: the provider retries anything else.
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("[WEBHOOK] Body is not valid JSON")
        return _ack(interviewId=None, error="Invalid JSON body")
    if not isinstance(payload, dict):
        return _ack(interviewId=None, error="Payload must be a JSON object")

    event = payload.get("event")
    if event == "call_started":
        logger.info("[WEBHOOK] call_started acknowledged")
        return _ack(interviewId=None, message="Event acknowledged")

    result = await reconcile_payload(db, payload)
    if result.error:
        return _ack(interviewId=None, callId=result.call_id, error=result.error)
    return _ack(
        interviewId=result.interview_id,
        callId=result.call_id,
        feedbackSource=result.feedback_source,
        message="Interview processed",
    )


# ── Manual Processing ───────────────────────────────────

class ProcessInterviewRequest(BaseModel):
    callId: Optional[str] = None
    userId: Optional[str] = None
    jobRole: Optional[str] = None


@app.post("/process-interview")
async def process_interview(body: ProcessInterviewRequest, db: AsyncSession = Depends(get_db)):
    call_id = (body.callId or "").strip()
    if not call_id:
        raise HTTPException(400, "callId is required")

    try:
        call_data = await get_call(call_id)
    except RetellError as e:
        logger.error("[RETELL] Could not fetch call %s: %s", call_id, e)
        raise HTTPException(502, "Failed to fetch call from Retell") from e

    call_data.setdefault("call_id", call_id)
    payload = {"call": call_data}
    if body.userId:
        payload["userId"] = body.userId
    if body.jobRole:
        payload["jobRole"] = body.jobRole

    result = await reconcile_payload(db, payload)
    if result.error:
        return JSONResponse(
            status_code=500,
            content={"success": False, "callId": call_id, "error": result.error},
        )
    return {
        "success": True,
        "interviewId": result.interview_id,
        "callId": result.call_id,
        "feedbackSource": result.feedback_source,
    }


# ── Latest Interview ────────────────────────────────────

@app.get("/interviews/latest")
async def latest_interview(userId: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    query = select(Interview)
    if userId:
        query = query.where(Interview.user_id == userId)
    result = await db.execute(query.order_by(Interview.created_at.desc(), Interview.id.desc()).limit(1))
    interview = result.scalars().first()
    if not interview:
        raise HTTPException(404, "No interviews found")
    data = interview.to_dict()
    return {
        "interviewId": data["id"],
        "jobRole": data["jobRole"],
        "feedback": data["feedback"],
        "duration": data["duration"],
        "status": data["status"],
        "createdAt": data["createdAt"],
    }


# ── Newsletter + Platform Feedback ──────────────────────

class SubscribeRequest(BaseModel):
    email: Optional[str] = None


@app.post("/api/newsletter/subscribe")
async def subscribe(body: SubscribeRequest, db: AsyncSession = Depends(get_db)):
    email = (body.email or "").strip().lower()
    if not email or "@" not in email:
        raise HTTPException(400, "A valid email is required")

    existing = await db.execute(select(NewsletterSubscriber).where(NewsletterSubscriber.email == email))
    if existing.scalar_one_or_none():
        return {"success": True, "message": "Already subscribed"}

    db.add(NewsletterSubscriber(email=email))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return {"success": True, "message": "Already subscribed"}
    return {"success": True, "message": "Subscribed"}


class PlatformFeedbackRequest(BaseModel):
    message: Optional[str] = None
    rating: Optional[int] = None
    userId: Optional[str] = None


@app.post("/api/platform-feedback")
async def submit_platform_feedback(body: PlatformFeedbackRequest, db: AsyncSession = Depends(get_db)):
    if not body.message or not body.message.strip():
        raise HTTPException(400, "Message is required")
    if body.rating is not None and not 1 <= body.rating <= 5:
        raise HTTPException(400, "Rating must be between 1 and 5")

    entry = PlatformFeedback(user_id=body.userId, rating=body.rating, message=body.message.strip())
    db.add(entry)
    await db.commit()
    return {"success": True, "id": entry.id}
