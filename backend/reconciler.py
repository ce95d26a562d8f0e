import datetime
import logging
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feedback import GENERATION_FAILED_FEEDBACK, decide_feedback
from models import Interview, utcnow
from normalizer import NormalizedCall, normalize_payload

logger = logging.getLogger(__name__)


class ReconcileResult(BaseModel):
    interview_id: Optional[int] = None
    call_id: Optional[str] = None
    feedback_source: Optional[str] = None
    error: Optional[str] = None


def _naive_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)


async def find_interview(db: AsyncSession, call_id: str) -> Optional[Interview]:
    result = await db.execute(
        select(Interview)
        .where(Interview.call_id == call_id)
        .order_by(Interview.id.asc())
        .limit(1)
    )
    return result.scalars().first()


def merge_interview(
    interview: Interview,
    call: NormalizedCall,
    feedback_text: str,
    now: Optional[datetime.datetime] = None,
) -> None:
    now = now or utcnow()
    interview.transcript = call.transcript
    interview.feedback = feedback_text
    interview.ended_at = now
    # Termination by an admin is final.
    if interview.status != "terminated":
        interview.status = "completed"
    if not interview.user_id and call.user_id:
        interview.user_id = call.user_id
    if not interview.duration and call.duration:
        interview.duration = call.duration
    if call.job_role_explicit or not interview.job_role:
        interview.job_role = call.job_role
    if interview.started_at is None:
        interview.started_at = _naive_utc(call.started_at)


def reusable_feedback(interview: Interview, call: NormalizedCall) -> bool:
    return (
        interview.status in ("completed", "terminated")
        and bool(interview.feedback)
        and interview.feedback != GENERATION_FAILED_FEEDBACK
        and interview.transcript == call.transcript
    )


def new_interview(
    call: NormalizedCall,
    feedback_text: str,
    now: Optional[datetime.datetime] = None,
) -> Interview:
    return Interview(
        call_id=call.call_id,
        job_role=call.job_role,
        transcript=call.transcript,
        feedback=feedback_text,
        status="completed",
        duration=call.duration,
        user_id=call.user_id,
        started_at=_naive_utc(call.started_at),
        ended_at=now or utcnow(),
    )


async def upsert_interview(db: AsyncSession, call: NormalizedCall, feedback_text: str) -> Interview:
    """Find-or-create the record for ``call.call_id`` and merge into it.

    The insert runs inside a SAVEPOINT. If a concurrent reconciliation
    inserted the same call first, the unique index on call_id rejects ours;
    the savepoint is rolled back and the winner's row is merged instead.
    """
    now = utcnow()
    interview = await find_interview(db, call.call_id)
    if interview is None:
        interview = new_interview(call, feedback_text, now)
        try:
            async with db.begin_nested():
                db.add(interview)
        except IntegrityError:
            logger.info("[WEBHOOK] Concurrent insert for call_id=%s, merging instead", call.call_id)
            interview = await find_interview(db, call.call_id)
            if interview is None:
                raise
            merge_interview(interview, call, feedback_text, now)
    else:
        merge_interview(interview, call, feedback_text, now)
    await db.commit()
    return interview


async def reconcile_payload(db: AsyncSession, payload: dict) -> ReconcileResult:
    """Turn an end-of-call notification into a stored, completed interview.

    Never raises. The provider retries failed webhooks, and a retry would
    not be safe, so every failure is logged and reported in ``error``.
    """
    result = ReconcileResult()
    try:
        call = normalize_payload(payload)
        result.call_id = call.call_id
        if call.generated_call_id:
            logger.warning(
                "[WEBHOOK] No call_id in payload, generated %s; this record cannot be reconciled later",
                call.call_id,
            )
        logger.info(
            "[WEBHOOK] Reconciling call_id=%s role=%s transcript=%d chars duration=%.0fs",
            call.call_id, call.job_role, len(call.transcript), call.duration,
        )

        existing = await find_interview(db, call.call_id)
        if existing is not None and reusable_feedback(existing, call):
            # call_analyzed repeats call_ended for the same conversation.
            logger.info("[WEBHOOK] Feedback for call_id=%s already generated, reusing", call.call_id)
            feedback_text, result.feedback_source = existing.feedback, "reused"
        else:
            decision = await decide_feedback(call.transcript, call.job_role)
            feedback_text, result.feedback_source = decision.text, decision.source

        interview = await upsert_interview(db, call, feedback_text)
        result.interview_id = interview.id
        logger.info("[WEBHOOK] Stored interview id=%s for call_id=%s", interview.id, call.call_id)
    except Exception as e:
        logger.exception("[WEBHOOK] Reconciliation failed")
        await db.rollback()
        result.error = str(e) or e.__class__.__name__
    return result
