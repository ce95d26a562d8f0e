import logging

from pydantic import BaseModel

from llm import LLMError, chat_completion

logger = logging.getLogger(__name__)

MIN_TRANSCRIPT_CHARS = 5
MAX_TRANSCRIPT_CHARS = 15000
TRUNCATION_MARKER = "\n\n[Transcript truncated]"

SHORT_TRANSCRIPT_FEEDBACK = (
    "We couldn't evaluate this interview because almost nothing was captured in the "
    "transcript. This usually means the microphone was muted, blocked by the browser, "
    "or the call ended before you started answering. Please check your microphone "
    "permissions and try another mock interview."
)

GENERATION_FAILED_FEEDBACK = (
    "Your interview was recorded, but we were unable to generate feedback right now. "
    "Our evaluator service did not respond. Your transcript has been saved; please "
    "check back later or start a new mock interview."
)

SYSTEM_PROMPT = "You are a professional interview evaluator."


class FeedbackGenerationError(Exception):
    pass


class FeedbackDecision(BaseModel):
    text: str
    source: str  # llm, fallback_short, fallback_error


def prepare_transcript(transcript: str) -> str:
    if len(transcript) >= MAX_TRANSCRIPT_CHARS:
        return transcript[:MAX_TRANSCRIPT_CHARS] + TRUNCATION_MARKER
    return transcript


def build_feedback_prompt(transcript: str, job_role: str) -> str:
    return f"""You are an experienced interviewer and career coach specializing in hiring for the role of {job_role}.

Analyze the following completed voice-based mock interview transcript and write feedback for the candidate.

Structure the feedback with these sections:
1. Overall score (out of 10)
2. Strengths (role-specific)
3. Areas to improve (role-specific)
4. Communication skills
5. Problem-solving ability
6. Practical suggestions
7. Summary

Be specific, quote the candidate where useful, and keep the tone constructive.

Interview Transcript:
{transcript}
"""


async def generate_feedback(transcript: str, job_role: str) -> str:
    prompt = build_feedback_prompt(prepare_transcript(transcript), job_role)
    try:
        text = await chat_completion(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )
    except LLMError as e:
        raise FeedbackGenerationError(str(e)) from e
    if not text.strip():
        raise FeedbackGenerationError("LLM returned empty feedback")
    return text


async def decide_feedback(transcript: str, job_role: str) -> FeedbackDecision:
    """Pick the feedback text for a finished call. Never raises."""
    if len(transcript.strip()) < MIN_TRANSCRIPT_CHARS:
        logger.info("[FEEDBACK] Transcript too short (%d chars), using fallback", len(transcript.strip()))
        return FeedbackDecision(text=SHORT_TRANSCRIPT_FEEDBACK, source="fallback_short")
    try:
        text = await generate_feedback(transcript, job_role)
    except FeedbackGenerationError as e:
        logger.warning("[FEEDBACK] Generation failed for role=%s: %s", job_role, e)
        return FeedbackDecision(text=GENERATION_FAILED_FEEDBACK, source="fallback_error")
    return FeedbackDecision(text=text, source="llm")
