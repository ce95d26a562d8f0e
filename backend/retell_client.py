import logging
import os
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class RetellError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _base_url() -> str:
    return os.getenv("RETELL_BASE_URL", "https://api.retellai.com").rstrip("/")


def _timeout() -> float:
    try:
        return float(os.getenv("RETELL_TIMEOUT_SECONDS", "30"))
    except ValueError:
        return 30.0


def _headers() -> dict:
    api_key = os.getenv("RETELL_API_KEY")
    if not api_key:
        raise RetellError("RETELL_API_KEY not configured")
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


async def _request(method: str, path: str, json: Optional[dict] = None) -> dict:
    headers = _headers()
    try:
        async with httpx.AsyncClient(base_url=_base_url(), timeout=_timeout()) as client:
            response = await client.request(method, path, headers=headers, json=json)
    except httpx.RequestError as e:
        raise RetellError(f"Failed to reach Retell: {e}") from e

    if response.status_code >= 400:
        logger.error("[RETELL] %s %s -> %s: %s", method, path, response.status_code, response.text[:500])
        raise RetellError(f"Retell returned HTTP {response.status_code}", response.status_code)
    if not response.content:
        return {}
    return response.json()


def build_interviewer_prompt(job_role: str) -> str:
    return f"""You are a friendly but rigorous interviewer running a voice mock interview for the role of {job_role}.

SPEAKING & INTERACTION RULES:
1. Speak clearly and use short, manageable sentences.
2. Ask ONE question at a time and wait for a full response.
3. If input is unclear, say: "Take your time, please continue when you're ready."
4. Be calm, patient, and professional. Avoid long monologues.

INTERVIEW PLAN:
1. Start with a short introduction and ask the candidate to introduce themselves.
2. Ask 5 to 7 questions mixing role-specific technical questions and behavioral questions for a {job_role}.
3. Ask at most one follow-up per question when an answer is vague.
4. Do not give feedback during the interview.
5. Close by thanking the candidate and telling them feedback will be ready shortly."""


async def create_role_agent(job_role: str) -> str:
    """Provision an interviewer agent whose prompt embeds ``job_role``."""
    llm = await _request(
        "POST",
        "/create-retell-llm",
        json={
            "general_prompt": build_interviewer_prompt(job_role),
            "begin_message": f"Hi! Thanks for joining this mock interview for the {job_role} role. Could you start by introducing yourself?",
        },
    )
    llm_id = llm.get("llm_id")
    if not llm_id:
        raise RetellError("Retell did not return an llm_id")

    agent = await _request(
        "POST",
        "/create-agent",
        json={
            "agent_name": f"Mock Interviewer - {job_role}"[:100],
            "response_engine": {"type": "retell-llm", "llm_id": llm_id},
            "voice_id": os.getenv("RETELL_VOICE_ID", "11labs-Adrian"),
            "responsiveness": 0.8,
            "interruption_sensitivity": 0.6,
            "enable_backchannel": True,
            "end_call_after_silence_ms": 60000,
            "max_call_duration_ms": 1800000,
        },
    )
    agent_id = agent.get("agent_id")
    if not agent_id:
        raise RetellError("Retell did not return an agent_id")
    logger.info("[RETELL] Created agent %s for role=%s", agent_id, job_role)
    return agent_id


async def create_web_call(agent_id: str, job_role: str, user_id: Optional[str] = None) -> dict:
    metadata = {"jobRole": job_role}
    if user_id:
        metadata["userId"] = user_id
    data = await _request(
        "POST",
        "/v2/create-web-call",
        json={
            "agent_id": agent_id,
            "retell_llm_dynamic_variables": {
                "job_role": job_role,
                "candidate_name": "Candidate",
            },
            "metadata": metadata,
        },
    )
    if not data.get("call_id") or not data.get("access_token"):
        raise RetellError("Retell response missing call_id or access_token")
    return data


async def get_call(call_id: str) -> dict:
    return await _request("GET", f"/v2/get-call/{call_id}")


async def end_call(call_id: str) -> None:
    await _request("DELETE", f"/v2/calls/{call_id}")
    logger.info("[RETELL] Requested hangup for call %s", call_id)
