"""Normalization of end-of-call webhook payloads.

The call provider has sent several shapes over time: the call data may be
nested under ``call`` or sent flat, and the role/user fields live in
different places depending on how the call was created. ``normalize_payload``
resolves all of them into a single ``NormalizedCall`` with a fixed
first-match-wins order per field. It never touches the database or network.
"""
import datetime
import math
import time
from typing import Any, Optional

from pydantic import BaseModel

DEFAULT_JOB_ROLE = "Software Engineer"


class NormalizedCall(BaseModel):
    call_id: str
    generated_call_id: bool = False
    transcript: str = ""
    job_role: str = DEFAULT_JOB_ROLE
    job_role_explicit: bool = False
    user_id: Optional[str] = None
    duration: float = 0.0
    started_at: datetime.datetime
    event: Optional[str] = None


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def _first(*values: Any) -> Any:
    for value in values:
        if _present(value):
            return value
    return None


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


# Epoch values above this are milliseconds (in seconds it would be year 5138).
_MILLIS_THRESHOLD = 1e11


def _epoch_seconds(value: Any) -> Optional[float]:
    number = _as_number(value)
    if number is not None and abs(number) >= _MILLIS_THRESHOLD:
        number /= 1000.0
    return number


def extract_call_data(payload: dict) -> dict:
    call = payload.get("call")
    return call if isinstance(call, dict) else payload


def _transcript(call_data: dict) -> str:
    value = _first(call_data.get("transcript"), call_data.get("transcript_text"))
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _call_id(call_data: dict, now: datetime.datetime) -> tuple[str, bool]:
    value = _first(call_data.get("call_id"), call_data.get("callId"))
    if value is not None:
        return str(value), False
    return f"call_{int(now.timestamp() * 1000)}", True


def _job_role(payload: dict, call_data: dict) -> tuple[str, bool]:
    dynamic_vars = _as_dict(call_data.get("retell_llm_dynamic_variables"))
    metadata = _as_dict(call_data.get("metadata"))
    value = _first(
        payload.get("jobRole"),
        call_data.get("jobRole"),
        dynamic_vars.get("job_role"),
        call_data.get("job_role"),
        metadata.get("jobRole"),
    )
    if value is None:
        return DEFAULT_JOB_ROLE, False
    return str(value).strip(), True


def _user_id(payload: dict, call_data: dict) -> Optional[str]:
    metadata = _as_dict(call_data.get("metadata"))
    value = _first(payload.get("userId"), call_data.get("userId"), metadata.get("userId"))
    return str(value) if value is not None else None


def _duration(call_data: dict) -> float:
    for key in ("call_duration", "duration"):
        value = _as_number(call_data.get(key))
        if value:
            return value
    start = _epoch_seconds(call_data.get("start_timestamp"))
    end = _epoch_seconds(call_data.get("end_timestamp"))
    if start is not None and end is not None:
        return max(end - start, 0.0)
    return 0.0


def _started_at(call_data: dict, now: datetime.datetime) -> datetime.datetime:
    start = _epoch_seconds(call_data.get("start_timestamp"))
    if start is None:
        return now
    try:
        return datetime.datetime.fromtimestamp(start, tz=datetime.timezone.utc)
    except (ValueError, OverflowError, OSError):
        return now


def normalize_payload(payload: dict, now: Optional[datetime.datetime] = None) -> NormalizedCall:
    if now is None:
        now = datetime.datetime.fromtimestamp(time.time(), tz=datetime.timezone.utc)
    payload = _as_dict(payload)
    call_data = extract_call_data(payload)

    call_id, generated = _call_id(call_data, now)
    job_role, explicit_role = _job_role(payload, call_data)
    event = payload.get("event")

    return NormalizedCall(
        call_id=call_id,
        generated_call_id=generated,
        transcript=_transcript(call_data),
        job_role=job_role,
        job_role_explicit=explicit_role,
        user_id=_user_id(payload, call_data),
        duration=_duration(call_data),
        started_at=_started_at(call_data, now),
        event=str(event) if event is not None else None,
    )
