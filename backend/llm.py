import asyncio
import logging
import os

import httpx

logger = logging.getLogger(__name__)


class LLMError(Exception):
    pass


def llm_provider() -> str:
    return os.getenv("LLM_PROVIDER", "gemini").strip().lower()


def llm_configured() -> bool:
    if llm_provider() == "openrouter":
        return bool(os.getenv("OPENROUTER_API_KEY"))
    return bool(os.getenv("GEMINI_API_KEY"))


def _timeout() -> float:
    try:
        return float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
    except ValueError:
        return 60.0


def _split_system(messages: list[dict]) -> tuple[str, list[dict]]:
    system_parts = [m["content"] for m in messages if m.get("role") == "system"]
    rest = [m for m in messages if m.get("role") != "system"]
    return "\n\n".join(system_parts), rest


async def _gemini_completion(messages: list[dict], temperature: float, max_tokens: int) -> str:
    api_key = os.getenv("GEMINI_API_KEY")
    if not api_key:
        raise LLMError("GEMINI_API_KEY not configured")
    model = os.getenv("FEEDBACK_MODEL", "gemini-2.5-flash-lite")

    from google import genai

    system_instruction, turns = _split_system(messages)
    contents = [
        {
            "role": "model" if m.get("role") == "assistant" else "user",
            "parts": [{"text": str(m.get("content", ""))}],
        }
        for m in turns
    ]
    config = {"temperature": temperature, "max_output_tokens": max_tokens}
    if system_instruction:
        config["system_instruction"] = system_instruction

    client = genai.Client(api_key=api_key)
    response = await asyncio.wait_for(
        client.aio.models.generate_content(model=model, contents=contents, config=config),
        timeout=_timeout(),
    )
    return (response.text or "").strip()


async def _openrouter_completion(messages: list[dict], temperature: float, max_tokens: int) -> str:
    api_key = os.getenv("OPENROUTER_API_KEY")
    if not api_key:
        raise LLMError("OPENROUTER_API_KEY not configured")
    base_url = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/")
    model = os.getenv("OPENROUTER_MODEL", "meta-llama/llama-3.3-70b-instruct:free")

    async with httpx.AsyncClient(timeout=_timeout()) as client:
        response = await client.post(
            f"{base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )
        response.raise_for_status()
        data = response.json()

    choices = data.get("choices") or []
    if not choices:
        return ""
    return ((choices[0].get("message") or {}).get("content") or "").strip()


async def chat_completion(messages: list[dict], *, temperature: float = 0.4, max_tokens: int = 2048) -> str:
    """Run one chat completion against the configured provider.

    Makes a single attempt bounded by LLM_TIMEOUT_SECONDS. Any transport,
    provider or timeout failure is raised as LLMError.
    """
    provider = llm_provider()
    try:
        if provider == "openrouter":
            return await _openrouter_completion(messages, temperature, max_tokens)
        return await _gemini_completion(messages, temperature, max_tokens)
    except LLMError:
        raise
    except asyncio.TimeoutError as e:
        raise LLMError(f"{provider} request timed out") from e
    except httpx.HTTPStatusError as e:
        raise LLMError(f"{provider} returned HTTP {e.response.status_code}") from e
    except Exception as e:
        logger.warning("[LLM] %s request failed: %s", provider, e)
        raise LLMError(f"{provider} request failed: {e}") from e
