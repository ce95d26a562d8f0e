import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from llm import LLMError, chat_completion, llm_configured

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chatbot")

SYSTEM_PROMPT = """You are a professional mock interview and technical mentor. Your goal is to help users prepare for job interviews and master coding concepts.

SPEAKING & INTERACTION RULES:
1. Speak clearly and use short, manageable sentences.
2. Ask ONE question at a time and wait for a full response.
3. If input is unclear, say: "Take your time, please continue when you're ready."
4. Be calm, patient, and professional. Avoid long monologues.

STRICT GUIDELINES:
1. ONLY answer questions related to interviews, coding, software development, and careers.
2. DO NOT answer questions about unrelated topics (movies, sports, politics, etc.).
3. Transition clearly: "Next question", "Moving on".

YOUR ROLE:
1. Explain technical concepts with code examples.
2. Teach the STAR method for behavioral questions.
3. Provide constructive feedback only after the user finishes their thought."""


class ChatTurn(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    message: Optional[str] = None
    conversationHistory: list[ChatTurn] = Field(default_factory=list)


@router.post("/message")
async def chatbot_message(body: ChatRequest):
    if not body.message or not body.message.strip():
        raise HTTPException(400, "Message is required and must be a string")
    if not llm_configured():
        raise HTTPException(500, "LLM API key not configured")

    # Only user/assistant turns from the client; the system prompt is ours.
    history = [
        {"role": turn.role, "content": turn.content}
        for turn in body.conversationHistory
        if turn.role in ("user", "assistant")
    ]
    messages = [{"role": "system", "content": SYSTEM_PROMPT}, *history, {"role": "user", "content": body.message}]

    try:
        reply = await chat_completion(messages, temperature=0.7, max_tokens=1000)
    except LLMError as e:
        logger.error("[CHATBOT] LLM error: %s", e)
        raise HTTPException(502, "Failed to get AI response. Please try again.") from e
    if not reply:
        raise HTTPException(502, "Invalid response from AI provider. Please try again.")
    return {"response": reply, "success": True}
