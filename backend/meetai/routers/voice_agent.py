from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from meetai.core.errors import ValidationError
from meetai.deps import get_llm
from meetai.schemas.voice import (
    ChatMessage,
    CompletionChoice,
    VoiceCompletionRequest,
    VoiceCompletionResponse,
)
from meetai.services.llm import LLMService

router = APIRouter(prefix="/api", tags=["voice-agent"])


@router.post("/voice-agent", response_model=VoiceCompletionResponse)
async def voice_agent_completion(
    req: VoiceCompletionRequest,
    llm: Callable[[], LLMService] = Depends(get_llm),
) -> VoiceCompletionResponse:
    """Chat-completion proxy for the voice client; keeps LLM keys server side."""
    if not any(m.content.strip() for m in req.messages if m.role != "system"):
        raise ValidationError("messages must include user or assistant content")

    content = await run_in_threadpool(
        llm().complete,
        [m.model_dump() for m in req.messages],
        max_tokens=req.max_tokens,
        temperature=req.temperature,
    )
    return VoiceCompletionResponse(
        choices=[CompletionChoice(message=ChatMessage(role="assistant", content=content))]
    )
