from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class VoiceCompletionRequest(BaseModel):
    messages: list[ChatMessage] = Field(default_factory=list)
    max_tokens: Optional[int] = Field(default=150, ge=1, le=4096)
    temperature: Optional[float] = Field(default=0.7, ge=0.0, le=2.0)


class CompletionChoice(BaseModel):
    index: int = 0
    message: ChatMessage


class VoiceCompletionResponse(BaseModel):
    choices: list[CompletionChoice]
