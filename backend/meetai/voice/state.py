from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

TurnRole = Literal["user", "assistant"]


@dataclass(frozen=True)
class ConversationTurn:
    role: TurnRole
    content: str

    def as_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class VoiceSessionState:
    listening: bool = False
    speaking: bool = False
    processing: bool = False
    transcript: str = ""
    last_response: str = ""
    error: Optional[str] = None


@dataclass
class VoiceAgentConfig:
    agent_instructions: str
    speech_key: Optional[str] = None
    speech_region: Optional[str] = None
    language: str = "en-US"
    voice_name: Optional[str] = None

    history_window: int = 10
    max_tokens: int = 150
    temperature: float = 0.7

    # settle delays (seconds) that let engine handles come up or wind down
    listen_settle: float = 0.5
    interrupt_settle: float = 0.2
    synthesis_settle: float = 0.1
