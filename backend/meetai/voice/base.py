from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Sequence


@dataclass
class RecognizerCallbacks:
    """Called on the controller's event loop, never on an SDK thread."""

    on_recognizing: Callable[[str], None]
    on_recognized: Callable[[str], None]
    on_canceled: Callable[[str], None]
    on_session_stopped: Callable[[], None]


class SpeechRecognizerBackend(ABC):
    @abstractmethod
    async def start(self, callbacks: RecognizerCallbacks) -> None:
        """Begin continuous recognition."""
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class SpeechBackend(ABC):
    """Text to WAV bytes. Failures raise RecoverableSpeechError."""

    name: str = "speech"

    @property
    def available(self) -> bool:
        return True

    @abstractmethod
    async def synthesize(self, text: str) -> bytes:
        raise NotImplementedError

    def cancel(self) -> None:
        """Abort in-flight synthesis."""

    def reset(self) -> None:
        """Tear down and recreate the engine handle."""

    def close(self) -> None:
        pass


class AudioPlayer(ABC):
    @abstractmethod
    async def play(self, audio: bytes) -> None:
        """Return when playback ends or is stopped."""
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """Stop playback and rewind."""
        raise NotImplementedError


class ChatCompletionClient(ABC):
    @abstractmethod
    async def complete(
        self,
        messages: Sequence[dict[str, str]],
        *,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        raise NotImplementedError

    async def aclose(self) -> None:
        pass
