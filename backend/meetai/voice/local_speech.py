"""On-device fallback synthesis with pyttsx3 (SAPI5 / NSSpeechSynthesizer / eSpeak)."""

from __future__ import annotations

import asyncio
import os
import tempfile
import threading

import pyttsx3

from meetai.core.errors import RecoverableSpeechError
from meetai.logging_utils import get_logger
from meetai.voice.base import SpeechBackend

log = get_logger(__name__)

DEFAULT_RATE_FACTOR = 0.9


class LocalSpeechBackend(SpeechBackend):
    name = "local"

    def __init__(self, rate_factor: float = DEFAULT_RATE_FACTOR) -> None:
        self._engine = pyttsx3.init()
        rate = self._engine.getProperty("rate")
        self._engine.setProperty("rate", int(rate * rate_factor))
        self._engine.setProperty("volume", 1.0)
        # pyttsx3 engines are not thread safe
        self._lock = threading.Lock()

    def _render(self, text: str) -> bytes:
        fd, path = tempfile.mkstemp(suffix=".wav")
        os.close(fd)
        try:
            with self._lock:
                self._engine.save_to_file(text, path)
                self._engine.runAndWait()
            with open(path, "rb") as fh:
                return fh.read()
        finally:
            os.unlink(path)

    async def synthesize(self, text: str) -> bytes:
        try:
            audio = await asyncio.to_thread(self._render, text)
        except Exception as exc:
            raise RecoverableSpeechError(f"local synthesis failed: {exc}") from exc
        if not audio:
            raise RecoverableSpeechError("local synthesis produced no audio")
        return audio

    def cancel(self) -> None:
        try:
            self._engine.stop()
        except Exception:
            log.warning("pyttsx3 stop failed", exc_info=True)
