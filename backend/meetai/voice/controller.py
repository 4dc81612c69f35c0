"""
Voice turn controller.

Drives one spoken conversation with an agent:

    recognizer (final result) -> LLM completion -> synthesis -> playback

Interruption ("barge-in") is cooperative: a final result that arrives while
the agent is speaking sets the cancellation flag, stops playback and tears
down the cloud synthesizer, and only then lets the next LLM request go out.
A synthesized clip whose utterance was cancelled in flight is discarded.

All state changes happen on the controller's event loop. Recognizer events
from SDK threads are marshalled onto the loop by the recognizer backend.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections import deque
from typing import Awaitable, Callable, Optional

from meetai.core.errors import RecoverableSpeechError
from meetai.logging_utils import get_logger, log_kv
from meetai.services.markdown import clean_markdown
from meetai.voice.base import (
    AudioPlayer,
    ChatCompletionClient,
    RecognizerCallbacks,
    SpeechBackend,
    SpeechRecognizerBackend,
)
from meetai.voice.state import ConversationTurn, VoiceAgentConfig, VoiceSessionState

log = get_logger(__name__)

RecognizerFactory = Callable[[], SpeechRecognizerBackend]
Sleep = Callable[[float], Awaitable[None]]


class VoiceTurnController:
    def __init__(
        self,
        config: VoiceAgentConfig,
        *,
        completion: ChatCompletionClient,
        player: AudioPlayer,
        cloud: Optional[SpeechBackend] = None,
        local: Optional[SpeechBackend] = None,
        recognizer_factory: Optional[RecognizerFactory] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._completion = completion
        self._player = player
        self._cloud = cloud
        self._local = local
        self._recognizer_factory = recognizer_factory
        self._recognizer: Optional[SpeechRecognizerBackend] = None
        self._sleep = sleep

        self._state = VoiceSessionState()
        self._history: deque[ConversationTurn] = deque(maxlen=config.history_window)

        self._cancelled = False
        self._active_utterance: Optional[object] = None
        self._tasks: set[asyncio.Task] = set()

        self._callbacks = RecognizerCallbacks(
            on_recognizing=self.handle_recognizing,
            on_recognized=self.on_final_result,
            on_canceled=self.handle_canceled,
            on_session_stopped=self.handle_session_stopped,
        )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> VoiceSessionState:
        """Snapshot; mutating it does not affect the controller."""
        return dataclasses.replace(self._state)

    @property
    def history(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._history)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    # ------------------------------------------------------------------
    # Listening
    # ------------------------------------------------------------------

    async def start_listening(self) -> None:
        if self._state.listening:
            return

        if self._recognizer is None:
            if self._recognizer_factory is None:
                self._state.error = "Speech recognition is not configured"
                return
            try:
                self._recognizer = self._recognizer_factory()
            except Exception as exc:
                log.warning("speech recognizer init failed", exc_info=True)
                self._state.error = f"Failed to initialize speech recognizer: {exc}"
                return

        self._cancelled = False
        await self._sleep(self._config.listen_settle)

        self._state.listening = True
        self._state.error = None
        try:
            await self._recognizer.start(self._callbacks)
        except RecoverableSpeechError as exc:
            self._state.listening = False
            self._state.error = f"Failed to start listening: {exc}"
            return

        log.info("listening started")

    async def stop_listening(self) -> None:
        if not self._state.listening:
            return
        self._state.listening = False
        if self._recognizer is None:
            return
        try:
            await self._recognizer.stop()
        except RecoverableSpeechError:
            log.warning("stop recognition failed", exc_info=True)

    # ------------------------------------------------------------------
    # Recognizer events
    # ------------------------------------------------------------------

    def handle_recognizing(self, text: str) -> None:
        self._state.transcript = text

    def on_final_result(self, text: str) -> None:
        """Recognizer callback: schedule the turn without blocking the event source."""
        task = asyncio.get_running_loop().create_task(self.handle_recognized(text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle_recognized(self, text: str) -> None:
        self._state.transcript = text

        if self._state.speaking or self._active_utterance is not None:
            log_kv(log, logging.INFO, "barge-in", transcript_len=len(text))
            try:
                self._cancel_current_speech()
                await self._sleep(self._config.interrupt_settle)
            finally:
                self._cancelled = False

        await self.process_user_input(text)

    def handle_canceled(self, reason: str) -> None:
        self._state.error = f"Recognition canceled: {reason}"
        log.warning("recognition canceled", extra={"reason": reason})

    def handle_session_stopped(self) -> None:
        self._state.listening = False

    # ------------------------------------------------------------------
    # Turn processing
    # ------------------------------------------------------------------

    def _messages(self) -> list[dict[str, str]]:
        system = {"role": "system", "content": self._config.agent_instructions}
        return [system] + [turn.as_message() for turn in self._history]

    async def process_user_input(self, text: str) -> None:
        text = text.strip()
        if not text or self._cancelled:
            return

        self._state.processing = True
        self._history.append(ConversationTurn("user", text))

        try:
            reply = await self._completion.complete(
                self._messages(),
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
            )
        except Exception as exc:
            log.warning("voice completion failed", exc_info=True)
            self._state.error = f"Processing error: {exc}"
            return
        finally:
            self._state.processing = False

        self._history.append(ConversationTurn("assistant", reply))
        self._state.last_response = reply

        if not self._cancelled:
            await self.speak_response(reply)

    # ------------------------------------------------------------------
    # Speech output
    # ------------------------------------------------------------------

    async def speak_response(self, text: str) -> None:
        spoken = clean_markdown(text)
        if not spoken or self._cancelled:
            return

        if self._cloud is None or not self._cloud.available:
            if self._local is None:
                self._state.error = "No speech backend available"
                return
            await self._speak(self._local, spoken)
            return

        await self._speak(
            self._cloud,
            spoken,
            settle=self._config.synthesis_settle,
            fallback=self._local,
        )

    async def _speak(
        self,
        backend: SpeechBackend,
        text: str,
        *,
        settle: float = 0.0,
        fallback: Optional[SpeechBackend] = None,
    ) -> None:
        token = object()
        self._active_utterance = token
        try:
            if settle:
                await self._sleep(settle)
            if self._cancelled or self._active_utterance is not token:
                return

            self._state.speaking = True
            try:
                audio = await backend.synthesize(text)
                if self._cancelled or self._active_utterance is not token:
                    log.info("discarding stale audio", extra={"backend": backend.name})
                    return
                await self._player.play(audio)
            except RecoverableSpeechError as exc:
                self._state.error = f"Speech error: {exc}"
                log.warning("speech failed", extra={"backend": backend.name, "reason": str(exc)})
                if fallback is None or self._cancelled or self._active_utterance is not token:
                    return
                await self._speak(fallback, text)
        finally:
            if self._active_utterance is token:
                self._active_utterance = None
                self._state.speaking = False

    def _cancel_current_speech(self) -> None:
        self._cancelled = True
        self._active_utterance = None
        steps: list[tuple[str, Callable[[], None]]] = [("player stop", self._player.stop)]
        for backend in (self._cloud, self._local):
            if backend is not None:
                steps.append((f"{backend.name} cancel", backend.cancel))
        if self._cloud is not None:
            steps.append((f"{self._cloud.name} reset", self._cloud.reset))
        # every step runs even when an earlier one raises
        for label, step in steps:
            try:
                step()
            except Exception:
                log.warning("speech cancel step failed", extra={"step": label}, exc_info=True)
        self._state.speaking = False

    def stop_speaking(self) -> None:
        try:
            self._cancel_current_speech()
        finally:
            self._state.speaking = False
            self._cancelled = False

    def clear_history(self) -> None:
        self._history.clear()
        self._state.transcript = ""
        self._state.last_response = ""

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        self._cancel_current_speech()
        await self.stop_listening()

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self._recognizer is not None:
            self._recognizer.close()
            self._recognizer = None
        for backend in (self._cloud, self._local):
            if backend is not None:
                backend.close()
        await self._completion.aclose()
