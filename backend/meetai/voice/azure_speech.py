"""Azure Speech recognizer and cloud synthesizer."""

from __future__ import annotations

import asyncio
from typing import Optional

import azure.cognitiveservices.speech as speechsdk

from meetai.core.errors import RecoverableSpeechError
from meetai.logging_utils import get_logger
from meetai.voice.base import RecognizerCallbacks, SpeechBackend, SpeechRecognizerBackend

log = get_logger(__name__)


def speech_config(key: str, region: str, language: str = "en-US") -> speechsdk.SpeechConfig:
    config = speechsdk.SpeechConfig(subscription=key, region=region)
    config.speech_recognition_language = language
    config.enable_dictation()
    # WAV with RIFF header so playback can read it without extra metadata
    config.set_speech_synthesis_output_format(
        speechsdk.SpeechSynthesisOutputFormat.Riff16Khz16BitMonoPcm
    )
    return config


class AzureSpeechRecognizer(SpeechRecognizerBackend):
    def __init__(self, config: speechsdk.SpeechConfig) -> None:
        self._audio_config = speechsdk.audio.AudioConfig(use_default_microphone=True)
        self._recognizer = speechsdk.SpeechRecognizer(
            speech_config=config, audio_config=self._audio_config
        )
        self._connected = False

    def _wire(self, callbacks: RecognizerCallbacks, loop: asyncio.AbstractEventLoop) -> None:
        # SDK events fire on SDK threads; hop onto the controller's loop
        def recognizing(evt) -> None:
            loop.call_soon_threadsafe(callbacks.on_recognizing, evt.result.text)

        def recognized(evt) -> None:
            if evt.result.reason == speechsdk.ResultReason.RecognizedSpeech and evt.result.text:
                loop.call_soon_threadsafe(callbacks.on_recognized, evt.result.text)

        def canceled(evt) -> None:
            details = evt.cancellation_details
            reason = details.error_details or str(details.reason)
            loop.call_soon_threadsafe(callbacks.on_canceled, reason)

        def session_stopped(evt) -> None:
            loop.call_soon_threadsafe(callbacks.on_session_stopped)

        self._recognizer.recognizing.connect(recognizing)
        self._recognizer.recognized.connect(recognized)
        self._recognizer.canceled.connect(canceled)
        self._recognizer.session_stopped.connect(session_stopped)
        self._connected = True

    async def start(self, callbacks: RecognizerCallbacks) -> None:
        if not self._connected:
            self._wire(callbacks, asyncio.get_running_loop())
        try:
            await asyncio.to_thread(lambda: self._recognizer.start_continuous_recognition_async().get())
        except Exception as exc:
            raise RecoverableSpeechError(f"recognition start failed: {exc}") from exc

    async def stop(self) -> None:
        try:
            await asyncio.to_thread(lambda: self._recognizer.stop_continuous_recognition_async().get())
        except Exception as exc:
            raise RecoverableSpeechError(f"recognition stop failed: {exc}") from exc

    def close(self) -> None:
        for signal in (
            self._recognizer.recognizing,
            self._recognizer.recognized,
            self._recognizer.canceled,
            self._recognizer.session_stopped,
        ):
            signal.disconnect_all()
        self._connected = False


class AzureSpeechBackend(SpeechBackend):
    name = "azure"

    def __init__(self, config: speechsdk.SpeechConfig, voice_name: Optional[str] = None) -> None:
        if voice_name:
            config.speech_synthesis_voice_name = voice_name
        self._config = config
        self._synthesizer: Optional[speechsdk.SpeechSynthesizer] = self._new_synthesizer()

    def _new_synthesizer(self) -> speechsdk.SpeechSynthesizer:
        # audio_config=None: keep the bytes, playback is ours
        return speechsdk.SpeechSynthesizer(speech_config=self._config, audio_config=None)

    @property
    def available(self) -> bool:
        return self._synthesizer is not None

    async def synthesize(self, text: str) -> bytes:
        synthesizer = self._synthesizer
        if synthesizer is None:
            raise RecoverableSpeechError("synthesizer is closed")
        try:
            result = await asyncio.to_thread(lambda: synthesizer.speak_text_async(text).get())
        except Exception as exc:
            raise RecoverableSpeechError(str(exc)) from exc

        if result.reason == speechsdk.ResultReason.SynthesizingAudioCompleted:
            return bytes(result.audio_data)

        details = result.cancellation_details
        reason = (details.error_details if details else None) or str(result.reason)
        raise RecoverableSpeechError(reason)

    def cancel(self) -> None:
        if self._synthesizer is None:
            return
        try:
            self._synthesizer.stop_speaking_async()
        except Exception:
            log.warning("azure stop_speaking failed", exc_info=True)

    def reset(self) -> None:
        self._synthesizer = None
        try:
            self._synthesizer = self._new_synthesizer()
        except Exception:
            # stays unavailable; turns fall back to local speech
            log.warning("azure synthesizer reset failed", exc_info=True)

    def close(self) -> None:
        self._synthesizer = None
