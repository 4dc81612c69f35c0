from __future__ import annotations

import asyncio
import io

import sounddevice as sd
import soundfile as sf

from meetai.core.errors import RecoverableSpeechError
from meetai.voice.base import AudioPlayer


class SoundDevicePlayer(AudioPlayer):
    """Plays one self-contained WAV buffer at a time on the default output device."""

    async def play(self, audio: bytes) -> None:
        try:
            data, samplerate = sf.read(io.BytesIO(audio), dtype="float32")
            sd.play(data, samplerate)
        except (sf.LibsndfileError, sd.PortAudioError, RuntimeError) as exc:
            raise RecoverableSpeechError(f"playback failed: {exc}") from exc
        # sd.stop() from another coroutine makes wait() return early
        await asyncio.to_thread(sd.wait)

    def stop(self) -> None:
        sd.stop()
