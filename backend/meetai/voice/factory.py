"""Builds a VoiceTurnController from settings, picking whatever speech engines this host can run."""

from __future__ import annotations

import importlib.util
from typing import Optional

from meetai.core.settings import Settings, get_settings
from meetai.logging_utils import get_logger
from meetai.voice.base import SpeechBackend, SpeechRecognizerBackend
from meetai.voice.controller import VoiceTurnController
from meetai.voice.state import VoiceAgentConfig

log = get_logger(__name__)

AZURE_SPEECH_MODULE = "azure.cognitiveservices.speech"


def module_available(name: str) -> bool:
    try:
        return importlib.util.find_spec(name) is not None
    except ModuleNotFoundError:
        # parent package missing
        return False


def azure_speech_ready(config: VoiceAgentConfig) -> bool:
    return bool(config.speech_key and config.speech_region) and module_available(AZURE_SPEECH_MODULE)


def select_speech_backends(
    config: VoiceAgentConfig,
) -> tuple[Optional[SpeechBackend], Optional[SpeechBackend]]:
    """Return (cloud, local). Either may be None when the host cannot run it."""
    cloud: Optional[SpeechBackend] = None
    local: Optional[SpeechBackend] = None

    if azure_speech_ready(config):
        from meetai.voice.azure_speech import AzureSpeechBackend, speech_config

        cloud = AzureSpeechBackend(
            speech_config(config.speech_key, config.speech_region, config.language),
            voice_name=config.voice_name,
        )
    else:
        log.info("cloud speech disabled", extra={"reason": "no credentials or sdk"})

    if module_available("pyttsx3"):
        from meetai.voice.local_speech import LocalSpeechBackend

        try:
            local = LocalSpeechBackend()
        except RuntimeError:
            # pyttsx3 raises when the platform driver (eSpeak, SAPI5) is missing
            log.warning("local speech engine unavailable", exc_info=True)

    return cloud, local


def recognizer_factory(config: VoiceAgentConfig):
    if not azure_speech_ready(config):
        return None

    def build() -> SpeechRecognizerBackend:
        from meetai.voice.azure_speech import AzureSpeechRecognizer, speech_config

        return AzureSpeechRecognizer(
            speech_config(config.speech_key, config.speech_region, config.language)
        )

    return build


def config_from_settings(instructions: str, settings: Optional[Settings] = None) -> VoiceAgentConfig:
    settings = settings or get_settings()
    return VoiceAgentConfig(
        agent_instructions=instructions,
        speech_key=settings.AZURE_SPEECH_KEY,
        speech_region=settings.AZURE_SPEECH_REGION,
        language=settings.SPEECH_LANGUAGE,
        voice_name=settings.SPEECH_VOICE_NAME,
    )


def build_controller(instructions: str, settings: Optional[Settings] = None) -> VoiceTurnController:
    from meetai.voice.completion import VoiceAgentHttpClient
    from meetai.voice.playback import SoundDevicePlayer

    settings = settings or get_settings()
    config = config_from_settings(instructions, settings)
    cloud, local = select_speech_backends(config)

    return VoiceTurnController(
        config,
        completion=VoiceAgentHttpClient(settings.VOICE_AGENT_URL),
        player=SoundDevicePlayer(),
        cloud=cloud,
        local=local,
        recognizer_factory=recognizer_factory(config),
    )
