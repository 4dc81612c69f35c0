"""Client-side voice agent: listen, ask the LLM, speak back, allow barge-in."""

from meetai.voice.controller import VoiceTurnController
from meetai.voice.state import ConversationTurn, VoiceAgentConfig, VoiceSessionState

__all__ = ["VoiceTurnController", "VoiceAgentConfig", "VoiceSessionState", "ConversationTurn"]
