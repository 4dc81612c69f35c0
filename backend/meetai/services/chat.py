"""Stream Chat access for the post-meeting assistant."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from stream_chat import StreamChat

from meetai.core.errors import UpstreamError
from meetai.core.settings import get_settings

CHANNEL_TYPE = "messaging"


@dataclass(frozen=True)
class ChannelMessage:
    text: str
    user_id: Optional[str]


class ChatGateway(ABC):
    @abstractmethod
    def recent_messages(self, channel_id: str, limit: int = 25) -> list[ChannelMessage]:
        """Most recent messages, oldest first."""
        raise NotImplementedError

    @abstractmethod
    def upsert_user(self, user_id: str, name: str, image: Optional[str] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def send_message(self, channel_id: str, text: str, user_id: str) -> None:
        raise NotImplementedError


class StreamChatGateway(ChatGateway):
    def __init__(self, api_key: str, api_secret: str) -> None:
        self._client = StreamChat(api_key=api_key, api_secret=api_secret)

    def recent_messages(self, channel_id: str, limit: int = 25) -> list[ChannelMessage]:
        channel = self._client.channel(CHANNEL_TYPE, channel_id)
        state = channel.query(messages={"limit": limit})
        out: list[ChannelMessage] = []
        for msg in state.get("messages", []):
            user = msg.get("user") or {}
            out.append(ChannelMessage(text=msg.get("text") or "", user_id=user.get("id")))
        return out

    def upsert_user(self, user_id: str, name: str, image: Optional[str] = None) -> None:
        user = {"id": user_id, "name": name}
        if image:
            user["image"] = image
        self._client.upsert_user(user)

    def send_message(self, channel_id: str, text: str, user_id: str) -> None:
        channel = self._client.channel(CHANNEL_TYPE, channel_id)
        channel.send_message({"text": text}, user_id)


@lru_cache(maxsize=1)
def get_chat_gateway() -> ChatGateway:
    s = get_settings()
    if not (s.STREAM_API_KEY and s.STREAM_API_SECRET):
        raise UpstreamError("Stream chat is not configured")
    return StreamChatGateway(s.STREAM_API_KEY, s.STREAM_API_SECRET)
