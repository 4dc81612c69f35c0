"""Stream Video access: webhook signatures, call lifecycle and realtime agents."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from contextlib import AsyncExitStack
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional

from getstream import Stream
from getstream.webhook import verify_webhook_signature
from starlette.concurrency import run_in_threadpool

from meetai.core.errors import UpstreamError
from meetai.core.settings import get_settings
from meetai.logging_utils import get_logger
from meetai.services.llm import classify_error

log = get_logger(__name__)

DEFAULT_CALL_TYPE = "default"


def parse_call_cid(call_cid: Optional[str]) -> Optional[tuple[str, str]]:
    """Split a composite ``"type:id"`` call identifier; None if malformed."""
    if not call_cid or ":" not in call_cid:
        return None
    call_type, _, call_id = call_cid.partition(":")
    if not call_type or not call_id:
        return None
    return call_type, call_id


def signature_matches(secret: str, body: bytes, signature: str) -> bool:
    """HMAC-SHA256 check of a raw webhook body; garbage signatures are just a mismatch."""
    try:
        return verify_webhook_signature(body, signature, secret)
    except (TypeError, ValueError):
        # non-ASCII header values cannot be compared as digests
        return False


class VideoGateway(ABC):
    @abstractmethod
    def verify_webhook(self, body: bytes, signature: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def connect_agent(
        self, call_type: str, call_id: str, agent_user_id: str, instructions: str
    ) -> None:
        """Join an AI agent to the call. Raises QuotaError / UpstreamError."""
        raise NotImplementedError

    @abstractmethod
    async def end_call(self, call_type: str, call_id: str) -> None:
        raise NotImplementedError

    async def disconnect_agent(self, call_type: str, call_id: str) -> None:
        """Drop this process's realtime connection for the call, if any."""
        return None


@dataclass
class _AgentSession:
    stack: AsyncExitStack
    task: "asyncio.Task[None]"


class StreamVideoGateway(VideoGateway):
    def __init__(self, api_key: str, api_secret: str, openai_api_key: Optional[str]) -> None:
        self._client = Stream(api_key=api_key, api_secret=api_secret)
        self._api_secret = api_secret
        self._openai_api_key = openai_api_key
        # live realtime connections in this process, keyed by call cid
        self._agents: dict[str, _AgentSession] = {}

    def verify_webhook(self, body: bytes, signature: str) -> bool:
        return signature_matches(self._api_secret, body, signature)

    async def connect_agent(
        self, call_type: str, call_id: str, agent_user_id: str, instructions: str
    ) -> None:
        cid = f"{call_type}:{call_id}"
        if not self._openai_api_key:
            raise UpstreamError("OpenAI integration failed", details="OPENAI_API_KEY is not set")

        call = self._client.video.call(call_type, call_id)
        stack = AsyncExitStack()
        try:
            connection = await stack.enter_async_context(
                call.connect_openai(self._openai_api_key, agent_user_id)
            )
            await connection.session.update(session={"instructions": instructions})
        except Exception as exc:
            await stack.aclose()
            raise classify_error(exc, "OpenAI integration") from exc

        await self.disconnect_agent(call_type, call_id)
        task = asyncio.create_task(self._drain(cid, connection, stack))
        self._agents[cid] = _AgentSession(stack=stack, task=task)
        log.info("realtime agent connected", extra={"call_cid": cid, "agent_id": agent_user_id})

    async def _drain(self, cid: str, connection: Any, stack: AsyncExitStack) -> None:
        try:
            async for event in connection:
                if getattr(event, "type", None) == "error":
                    log.warning("realtime agent error", extra={"call_cid": cid, "event": str(event)})
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("realtime agent connection dropped", extra={"call_cid": cid})
        finally:
            # disconnect_agent pops the entry before cancelling; only a stream
            # that ended on its own still finds itself registered here
            session = self._agents.get(cid)
            if session is not None and session.stack is stack:
                del self._agents[cid]
                await stack.aclose()
                log.info("realtime agent disconnected", extra={"call_cid": cid})

    async def disconnect_agent(self, call_type: str, call_id: str) -> None:
        cid = f"{call_type}:{call_id}"
        session = self._agents.pop(cid, None)
        if session is None:
            return
        session.task.cancel()
        await asyncio.gather(session.task, return_exceptions=True)
        await session.stack.aclose()
        log.info("realtime agent disconnected", extra={"call_cid": cid})

    async def end_call(self, call_type: str, call_id: str) -> None:
        call = self._client.video.call(call_type, call_id)
        try:
            await run_in_threadpool(call.end)
        except Exception as exc:
            raise UpstreamError("Ending call failed", details=str(exc)) from exc
        finally:
            await self.disconnect_agent(call_type, call_id)


@lru_cache(maxsize=1)
def get_video_gateway() -> VideoGateway:
    s = get_settings()
    if not (s.STREAM_API_KEY and s.STREAM_API_SECRET):
        raise UpstreamError("Stream video is not configured")
    return StreamVideoGateway(s.STREAM_API_KEY, s.STREAM_API_SECRET, s.OPENAI_API_KEY)
