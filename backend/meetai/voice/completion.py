from __future__ import annotations

from typing import Optional, Sequence

import httpx

from meetai.voice.base import ChatCompletionClient


class CompletionError(RuntimeError):
    pass


class VoiceAgentHttpClient(ChatCompletionClient):
    """Calls this service's /api/voice-agent proxy so LLM keys stay server side."""

    def __init__(self, url: str, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None) -> None:
        self._url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def complete(
        self,
        messages: Sequence[dict[str, str]],
        *,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        try:
            resp = await self._client.post(
                self._url,
                json={"messages": list(messages), "max_tokens": max_tokens, "temperature": temperature},
            )
        except httpx.HTTPError as exc:
            raise CompletionError(f"voice agent unreachable: {exc}") from exc

        if resp.status_code != 200:
            raise CompletionError(f"voice agent error: {resp.status_code}")

        data = resp.json()
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise CompletionError("voice agent response missing choices") from exc

    async def aclose(self) -> None:
        await self._client.aclose()
