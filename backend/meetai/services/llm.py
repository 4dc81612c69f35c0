from __future__ import annotations

import time
from functools import lru_cache
from typing import Any, Iterable, Mapping, Optional, Union

import openai
from openai import AzureOpenAI, OpenAI

from meetai.core.errors import QuotaError, UpstreamError
from meetai.core.settings import Settings, get_settings
from meetai.logging_utils import get_logger
from meetai.metrics import LLM_LATENCY, LLM_REQUESTS

log = get_logger(__name__)

Message = Mapping[str, str]

QUOTA_MESSAGE = "LLM API quota exceeded or no credit. Please check the provider account."


def is_quota_error(exc: BaseException) -> bool:
    """Billing/quota failures are told apart from other errors by status, code or message."""
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    if status == 402:
        return True
    code = getattr(exc, "code", None)
    if code in ("insufficient_quota", "billing_hard_limit_reached"):
        return True
    return "quota" in str(exc).lower()


def classify_error(exc: BaseException, action: str) -> Union[QuotaError, UpstreamError]:
    if is_quota_error(exc):
        return QuotaError(QUOTA_MESSAGE, details=str(exc))
    return UpstreamError(f"{action} failed", details=str(exc))


class LLMService:
    """Chat completions through the openai SDK."""

    def __init__(self, client: OpenAI, model: str) -> None:
        self._client = client
        self._model = model

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMService":
        if settings.use_azure_openai:
            client: OpenAI = AzureOpenAI(
                azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
                api_key=settings.AZURE_OPENAI_API_KEY,
                api_version=settings.AZURE_OPENAI_API_VERSION,
            )
            # Azure routes by deployment name, passed where OpenAI expects the model
            model = settings.AZURE_OPENAI_DEPLOYMENT
        else:
            client = OpenAI(api_key=settings.OPENAI_API_KEY)
            model = settings.LLM_MODEL
        return cls(client, model=model)

    @property
    def model(self) -> str:
        return self._model

    def complete(
        self,
        messages: Iterable[Message],
        *,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Return the first choice's content ('' when the model sent nothing)."""
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
        }
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if temperature is not None:
            kwargs["temperature"] = temperature

        start = time.perf_counter()
        try:
            resp = self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as exc:
            err = classify_error(exc, "LLM completion")
            LLM_REQUESTS.labels(kind="completion", outcome=err.error).inc()
            log.warning(
                "llm completion failed",
                extra={"model": self._model, "error": err.error, "detail": str(exc)},
            )
            raise err from exc
        finally:
            LLM_LATENCY.labels(kind="completion").observe(time.perf_counter() - start)

        LLM_REQUESTS.labels(kind="completion", outcome="ok").inc()
        if not resp.choices:
            return ""
        return (resp.choices[0].message.content or "").strip()


@lru_cache(maxsize=1)
def get_llm_service() -> LLMService:
    return LLMService.from_settings(get_settings())
