"""
LLM client seam.

The orchestrator depends on the LLMClient protocol only; GroqLLMClient is
the production adapter. Every failure is converted to LLMUnavailableError so
callers can surface a retryable error without leaking provider details.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Protocol

import groq

from backend.core.config import settings
from backend.core.errors import LLMUnavailableError
from backend.core.logging import LOGGER_NAME, latency_bucket_ms


logger = logging.getLogger(LOGGER_NAME)

ChatMessage = Dict[str, Any]


class LLMClient(Protocol):
    def complete(self, messages: List[ChatMessage]) -> Optional[str]:
        """Return the assistant text, or None when the model produced no usable content."""
        ...


def _extract_content(response: Any) -> Optional[str]:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if isinstance(content, str) and content.strip():
        return content
    return None


class GroqLLMClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
        client: Any = None,
    ):
        self.api_key = api_key
        self.model = model or settings.LLM_MODEL
        self.timeout = timeout if timeout is not None else settings.LLM_TIMEOUT_SECONDS
        self.max_tokens = max_tokens or settings.LLM_MAX_TOKENS
        self._client = client

    @property
    def client(self):
        # Built on first use so the app can start without GROQ_API_KEY
        if self._client is None:
            api_key = self.api_key or settings.GROQ_API_KEY
            if not api_key:
                raise LLMUnavailableError("GROQ_API_KEY is not configured", retryable=False)
            self._client = groq.Groq(api_key=api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def complete(self, messages: List[ChatMessage]) -> Optional[str]:
        start = time.perf_counter()
        try:
            response = self.client.chat.completions.create(
                messages=messages,
                model=self.model,
                max_tokens=self.max_tokens,
                stream=False,
            )
        except groq.APITimeoutError as exc:
            logger.error("llm.timeout", extra={"model": self.model, "timeout_s": self.timeout})
            raise LLMUnavailableError("The assistant timed out. Please try again.") from exc
        except groq.APIError as exc:
            logger.error("llm.error", extra={"model": self.model, "error": str(exc)})
            raise LLMUnavailableError("The assistant is unavailable. Please try again.") from exc

        content = _extract_content(response)
        logger.info(
            "llm.complete",
            extra={
                "model": self.model,
                "latency_bucket": latency_bucket_ms((time.perf_counter() - start) * 1000),
                "empty": content is None,
            },
        )
        return content
