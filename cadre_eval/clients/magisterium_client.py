"""Magisterium generation client.

The Magisterium API is OpenAI-compatible and capped at 5 requests per
minute, so every attempt goes through the shared RateLimiter. Some answers
arrive with empty content but a list of citations; the cited passages are
then used as the response text.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from openai import AsyncOpenAI

from cadre_eval.clients.base import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TIMEOUT_SECONDS,
    RETRY_DELAY_SECONDS,
    build_payload,
    call_with_retry,
)
from cadre_eval.clients.rate_limiter import RateLimiter
from cadre_eval.errors import TransientProviderError

logger = logging.getLogger(__name__)

MAGISTERIUM_BASE_URL = "https://www.magisterium.com/api/v1"
MAGISTERIUM_RPM_LIMIT = 5


def _citations_of(response: Any) -> list[Any]:
    citations = getattr(response, "citations", None)
    if citations is None:
        extra = getattr(response, "model_extra", None) or {}
        citations = extra.get("citations")
    return citations if isinstance(citations, list) else []


def _cited_text(citation: Any) -> str:
    if isinstance(citation, dict):
        return str(citation.get("cited_text") or "")
    return str(getattr(citation, "cited_text", "") or "")


class MagisteriumClient:
    """Rate-limited generation client for Magisterium models.

    Attributes:
        provider: Rate limiter key ("magisterium")
        model: Magisterium model identifier
        timeout: Per-request deadline in seconds
    """

    provider = "magisterium"

    def __init__(
        self,
        api_key: str,
        model: str,
        rate_limiter: RateLimiter,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        rpm_limit: int = MAGISTERIUM_RPM_LIMIT,
        retry_delay: float = RETRY_DELAY_SECONDS,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """Initialize the Magisterium client.

        Args:
            api_key: Magisterium API key
            model: Model identifier (e.g. "magisterium-1")
            rate_limiter: Process-wide limiter shared by all Magisterium calls
            timeout: Per-request timeout in seconds
            rpm_limit: Requests per minute
            retry_delay: Base backoff between attempts in seconds
            client: Preconfigured SDK client (tests)
        """
        self.model = model
        self.timeout = timeout
        self._rate_limiter = rate_limiter
        self._rpm_limit = rpm_limit
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=MAGISTERIUM_BASE_URL,
            max_retries=0,
        )
        self.retry_delay = retry_delay
        self._call_count = 0

    async def generate(
        self,
        prompt: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = 0.7,
        system_message: str | None = None,
        seed: int | None = None,
    ) -> str:
        """Generate a completion with rate limiting and retries.

        Raises:
            GenerationError: After three failed attempts
        """
        payload = build_payload(self.model, prompt, max_tokens, temperature, system_message, seed)

        async def request() -> Any:
            self._call_count += 1
            return await asyncio.wait_for(
                self._client.chat.completions.create(**payload),  # type: ignore[call-overload]
                timeout=self.timeout,
            )

        async def attempt() -> str:
            response = await self._rate_limiter.throttle(self.provider, self._rpm_limit, request)
            return self._extract_text(response)

        return await call_with_retry("Magisterium", attempt, retry_delay=self.retry_delay)

    @staticmethod
    def _extract_text(response: Any) -> str:
        if not response.choices:
            raise TransientProviderError(f"Unexpected response format: {response!r}")

        content = (response.choices[0].message.content or "").strip()
        if content:
            return content

        citations = _citations_of(response)
        if citations:
            logger.warning(
                f"Empty content but {len(citations)} citations present, extracting from citations"
            )
            extracted = "\n\n".join(
                text for text in (_cited_text(c).strip() for c in citations) if text
            )
            if extracted:
                return extracted

        raise TransientProviderError(
            f"Empty response content. Choices: {len(response.choices)}, "
            f"Citations: {len(citations)}"
        )

    @property
    def call_count(self) -> int:
        """Number of requests sent, including failed attempts."""
        return self._call_count
