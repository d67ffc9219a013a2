"""OpenRouter generation client.

OpenRouter exposes an OpenAI-compatible chat-completions endpoint, so the
client drives it through ``openai.AsyncOpenAI`` with a custom base URL. The
SDK's own retries are disabled; ``call_with_retry`` is the only retry loop.
"""

from __future__ import annotations

import asyncio
import os
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

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_HTTP_REFERER = "https://github.com/aajaces/care"
APP_TITLE = "CADRE - Catholic Alignment Evaluation"


class OpenRouterClient:
    """Generation client for models served through OpenRouter.

    Example:
        ```python
        client = OpenRouterClient(api_key, "anthropic/claude-sonnet-4.5")
        text = await client.generate("Who wrote the Summa?", temperature=0.0, seed=0)
        ```

    Attributes:
        provider: Rate limiter key ("openrouter")
        model: OpenRouter model identifier
        timeout: Per-request deadline in seconds
    """

    provider = "openrouter"

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        rate_limiter: RateLimiter | None = None,
        rpm_limit: int = 0,
        retry_delay: float = RETRY_DELAY_SECONDS,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """Initialize the OpenRouter client.

        Args:
            api_key: OpenRouter API key
            model: OpenRouter model identifier (e.g. "openai/gpt-4")
            timeout: Per-request timeout in seconds
            rate_limiter: Shared limiter; requests are not throttled if None
            rpm_limit: Requests per minute when a limiter is given (0 = none)
            client: Preconfigured SDK client (tests)
            retry_delay: Base backoff between attempts in seconds
        """
        self.model = model
        self.timeout = timeout
        self._rate_limiter = rate_limiter
        self._rpm_limit = rpm_limit
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=OPENROUTER_BASE_URL,
            max_retries=0,
            default_headers={
                "HTTP-Referer": os.environ.get("OPENROUTER_HTTP_REFERER", DEFAULT_HTTP_REFERER),
                "X-Title": APP_TITLE,
            },
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
        """Generate a completion with retries.

        Args:
            prompt: User prompt
            max_tokens: Maximum tokens in the response
            temperature: Sampling temperature
            system_message: Optional system message
            seed: Sampling seed; omitted from the request when None

        Returns:
            The stripped response text

        Raises:
            GenerationError: After three failed attempts
        """
        payload = build_payload(self.model, prompt, max_tokens, temperature, system_message, seed)

        async def attempt() -> str:
            if self._rate_limiter is not None:
                await self._rate_limiter.acquire(self.provider, self._rpm_limit)
            self._call_count += 1
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**payload),  # type: ignore[call-overload]
                timeout=self.timeout,
            )
            return self._extract_text(response)

        return await call_with_retry("OpenRouter", attempt, retry_delay=self.retry_delay)

    @staticmethod
    def _extract_text(response: Any) -> str:
        if not response.choices:
            raise TransientProviderError(f"Unexpected response format: {response!r}")
        content = (response.choices[0].message.content or "").strip()
        if not content:
            raise TransientProviderError("Empty response content")
        return content

    @property
    def call_count(self) -> int:
        """Number of requests sent, including failed attempts."""
        return self._call_count
