"""Generation client interface and shared retry loop.

Every provider client satisfies the GenerationClient protocol. The
orchestrator and the judge only ever see this shape; which implementation
backs it is decided by ``cadre_eval.clients.factory``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from openai import APIError

from cadre_eval.errors import GenerationError, TransientProviderError

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 2000
DEFAULT_TIMEOUT_SECONDS = 300.0
MAX_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 2.0

# Failures worth another attempt: API/transport errors, per-request timeouts,
# unusable payloads. Anything else is a bug and propagates at once.
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    APIError,
    TimeoutError,
    TransientProviderError,
)


@runtime_checkable
class GenerationClient(Protocol):
    """Structural interface for prompt-completion providers.

    Attributes:
        provider: Provider key, also used as the rate limiter key
        model: Provider-side model identifier
    """

    provider: str
    model: str

    async def generate(
        self,
        prompt: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = 0.7,
        system_message: str | None = None,
        seed: int | None = None,
    ) -> str:
        """Return the completion text for ``prompt``.

        Raises:
            GenerationError: When every attempt failed
        """
        ...


def build_messages(prompt: str, system_message: str | None = None) -> list[dict[str, str]]:
    """Chat message list with an optional leading system message."""
    messages: list[dict[str, str]] = []
    if system_message:
        messages.append({"role": "system", "content": system_message})
    messages.append({"role": "user", "content": prompt})
    return messages


def build_payload(
    model: str,
    prompt: str,
    max_tokens: int,
    temperature: float,
    system_message: str | None,
    seed: int | None,
) -> dict[str, object]:
    """Chat-completions request body; ``seed`` is sent only when given."""
    payload: dict[str, object] = {
        "model": model,
        "messages": build_messages(prompt, system_message),
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    if seed is not None:
        payload["seed"] = seed
    return payload


async def call_with_retry(
    provider: str,
    attempt: Callable[[], Awaitable[str]],
    *,
    max_attempts: int = MAX_ATTEMPTS,
    retry_delay: float = RETRY_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> str:
    """Run ``attempt`` until it succeeds or attempts run out.

    The delay before retry ``k`` is ``retry_delay * k`` (2s, then 4s by
    default). No delay follows the final attempt.

    Args:
        provider: Provider name for log and error messages
        attempt: Coroutine function performing one full request
        max_attempts: Total attempts including the first
        retry_delay: Base backoff in seconds
        sleep: Awaitable sleep, injectable for tests

    Returns:
        The text returned by the first successful attempt

    Raises:
        GenerationError: If every attempt raised a retryable error
    """
    last_error: BaseException | None = None

    for attempt_num in range(1, max_attempts + 1):
        try:
            return await attempt()
        except RETRYABLE_ERRORS as e:
            last_error = e
            if attempt_num < max_attempts:
                delay = retry_delay * attempt_num
                logger.warning(
                    f"{provider} error (attempt {attempt_num}/{max_attempts}): "
                    f"{e!r}; retrying in {delay:.1f}s"
                )
                await sleep(delay)

    logger.error(f"{provider} failed after {max_attempts} attempts: {last_error!r}")
    raise GenerationError(provider, max_attempts, repr(last_error)) from last_error
