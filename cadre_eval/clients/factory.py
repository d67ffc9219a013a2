"""Construct generation clients from model configuration.

The provider implementation is chosen from ``ModelConfig.provider``; callers
only ever hold a ``GenerationClient``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from cadre_eval.clients.base import DEFAULT_TIMEOUT_SECONDS, GenerationClient
from cadre_eval.clients.magisterium_client import MagisteriumClient
from cadre_eval.clients.models import PROVIDER_MAGISTERIUM, PROVIDER_OPENROUTER, ModelConfig
from cadre_eval.clients.openrouter_client import OpenRouterClient
from cadre_eval.clients.rate_limiter import RateLimiter
from cadre_eval.errors import ConfigurationError

logger = logging.getLogger(__name__)

OPENROUTER_API_KEY_ENV = "OPENROUTER_API_KEY"
MAGISTERIUM_API_KEY_ENV = "MAGISTERIUM_API_KEY"

_CREDENTIAL_ENV = {
    PROVIDER_OPENROUTER: OPENROUTER_API_KEY_ENV,
    PROVIDER_MAGISTERIUM: MAGISTERIUM_API_KEY_ENV,
}


def required_credentials(config: ModelConfig) -> list[str]:
    """Environment variables needed to evaluate ``config``.

    The judge always runs on OpenRouter, so its key is always listed.
    """
    names = [OPENROUTER_API_KEY_ENV]
    provider_env = _CREDENTIAL_ENV[config.provider]
    if provider_env not in names:
        names.append(provider_env)
    return names


def missing_credentials(config: ModelConfig, env: Mapping[str, str] | None = None) -> list[str]:
    """Required credential variables that are unset or empty."""
    env = os.environ if env is None else env
    return [name for name in required_credentials(config) if not env.get(name)]


def _api_key(provider: str, env: Mapping[str, str]) -> str:
    name = _CREDENTIAL_ENV[provider]
    key = env.get(name)
    if not key:
        raise ConfigurationError(f"{name} environment variable is required")
    return key


def create_client(
    config: ModelConfig,
    rate_limiter: RateLimiter,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    env: Mapping[str, str] | None = None,
) -> GenerationClient:
    """Build the provider client for ``config``.

    Args:
        config: Model configuration from the registry
        rate_limiter: Process-wide limiter shared by all clients
        timeout: Per-request timeout in seconds
        env: Environment mapping (defaults to ``os.environ``)

    Raises:
        ConfigurationError: If the provider's API key is missing
    """
    env = os.environ if env is None else env
    api_key = _api_key(config.provider, env)
    logger.debug(f"Creating {config.provider} client for {config.provider_model}")

    if config.provider == PROVIDER_MAGISTERIUM:
        return MagisteriumClient(
            api_key, config.provider_model, rate_limiter=rate_limiter, timeout=timeout
        )
    return OpenRouterClient(api_key, config.provider_model, timeout=timeout, rate_limiter=rate_limiter)


def create_judge_client(
    model: str,
    rate_limiter: RateLimiter,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    env: Mapping[str, str] | None = None,
) -> GenerationClient:
    """Build the OpenRouter client the judge grades with.

    Raises:
        ConfigurationError: If ``OPENROUTER_API_KEY`` is missing
    """
    env = os.environ if env is None else env
    api_key = _api_key(PROVIDER_OPENROUTER, env)
    return OpenRouterClient(api_key, model, timeout=timeout, rate_limiter=rate_limiter)
