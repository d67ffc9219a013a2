"""Generation clients for the providers a model can be evaluated on."""

from cadre_eval.clients.base import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TIMEOUT_SECONDS,
    GenerationClient,
    call_with_retry,
)
from cadre_eval.clients.factory import (
    create_client,
    create_judge_client,
    missing_credentials,
    required_credentials,
)
from cadre_eval.clients.magisterium_client import MagisteriumClient
from cadre_eval.clients.mock_client import MockGenerationClient
from cadre_eval.clients.models import MODEL_CONFIGS, ModelConfig, get_model_config
from cadre_eval.clients.openrouter_client import OpenRouterClient
from cadre_eval.clients.rate_limiter import RateLimiter

__all__ = [
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_TIMEOUT_SECONDS",
    "MODEL_CONFIGS",
    "GenerationClient",
    "MagisteriumClient",
    "MockGenerationClient",
    "ModelConfig",
    "OpenRouterClient",
    "RateLimiter",
    "call_with_retry",
    "create_client",
    "create_judge_client",
    "get_model_config",
    "missing_credentials",
    "required_credentials",
]
