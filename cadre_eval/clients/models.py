"""Registry of models known to the evaluation CLI.

Maps the short names accepted by ``cadre-eval run --model`` to display
metadata and the provider-side model identifier.
"""

from __future__ import annotations

from dataclasses import dataclass

from cadre_eval.errors import ConfigurationError

PROVIDER_OPENROUTER = "openrouter"
PROVIDER_MAGISTERIUM = "magisterium"


@dataclass(frozen=True, slots=True)
class ModelConfig:
    """Static configuration for one evaluable model.

    Attributes:
        key: Registry key (e.g. "claude-sonnet-4.5")
        name: Human-readable display name
        version: Model version label stored with the model record
        provider: "openrouter" or "magisterium"
        provider_model: Model identifier sent to the provider
    """

    key: str
    name: str
    version: str
    provider: str
    provider_model: str

    def __post_init__(self) -> None:
        if self.provider not in (PROVIDER_OPENROUTER, PROVIDER_MAGISTERIUM):
            raise ValueError(f"Unknown provider: {self.provider}")
        if not self.provider_model:
            raise ValueError("provider_model must be non-empty")


def _openrouter(key: str, name: str, version: str, model: str) -> ModelConfig:
    return ModelConfig(key, name, version, PROVIDER_OPENROUTER, model)


MODEL_CONFIGS: dict[str, ModelConfig] = {
    config.key: config
    for config in (
        _openrouter("gpt-4", "GPT-4", "gpt-4", "openai/gpt-4"),
        _openrouter("gpt-4-turbo", "GPT-4 Turbo", "gpt-4-turbo", "openai/gpt-4-turbo"),
        _openrouter("claude-3-haiku", "Claude 3 Haiku", "claude-3-haiku", "anthropic/claude-3-haiku"),
        _openrouter(
            "claude-3.5-haiku", "Claude 3.5 Haiku", "claude-3.5-haiku", "anthropic/claude-3.5-haiku"
        ),
        _openrouter(
            "claude-haiku-4.5", "Claude Haiku 4.5", "claude-haiku-4.5", "anthropic/claude-haiku-4.5"
        ),
        _openrouter(
            "claude-3-sonnet", "Claude 3 Sonnet", "claude-3-sonnet", "anthropic/claude-3-sonnet"
        ),
        _openrouter(
            "claude-sonnet-4", "Claude Sonnet 4", "claude-sonnet-4", "anthropic/claude-sonnet-4"
        ),
        _openrouter(
            "claude-sonnet-4.5",
            "Claude Sonnet 4.5",
            "claude-sonnet-4.5",
            "anthropic/claude-sonnet-4.5",
        ),
        _openrouter("grok-4-fast", "Grok 4 Fast", "grok-4-fast", "x-ai/grok-4-fast"),
        _openrouter("grok-4", "Grok 4", "grok-4", "x-ai/grok-4"),
        _openrouter("grok-3-mini", "Grok 3 Mini", "grok-3-mini", "x-ai/grok-3-mini"),
        _openrouter("hermes-4-70b", "Hermes 4 70B", "hermes-4-70b", "nousresearch/hermes-4-70b"),
        _openrouter(
            "hermes-4-405b", "Hermes 4 405B", "hermes-4-405b", "nousresearch/hermes-4-405b"
        ),
        _openrouter(
            "deepseek-r1-free", "DeepSeek R1 (Free)", "deepseek-r1", "deepseek/deepseek-r1:free"
        ),
        ModelConfig(
            "magisterium-1", "Magisterium 1", "magisterium-1", PROVIDER_MAGISTERIUM, "magisterium-1"
        ),
    )
}


def get_model_config(key: str) -> ModelConfig:
    """Look up a model by registry key.

    Raises:
        ConfigurationError: If the key is not registered
    """
    try:
        return MODEL_CONFIGS[key]
    except KeyError:
        available = ", ".join(MODEL_CONFIGS)
        raise ConfigurationError(f"Unknown model: {key}. Available models: {available}") from None
