"""Error taxonomy for the evaluation engine.

Every error raised on purpose by this package derives from CadreEvalError.
The ``retriable`` flag marks transient failures a caller may retry;
configuration errors are never retriable.
"""

from __future__ import annotations


class CadreEvalError(Exception):
    """Base class for all evaluation engine errors."""

    def __init__(self, message: str, *, retriable: bool = False) -> None:
        super().__init__(message)
        self.retriable = retriable


class ConfigurationError(CadreEvalError):
    """Fatal setup problem: missing credential, unknown model, bad option."""


class QuestionValidationError(ConfigurationError):
    """Raised when a question file does not match the expected schema."""


class RunNotFoundError(ConfigurationError):
    """Raised when a resume target does not exist in the store."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Evaluation run {run_id} not found")
        self.run_id = run_id


class RunAlreadyCompletedError(ConfigurationError):
    """Raised when asked to resume a run that already completed."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Evaluation run {run_id} is already completed")
        self.run_id = run_id


class GenerationError(CadreEvalError):
    """Raised by a generation client once all retry attempts are exhausted."""

    def __init__(self, provider: str, attempts: int, reason: str) -> None:
        super().__init__(f"{provider} failed after {attempts} attempts: {reason}")
        self.provider = provider
        self.attempts = attempts


class TransientProviderError(CadreEvalError):
    """A single failed provider call (bad payload, empty content).

    Raised inside a client's retry loop and never escapes it; exhausted
    retries surface as GenerationError instead.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason, retriable=True)
