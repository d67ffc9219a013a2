"""Mock generation client for runs without API calls.

Returns deterministic responses so the whole evaluation pipeline can be
exercised offline (``cadre-eval run --mock``) and in tests.
"""

from __future__ import annotations

from dataclasses import dataclass

from cadre_eval.clients.base import DEFAULT_MAX_TOKENS


@dataclass(frozen=True, slots=True)
class RecordedCall:
    """Arguments of one ``generate`` call."""

    prompt: str
    max_tokens: int
    temperature: float
    system_message: str | None
    seed: int | None


class MockGenerationClient:
    """Generation client that never leaves the process.

    Responses come from ``responses`` in order (cycling) when given,
    otherwise from ``default_response`` suffixed with the call number.
    Seeded calls (trial 1) always receive the same text for the same
    prompt, mirroring a deterministic provider.

    Example:
        ```python
        client = MockGenerationClient(responses=["A", "B"])
        await client.generate("Q")  # "A"
        await client.generate("Q")  # "B"
        ```
    """

    provider = "mock"

    def __init__(
        self,
        default_response: str = "This is a mock response for testing.",
        model: str = "mock-model",
        responses: list[str] | None = None,
    ) -> None:
        """Initialize the mock client.

        Args:
            default_response: Base text returned when ``responses`` is empty
            model: The model name to report
            responses: Fixed responses returned in rotation
        """
        self.model = model
        self.default_response = default_response
        self.responses = list(responses or [])
        self.calls: list[RecordedCall] = []

    async def generate(
        self,
        prompt: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = 0.7,
        system_message: str | None = None,
        seed: int | None = None,
    ) -> str:
        """Record the call and return a canned response."""
        self.calls.append(RecordedCall(prompt, max_tokens, temperature, system_message, seed))

        if self.responses:
            return self.responses[(len(self.calls) - 1) % len(self.responses)]
        if seed is not None:
            return f"{self.default_response} (seed {seed})"
        return f"{self.default_response} (call #{len(self.calls)})"

    @property
    def call_count(self) -> int:
        """Number of mock calls made."""
        return len(self.calls)
