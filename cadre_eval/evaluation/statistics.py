"""Statistical analysis for evaluation scores.

This module provides:
- Descriptive statistics (mean, Bessel-corrected variance, CV) per trial set
- Percentile bootstrap confidence intervals on the mean
- A consistency score derived from the coefficient of variation
- Welch's t-test for comparing two models

The Welch p-value uses a coarse normal approximation of the t distribution
(see ``_approximate_t_cdf``). It is adequate for descriptive reporting and is
not exact for small samples.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy import stats

DEFAULT_CONFIDENCE_LEVEL = 0.95
DEFAULT_BOOTSTRAP_ITERATIONS = 10_000
SIGNIFICANCE_ALPHA = 0.05

# Decay rate of the consistency transform: 100 * exp(-3 * CV)
CONSISTENCY_DECAY = 3.0


@dataclass(slots=True, frozen=True)
class DescriptiveStats:
    """Summary of a set of scores.

    Attributes:
        mean: Arithmetic mean
        variance: Sample variance (n-1 denominator, 0 for n <= 1)
        std_dev: Square root of variance
        coefficient_of_variation: std_dev / mean (0 when mean is 0)
        min: Smallest score
        max: Largest score
        n: Number of scores
    """

    mean: float
    variance: float
    std_dev: float
    coefficient_of_variation: float
    min: float
    max: float
    n: int

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "mean": self.mean,
            "variance": self.variance,
            "std_dev": self.std_dev,
            "coefficient_of_variation": self.coefficient_of_variation,
            "min": self.min,
            "max": self.max,
            "n": self.n,
        }


@dataclass(slots=True, frozen=True)
class ConfidenceInterval:
    """Bootstrap confidence interval result.

    Attributes:
        mean: Point estimate (sample mean)
        lower: Lower bound of confidence interval
        upper: Upper bound of confidence interval
        std_error: Standard error from bootstrap distribution
        n_iterations: Number of bootstrap iterations used
        confidence_level: Confidence level (e.g., 0.95 for 95% CI)
    """

    mean: float
    lower: float
    upper: float
    std_error: float
    n_iterations: int
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL

    def __post_init__(self) -> None:
        """Validate confidence interval bounds."""
        if self.lower > self.upper:
            raise ValueError(f"Lower bound ({self.lower}) cannot exceed upper bound ({self.upper})")
        if not 0.0 < self.confidence_level < 1.0:
            raise ValueError(
                f"Confidence level must be between 0 and 1, got {self.confidence_level}"
            )

    def contains(self, value: float) -> bool:
        """Check if a value falls within the confidence interval."""
        return self.lower <= value <= self.upper

    def width(self) -> float:
        """Return the width of the confidence interval."""
        return self.upper - self.lower

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "mean": self.mean,
            "lower": self.lower,
            "upper": self.upper,
            "std_error": self.std_error,
            "n_iterations": self.n_iterations,
            "confidence_level": self.confidence_level,
        }


@dataclass(slots=True, frozen=True)
class WelchTestResult:
    """Outcome of Welch's unequal-variance t-test.

    Attributes:
        t_statistic: Welch t statistic (mean1 - mean2) / SE
        degrees_of_freedom: Welch-Satterthwaite estimate
        p_value: Approximate two-tailed p-value
        significant: Whether p_value < 0.05
    """

    t_statistic: float
    degrees_of_freedom: float
    p_value: float
    significant: bool

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "t_statistic": self.t_statistic,
            "degrees_of_freedom": self.degrees_of_freedom,
            "p_value": self.p_value,
            "significant": self.significant,
        }


def _as_array(scores: Sequence[float] | NDArray[np.floating[Any]]) -> NDArray[np.float64]:
    return np.asarray(scores, dtype=np.float64)


def descriptive_stats(scores: Sequence[float] | NDArray[np.floating[Any]]) -> DescriptiveStats:
    """Compute descriptive statistics for a set of scores.

    Args:
        scores: Score values (any scale)

    Returns:
        DescriptiveStats; all zeros for empty input
    """
    data = _as_array(scores)
    n = len(data)
    if n == 0:
        return DescriptiveStats(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0)

    mean = float(np.mean(data))
    variance = float(np.var(data, ddof=1)) if n > 1 else 0.0
    std_dev = math.sqrt(variance)
    cv = std_dev / mean if mean != 0 else 0.0

    return DescriptiveStats(
        mean=mean,
        variance=variance,
        std_dev=std_dev,
        coefficient_of_variation=cv,
        min=float(np.min(data)),
        max=float(np.max(data)),
        n=n,
    )


def bootstrap_ci(
    scores: Sequence[float] | NDArray[np.floating[Any]],
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
    iterations: int = DEFAULT_BOOTSTRAP_ITERATIONS,
    rng: np.random.Generator | None = None,
) -> ConfidenceInterval:
    """Compute a percentile bootstrap confidence interval for the mean.

    Resamples the scores with replacement ``iterations`` times, sorts the
    resample means and reads the bounds at the alpha/2 and 1 - alpha/2
    positions.

    Args:
        scores: Observed scores
        confidence_level: Confidence level (0-1 exclusive)
        iterations: Number of bootstrap resamples
        rng: Random generator; a fresh unseeded one is used if None

    Returns:
        ConfidenceInterval; a single score yields lower == upper == mean

    Raises:
        ValueError: If confidence_level is outside (0, 1) or iterations < 1
    """
    if not 0.0 < confidence_level < 1.0:
        raise ValueError(f"confidence_level must be between 0 and 1, got {confidence_level}")
    if iterations < 1:
        raise ValueError(f"iterations must be at least 1, got {iterations}")

    data = _as_array(scores)
    n = len(data)

    if n == 0:
        return ConfidenceInterval(0.0, 0.0, 0.0, 0.0, 0, confidence_level)
    if n == 1:
        value = float(data[0])
        return ConfidenceInterval(value, value, value, 0.0, 0, confidence_level)

    rng = rng if rng is not None else np.random.default_rng()

    # One row of resample indices per iteration
    indices = rng.integers(0, n, size=(iterations, n))
    bootstrap_means = np.sort(data[indices].mean(axis=1))

    alpha = 1 - confidence_level
    lower_idx = min(int(math.floor(iterations * (alpha / 2))), iterations - 1)
    upper_idx = min(int(math.floor(iterations * (1 - alpha / 2))), iterations - 1)

    return ConfidenceInterval(
        mean=float(np.mean(data)),
        lower=float(bootstrap_means[lower_idx]),
        upper=float(bootstrap_means[upper_idx]),
        std_error=float(np.std(bootstrap_means, ddof=1)) if iterations > 1 else 0.0,
        n_iterations=iterations,
        confidence_level=confidence_level,
    )


def consistency_score(coefficient_of_variation: float) -> float:
    """Map a coefficient of variation to a 0-100 consistency score.

    ``100 * exp(-3 * cv)``: CV 0 scores 100, CV 0.1 about 74, CV 0.5 about 22.
    """
    score = 100.0 * math.exp(-CONSISTENCY_DECAY * coefficient_of_variation)
    return max(0.0, min(100.0, score))


def average_consistency_score(coefficients: Sequence[float]) -> float:
    """Mean consistency score over many question-variant pairs (0 if empty)."""
    if not coefficients:
        return 0.0
    return float(np.mean([consistency_score(cv) for cv in coefficients]))


def normalize_scores(scores: Sequence[float], max_score: float = 100.0) -> list[float]:
    """Scale scores to the 0-1 range."""
    return [score / max_score for score in scores]


def denormalize_scores(normalized: Sequence[float], max_score: float = 100.0) -> list[float]:
    """Scale 0-1 scores back to ``max_score``."""
    return [score * max_score for score in normalized]


def _approximate_t_cdf(t: float, df: float) -> float:
    """Coarse CDF of Student's t.

    Large samples (df > 30) use the normal CDF directly. Smaller samples
    shrink t to ``t / sqrt(1 + t^2/df)`` before applying the normal CDF.
    """
    if df > 30:
        return float(stats.norm.cdf(t))
    z = t / math.sqrt(1 + t * t / df)
    return float(stats.norm.cdf(z))


def welch_t_test(
    scores1: Sequence[float] | NDArray[np.floating[Any]],
    scores2: Sequence[float] | NDArray[np.floating[Any]],
) -> WelchTestResult:
    """Welch's t-test between two independent samples.

    Args:
        scores1: Scores of the first model
        scores2: Scores of the second model

    Returns:
        WelchTestResult with an approximate two-tailed p-value
    """
    a = _as_array(scores1)
    b = _as_array(scores2)
    n1, n2 = len(a), len(b)

    if n1 == 0 or n2 == 0:
        return WelchTestResult(0.0, 0.0, 1.0, False)

    m1 = descriptive_stats(a)
    m2 = descriptive_stats(b)

    s1_sq = m1.variance / n1
    s2_sq = m2.variance / n2
    std_error = math.sqrt(s1_sq + s2_sq)
    diff = m1.mean - m2.mean

    if std_error == 0:
        if diff == 0:
            return WelchTestResult(0.0, 0.0, 1.0, False)
        return WelchTestResult(math.copysign(math.inf, diff), 0.0, 0.0, True)

    t_stat = diff / std_error

    # Welch-Satterthwaite; a single-observation sample contributes no term
    denom = 0.0
    if n1 > 1:
        denom += s1_sq**2 / (n1 - 1)
    if n2 > 1:
        denom += s2_sq**2 / (n2 - 1)
    df = (s1_sq + s2_sq) ** 2 / denom

    p_value = 2 * (1 - _approximate_t_cdf(abs(t_stat), df))
    p_value = max(0.0, min(1.0, p_value))

    return WelchTestResult(
        t_statistic=t_stat,
        degrees_of_freedom=df,
        p_value=p_value,
        significant=p_value < SIGNIFICANCE_ALPHA,
    )


class StatisticalAnalyzer:
    """Bootstrap configuration shared by a whole evaluation run.

    Wraps the module functions with a fixed iteration count, confidence
    level and optional seed. With a seed every ``bootstrap_ci`` call starts
    from the same generator state, so identical inputs give identical
    intervals (needed for resumed runs to reproduce uninterrupted ones).

    Example:
        ```python
        analyzer = StatisticalAnalyzer(random_seed=42)
        ci = analyzer.bootstrap_ci([82.0, 75.5, 91.0, 68.0])
        print(f"{ci.mean:.1f} [{ci.lower:.1f}, {ci.upper:.1f}]")
        ```

    Attributes:
        n_bootstrap: Number of bootstrap iterations
        confidence_level: Confidence level for intervals
        random_seed: Seed for reproducible intervals (None for random)
    """

    def __init__(
        self,
        n_bootstrap: int = DEFAULT_BOOTSTRAP_ITERATIONS,
        confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
        random_seed: int | None = None,
    ) -> None:
        """Initialize the analyzer.

        Args:
            n_bootstrap: Number of bootstrap iterations (>= 100)
            confidence_level: Confidence level for intervals (0.0-1.0)
            random_seed: Random seed for reproducibility (None for random)
        """
        if n_bootstrap < 100:
            raise ValueError(f"n_bootstrap should be at least 100, got {n_bootstrap}")
        if not 0.0 < confidence_level < 1.0:
            raise ValueError(f"confidence_level must be between 0 and 1, got {confidence_level}")

        self._n_bootstrap = n_bootstrap
        self._confidence = confidence_level
        self._seed = random_seed

    @property
    def n_bootstrap(self) -> int:
        """Number of bootstrap iterations."""
        return self._n_bootstrap

    @property
    def confidence_level(self) -> float:
        """Confidence level for intervals."""
        return self._confidence

    @property
    def random_seed(self) -> int | None:
        """Seed used for each bootstrap call."""
        return self._seed

    def bootstrap_ci(self, scores: Sequence[float]) -> ConfidenceInterval:
        """Bootstrap CI using the analyzer's configuration."""
        return bootstrap_ci(
            scores,
            confidence_level=self._confidence,
            iterations=self._n_bootstrap,
            rng=np.random.default_rng(self._seed),
        )

    def descriptive_stats(self, scores: Sequence[float]) -> DescriptiveStats:
        """Descriptive statistics for ``scores``."""
        return descriptive_stats(scores)

    def get_stats(self) -> dict[str, Any]:
        """Get analyzer configuration."""
        return {
            "n_bootstrap": self._n_bootstrap,
            "confidence_level": self._confidence,
            "random_seed": self._seed,
        }
