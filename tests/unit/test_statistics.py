"""Tests for the statistics module.

Tests cover:
- ConfidenceInterval dataclass validation and methods
- Descriptive statistics with Bessel's correction
- Bootstrap confidence intervals and their edge cases
- Consistency score transform
- Welch's t-test and its degenerate inputs
- StatisticalAnalyzer reproducibility
"""

from __future__ import annotations

import math

import numpy as np
import pytest
from numpy.testing import assert_allclose

from cadre_eval.evaluation.statistics import (
    ConfidenceInterval,
    StatisticalAnalyzer,
    average_consistency_score,
    bootstrap_ci,
    consistency_score,
    denormalize_scores,
    descriptive_stats,
    normalize_scores,
    welch_t_test,
)


class TestConfidenceInterval:
    """Tests for ConfidenceInterval dataclass."""

    def test_lower_exceeds_upper_raises(self) -> None:
        """Test that lower > upper raises ValueError."""
        with pytest.raises(ValueError, match="Lower bound.*cannot exceed upper bound"):
            ConfidenceInterval(mean=85.0, lower=90.0, upper=80.0, std_error=3.0, n_iterations=100)

    def test_invalid_confidence_level_raises(self) -> None:
        """Test that confidence levels outside (0, 1) raise ValueError."""
        with pytest.raises(ValueError, match="Confidence level must be between 0 and 1"):
            ConfidenceInterval(
                mean=85.0,
                lower=80.0,
                upper=90.0,
                std_error=3.0,
                n_iterations=100,
                confidence_level=1.5,
            )

    def test_contains_and_width(self) -> None:
        """Test contains() and width()."""
        ci = ConfidenceInterval(mean=85.0, lower=80.0, upper=90.0, std_error=3.0, n_iterations=100)

        assert ci.contains(85.0)
        assert ci.contains(80.0)
        assert not ci.contains(79.9)
        assert ci.width() == pytest.approx(10.0)

    def test_to_dict(self) -> None:
        """Test serialization."""
        ci = ConfidenceInterval(mean=85.0, lower=80.0, upper=90.0, std_error=3.0, n_iterations=100)

        assert ci.to_dict() == {
            "mean": 85.0,
            "lower": 80.0,
            "upper": 90.0,
            "std_error": 3.0,
            "n_iterations": 100,
            "confidence_level": 0.95,
        }


class TestDescriptiveStats:
    """Tests for descriptive_stats()."""

    def test_three_scores(self) -> None:
        """Scores [80, 85, 90] give mean 85, std 5 and CV ~0.0588."""
        result = descriptive_stats([80.0, 85.0, 90.0])

        assert result.mean == pytest.approx(85.0)
        assert result.variance == pytest.approx(25.0)
        assert result.std_dev == pytest.approx(5.0)
        assert result.coefficient_of_variation == pytest.approx(5.0 / 85.0)
        assert result.min == 80.0
        assert result.max == 90.0
        assert result.n == 3

    def test_uses_sample_variance(self) -> None:
        """Variance uses the n-1 denominator."""
        result = descriptive_stats([1.0, 2.0, 3.0, 4.0])

        assert_allclose(result.variance, np.var([1.0, 2.0, 3.0, 4.0], ddof=1))

    def test_single_score_has_zero_variance(self) -> None:
        """A single observation has no spread."""
        result = descriptive_stats([72.0])

        assert result.mean == 72.0
        assert result.variance == 0.0
        assert result.std_dev == 0.0
        assert result.coefficient_of_variation == 0.0

    def test_zero_mean_has_zero_cv(self) -> None:
        """CV is defined as 0 when the mean is 0."""
        result = descriptive_stats([0.0, 0.0, 0.0])

        assert result.coefficient_of_variation == 0.0

    def test_empty_input(self) -> None:
        """Empty input yields all zeros."""
        result = descriptive_stats([])

        assert result.mean == 0.0
        assert result.variance == 0.0
        assert result.n == 0


class TestBootstrapCI:
    """Tests for bootstrap_ci()."""

    def test_bounds_bracket_mean(self) -> None:
        """lower <= mean <= upper for a typical sample."""
        scores = [72.0, 85.0, 90.0, 64.0, 78.0, 88.0, 95.0, 70.0]
        ci = bootstrap_ci(scores, rng=np.random.default_rng(42))

        assert ci.lower <= ci.mean <= ci.upper
        assert ci.mean == pytest.approx(np.mean(scores))
        assert ci.n_iterations == 10_000
        assert ci.confidence_level == 0.95

    def test_single_score(self) -> None:
        """One score gives lower == upper == mean == the score."""
        ci = bootstrap_ci([67.5])

        assert ci.mean == ci.lower == ci.upper == 67.5

    def test_empty_input(self) -> None:
        """Empty input yields a zero interval."""
        ci = bootstrap_ci([])

        assert (ci.mean, ci.lower, ci.upper) == (0.0, 0.0, 0.0)

    def test_constant_scores_give_degenerate_interval(self) -> None:
        """Identical scores resample to the same mean every time."""
        ci = bootstrap_ci([80.0] * 5, iterations=500, rng=np.random.default_rng(0))

        assert_allclose([ci.lower, ci.mean, ci.upper], [80.0, 80.0, 80.0])

    def test_seeded_generator_is_reproducible(self) -> None:
        """Same seed, same interval."""
        scores = [50.0, 60.0, 70.0, 80.0, 90.0]

        first = bootstrap_ci(scores, iterations=1000, rng=np.random.default_rng(7))
        second = bootstrap_ci(scores, iterations=1000, rng=np.random.default_rng(7))

        assert first == second

    def test_higher_confidence_is_wider(self) -> None:
        """A 99% interval is at least as wide as a 90% one."""
        scores = [55.0, 62.0, 70.0, 81.0, 90.0, 48.0]

        narrow = bootstrap_ci(scores, 0.90, rng=np.random.default_rng(1))
        wide = bootstrap_ci(scores, 0.99, rng=np.random.default_rng(1))

        assert wide.width() >= narrow.width()

    def test_invalid_confidence_level_raises(self) -> None:
        """Confidence level must lie strictly between 0 and 1."""
        with pytest.raises(ValueError, match="confidence_level"):
            bootstrap_ci([1.0, 2.0], confidence_level=1.0)


class TestConsistencyScore:
    """Tests for the consistency transform."""

    def test_zero_cv_is_perfect(self) -> None:
        """CV 0 maps to 100."""
        assert consistency_score(0.0) == 100.0

    def test_known_value(self) -> None:
        """CV of [80, 85, 90] maps to ~83.8."""
        cv = descriptive_stats([80.0, 85.0, 90.0]).coefficient_of_variation

        assert consistency_score(cv) == pytest.approx(83.8, abs=0.05)

    def test_strictly_decreasing(self) -> None:
        """Higher CV always scores lower."""
        values = [consistency_score(cv) for cv in (0.0, 0.05, 0.1, 0.5, 1.0, 2.0)]

        assert all(a > b for a, b in zip(values, values[1:], strict=False))
        assert all(0.0 <= v <= 100.0 for v in values)

    def test_negative_cv_is_clamped(self) -> None:
        """Negative CV (negative mean) cannot exceed 100."""
        assert consistency_score(-0.5) == 100.0

    def test_average(self) -> None:
        """Average of per-pair consistency scores."""
        expected = (consistency_score(0.0) + consistency_score(0.1)) / 2

        assert average_consistency_score([0.0, 0.1]) == pytest.approx(expected)
        assert average_consistency_score([]) == 0.0


class TestNormalization:
    """Tests for normalize_scores() and denormalize_scores()."""

    def test_round_trip(self) -> None:
        """Normalizing then denormalizing returns the input."""
        scores = [0.0, 25.0, 40.0, 50.0]

        normalized = normalize_scores(scores, max_score=50.0)

        assert normalized == [0.0, 0.5, 0.8, 1.0]
        assert_allclose(denormalize_scores(normalized, max_score=50.0), scores)


class TestWelchTTest:
    """Tests for welch_t_test()."""

    def test_clearly_different_samples_are_significant(self) -> None:
        """Well-separated samples give a small p-value."""
        a = [90.0, 92.0, 88.0, 91.0, 89.0, 93.0]
        b = [60.0, 62.0, 58.0, 61.0, 59.0, 63.0]

        result = welch_t_test(a, b)

        assert result.t_statistic > 0
        assert result.p_value < 0.05
        assert result.significant

    def test_similar_samples_are_not_significant(self) -> None:
        """Overlapping samples give a large p-value."""
        a = [70.0, 80.0, 75.0, 85.0]
        b = [72.0, 78.0, 76.0, 83.0]

        result = welch_t_test(a, b)

        assert result.p_value > 0.05
        assert not result.significant

    def test_statistic_and_degrees_of_freedom(self) -> None:
        """t and Welch-Satterthwaite df match the textbook formulas."""
        a = [1.0, 2.0, 3.0, 4.0, 5.0]
        b = [2.0, 4.0, 6.0]

        result = welch_t_test(a, b)

        s1 = np.var(a, ddof=1) / len(a)
        s2 = np.var(b, ddof=1) / len(b)
        expected_t = (np.mean(a) - np.mean(b)) / math.sqrt(s1 + s2)
        expected_df = (s1 + s2) ** 2 / (s1**2 / (len(a) - 1) + s2**2 / (len(b) - 1))
        assert result.t_statistic == pytest.approx(expected_t)
        assert result.degrees_of_freedom == pytest.approx(expected_df)

    def test_symmetric(self) -> None:
        """Swapping samples flips t and keeps p."""
        a = [70.0, 75.0, 80.0]
        b = [60.0, 66.0, 61.0, 64.0]

        forward = welch_t_test(a, b)
        backward = welch_t_test(b, a)

        assert forward.t_statistic == pytest.approx(-backward.t_statistic)
        assert forward.p_value == pytest.approx(backward.p_value)

    def test_empty_sample(self) -> None:
        """Either sample empty gives t = 0, p = 1."""
        result = welch_t_test([], [1.0, 2.0])

        assert result.t_statistic == 0.0
        assert result.p_value == 1.0
        assert not result.significant

    def test_zero_standard_error_equal_means(self) -> None:
        """Identical constant samples are indistinguishable."""
        result = welch_t_test([5.0, 5.0], [5.0, 5.0, 5.0])

        assert result.t_statistic == 0.0
        assert result.p_value == 1.0

    def test_zero_standard_error_different_means(self) -> None:
        """Different constant samples differ with certainty."""
        result = welch_t_test([1.0, 1.0], [2.0, 2.0])

        assert result.t_statistic == -math.inf
        assert result.p_value == 0.0
        assert result.significant


class TestStatisticalAnalyzer:
    """Tests for StatisticalAnalyzer."""

    def test_seeded_analyzer_repeats_intervals(self) -> None:
        """Each call restarts from the seed, so repeated calls agree."""
        analyzer = StatisticalAnalyzer(n_bootstrap=500, random_seed=42)
        scores = [60.0, 70.0, 80.0, 90.0]

        assert analyzer.bootstrap_ci(scores) == analyzer.bootstrap_ci(scores)

    def test_configuration(self) -> None:
        """Configuration is exposed through get_stats()."""
        analyzer = StatisticalAnalyzer(n_bootstrap=500, confidence_level=0.9, random_seed=1)

        assert analyzer.get_stats() == {
            "n_bootstrap": 500,
            "confidence_level": 0.9,
            "random_seed": 1,
        }
        assert analyzer.bootstrap_ci([1.0, 2.0, 3.0]).confidence_level == 0.9

    def test_invalid_configuration_raises(self) -> None:
        """Too few iterations or a bad confidence level are rejected."""
        with pytest.raises(ValueError, match="n_bootstrap"):
            StatisticalAnalyzer(n_bootstrap=10)
        with pytest.raises(ValueError, match="confidence_level"):
            StatisticalAnalyzer(confidence_level=0.0)
