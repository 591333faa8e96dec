"""
Tests for median consensus and validity scoring.
"""

import pytest

from schelling_oracle.errors import InsufficientReveals, NoValidReveals
from schelling_oracle.protocol.aggregator import ConsensusAggregator, relative_deviation


class TestAggregator:
    """Test cases for consensus aggregation."""

    def test_outlier_is_scored_not_excluded_from_median(self):
        """The median is taken over all reveals; the outlier only scores 0."""
        aggregator = ConsensusAggregator(clock=lambda: 42.0)
        reveals = {"a": 10.0, "b": 12.0, "c": 11.0, "d": 50.0}

        result = aggregator.aggregate("req-1", reveals, min_providers=3)

        assert result.consensus_value == 11.5
        assert result.scores["d"] == 0.0
        assert result.scores["c"] == pytest.approx(1 - (0.5 / 11.5) / 0.25)
        assert result.scores["a"] == pytest.approx(1 - (1.5 / 11.5) / 0.25)
        assert result.scores["a"] == pytest.approx(result.scores["b"])
        assert result.aggregated_at == 42.0
        assert sorted(result.valid_providers) == ["a", "b", "c"]

    def test_median_odd_count(self):
        """Odd count uses the middle value."""
        aggregator = ConsensusAggregator()
        result = aggregator.aggregate("req-1", {"a": 100.0, "b": 102.0, "c": 101.0}, 1)

        assert result.consensus_value == 101.0
        assert result.scores["c"] == 1.0

    def test_median_even_count_averages_middle_values(self):
        """Even count averages the two middle values."""
        aggregator = ConsensusAggregator()
        result = aggregator.aggregate("req-1", {"a": 100.0, "b": 101.0}, 2)

        assert result.consensus_value == 100.5

    def test_exact_agreement_scores_one(self):
        """Providers matching the consensus exactly score 1."""
        aggregator = ConsensusAggregator()
        result = aggregator.aggregate("req-1", {"a": 7.0, "b": 7.0, "c": 7.0}, 3)

        assert result.scores == {"a": 1.0, "b": 1.0, "c": 1.0}

    def test_scores_stay_in_unit_interval(self):
        """Scores are always within [0, 1]."""
        aggregator = ConsensusAggregator(deviation_threshold=0.5)
        reveals = {"a": 1.0, "b": 2.0, "c": 3.0, "d": -40.0, "e": 2.2}

        result = aggregator.aggregate("req-1", reveals, 1)

        assert all(0.0 <= score <= 1.0 for score in result.scores.values())

    def test_deviation_at_threshold_is_invalid(self):
        """A deviation equal to the threshold scores 0."""
        aggregator = ConsensusAggregator(deviation_threshold=0.25)
        assert aggregator.score(125.0, 100.0) == 0.0
        assert aggregator.score(124.0, 100.0) > 0.0

    def test_zero_consensus_uses_absolute_deviation(self):
        """A zero median falls back to absolute deviation."""
        assert relative_deviation(0.1, 0.0) == pytest.approx(0.1)
        assert relative_deviation(-3.0, -2.0) == pytest.approx(0.5)

    def test_insufficient_reveals(self):
        """Fewer reveals than required fails the round."""
        aggregator = ConsensusAggregator()
        with pytest.raises(InsufficientReveals):
            aggregator.aggregate("req-1", {"a": 1.0}, min_providers=3)

    def test_empty_reveals(self):
        """No reveals at all is insufficient."""
        aggregator = ConsensusAggregator()
        with pytest.raises(InsufficientReveals):
            aggregator.aggregate("req-1", {}, min_providers=1)

    def test_all_providers_invalid(self):
        """A split with nobody near the median fails with NoValidReveals."""
        aggregator = ConsensusAggregator()
        with pytest.raises(NoValidReveals):
            aggregator.aggregate("req-1", {"a": 0.0, "b": 100.0}, min_providers=2)

    def test_one_valid_provider_is_enough(self):
        """A round settles as long as someone scored above zero."""
        aggregator = ConsensusAggregator()
        result = aggregator.aggregate("req-1", {"a": 1.0, "b": 100.0, "c": 200.0}, 3)

        assert result.consensus_value == 100.0
        assert result.valid_providers == ["b"]

    def test_invalid_threshold(self):
        """Threshold must be positive."""
        with pytest.raises(ValueError, match="deviation_threshold must be positive"):
            ConsensusAggregator(deviation_threshold=0)
