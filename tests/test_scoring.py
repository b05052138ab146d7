"""Tests for the impact score formula."""

import math

import pytest

from vulntrack.impact.scoring import (
    calculate_impact_score, severity_base, is_critical_impact, is_high_impact,
    CRITICAL_IMPACT_THRESHOLD, HIGH_IMPACT_THRESHOLD
)
from vulntrack.models import Severity


class TestImpactScore:
    """Test cases for calculate_impact_score."""

    def test_critical_single_occurrence_exact_value(self):
        expected = min(10, 10 * (1 + (math.log10(2) + math.log10(2)) * 0.2 + math.log10(2) * 0.1))

        score = calculate_impact_score(Severity.CRITICAL, 1, 1, 1)

        assert score == expected
        assert score == 10.0

    def test_low_single_occurrence_exact_value(self):
        expected = 2 * (1 + (math.log10(2) + math.log10(2)) * 0.2 + math.log10(2) * 0.1)

        assert calculate_impact_score(Severity.LOW, 1, 1, 1) == expected

    def test_medium_spread_exact_value(self):
        expected = 5 * (1 + (math.log10(4) + math.log10(6)) * 0.2 + math.log10(21) * 0.1)

        assert calculate_impact_score(Severity.MEDIUM, 3, 5, 20) == expected

    def test_zero_spread_returns_severity_base(self):
        assert calculate_impact_score(Severity.HIGH, 0, 0, 0) == 8
        assert calculate_impact_score(Severity.UNKNOWN, 0, 0, 0) == 1

    @pytest.mark.parametrize('severity', list(Severity))
    def test_monotonic_in_occurrences(self, severity):
        previous = 0.0
        for occurrences in [0, 1, 2, 5, 10, 100, 1000, 10 ** 6]:
            score = calculate_impact_score(severity, 2, 3, occurrences)
            assert score >= previous
            previous = score

    @pytest.mark.parametrize('severity', list(Severity))
    def test_never_exceeds_ten(self, severity):
        for count in [1, 10, 1000, 10 ** 9]:
            assert calculate_impact_score(severity, count, count, count) <= 10.0

    def test_spread_outweighs_repeated_occurrences(self):
        pervasive = calculate_impact_score(Severity.LOW, 50, 50, 100)
        repeated = calculate_impact_score(Severity.LOW, 1, 1, 10000)

        assert pervasive > repeated

    def test_string_severity(self):
        assert calculate_impact_score('MEDIUM', 1, 1, 1) == calculate_impact_score(Severity.MEDIUM, 1, 1, 1)
        assert calculate_impact_score('medium', 1, 1, 1) == calculate_impact_score(Severity.MEDIUM, 1, 1, 1)


class TestSeverityBase:
    """Test cases for severity base lookup."""

    def test_known_severities(self):
        assert severity_base(Severity.CRITICAL) == 10
        assert severity_base(Severity.HIGH) == 8
        assert severity_base(Severity.MEDIUM) == 5
        assert severity_base(Severity.LOW) == 2
        assert severity_base(Severity.UNKNOWN) == 1

    def test_unrecognized_severity_defaults_to_one(self):
        assert severity_base('NEGLIGIBLE') == 1
        assert severity_base(None) == 1


class TestThresholds:
    """Test cases for impact thresholds."""

    def test_threshold_values(self):
        assert CRITICAL_IMPACT_THRESHOLD == 9
        assert HIGH_IMPACT_THRESHOLD == 7

    def test_critical_and_high_are_disjoint(self):
        assert is_critical_impact(9.0) and not is_high_impact(9.0)
        assert is_high_impact(7.0) and not is_critical_impact(7.0)
        assert is_high_impact(8.99)
        assert not is_high_impact(6.99) and not is_critical_impact(6.99)
