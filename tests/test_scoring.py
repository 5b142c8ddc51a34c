from __future__ import annotations

import pytest

from riskreport_cli.exceptions import InvalidInput
from riskreport_cli.models.scoring import (
    REGISTER_THRESHOLDS,
    THREAT_THRESHOLDS,
    Rating,
    RiskLevel,
)
from riskreport_cli.scoring import level_for, resolve_thresholds, score, score_values


class TestScore:
    def test_product_of_rating_values(self) -> None:
        result = score("high", "very_high")
        assert result.score == 20
        assert result.level is RiskLevel.CRITICAL

    def test_accepts_rating_members(self) -> None:
        result = score(Rating.MEDIUM, Rating.HIGH)
        assert result.score == 12
        assert result.level is RiskLevel.HIGH

    def test_lowest_pair(self) -> None:
        result = score("very_low", "very_low")
        assert result.score == 1
        assert result.level is RiskLevel.LOW

    def test_is_deterministic(self) -> None:
        assert score("low", "medium") == score("low", "medium")

    def test_register_preset(self) -> None:
        result = score("high", "high", "register")
        assert result.score == 16
        assert result.level is RiskLevel.HIGH

    @pytest.mark.parametrize("likelihood", ["extreme", "", None, 3])
    def test_invalid_likelihood(self, likelihood: object) -> None:
        with pytest.raises(InvalidInput, match="likelihood"):
            score(likelihood, "low")  # type: ignore[arg-type]

    def test_invalid_impact(self) -> None:
        with pytest.raises(InvalidInput, match="impact"):
            score("low", "catastrophic")


class TestThreatThresholds:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (25, RiskLevel.CRITICAL),
            (20, RiskLevel.CRITICAL),
            (19, RiskLevel.HIGH),
            (12, RiskLevel.HIGH),
            (11, RiskLevel.MEDIUM),
            (6, RiskLevel.MEDIUM),
            (5, RiskLevel.LOW),
            (1, RiskLevel.LOW),
        ],
    )
    def test_boundaries(self, value: int, expected: RiskLevel) -> None:
        assert level_for(value) is expected
        assert THREAT_THRESHOLDS.level_for(value) is expected


class TestRegisterThresholds:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (17, RiskLevel.CRITICAL),
            (16, RiskLevel.HIGH),
            (10, RiskLevel.HIGH),
            (9, RiskLevel.MEDIUM),
            (5, RiskLevel.MEDIUM),
            (4, RiskLevel.LOW),
        ],
    )
    def test_boundaries(self, value: int, expected: RiskLevel) -> None:
        assert level_for(value, "register") is expected
        assert REGISTER_THRESHOLDS.level_for(value) is expected


class TestScoreValues:
    def test_numeric_inputs(self) -> None:
        result = score_values(4, 4, REGISTER_THRESHOLDS)
        assert result.score == 16
        assert result.level is RiskLevel.HIGH

    @pytest.mark.parametrize("value", [0, 6, True, 2.5, "3"])
    def test_out_of_range_or_wrong_type(self, value: object) -> None:
        with pytest.raises(InvalidInput):
            score_values(value, 3)  # type: ignore[arg-type]


class TestLevelFor:
    @pytest.mark.parametrize("value", [0, 26, -1])
    def test_out_of_range(self, value: int) -> None:
        with pytest.raises(InvalidInput, match="between 1 and 25"):
            level_for(value)


class TestResolveThresholds:
    def test_presets(self) -> None:
        assert resolve_thresholds("threat") is THREAT_THRESHOLDS
        assert resolve_thresholds(" Register ") is REGISTER_THRESHOLDS

    def test_table_passes_through(self) -> None:
        assert resolve_thresholds(REGISTER_THRESHOLDS) is REGISTER_THRESHOLDS

    def test_unknown_preset(self) -> None:
        with pytest.raises(InvalidInput, match="Unknown threshold preset"):
            resolve_thresholds("strict")


class TestRating:
    def test_numbers_and_labels(self) -> None:
        assert [r.number for r in Rating] == [1, 2, 3, 4, 5]
        assert Rating.from_number(5) is Rating.VERY_HIGH
        assert Rating.VERY_LOW.label == "Very Low"

    def test_from_number_rejects_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            Rating.from_number(0)
