from __future__ import annotations

from typing import Any, Union

from riskreport_cli.exceptions import InvalidInput
from riskreport_cli.models.scoring import (
    THREAT_THRESHOLDS,
    THRESHOLD_PRESETS,
    Rating,
    RiskLevel,
    RiskScore,
    ThresholdTable,
)

Thresholds = Union[str, ThresholdTable]

_MIN_SCORE = 1
_MAX_SCORE = 25


def resolve_thresholds(thresholds: Thresholds) -> ThresholdTable:
    """Accept a preset name ("threat", "register") or a table."""
    if isinstance(thresholds, ThresholdTable):
        return thresholds
    table = THRESHOLD_PRESETS.get(str(thresholds).strip().lower())
    if table is None:
        names = ", ".join(sorted(THRESHOLD_PRESETS))
        raise InvalidInput(f"Unknown threshold preset '{thresholds}'. Expected one of: {names}.")
    return table


def parse_rating(value: Any, field: str = "rating") -> Rating:
    if isinstance(value, Rating):
        return value
    if isinstance(value, str):
        try:
            return Rating(value.strip().lower())
        except ValueError:
            pass
    valid = ", ".join(r.value for r in Rating)
    raise InvalidInput(f"Invalid {field} {value!r}. Must be one of: {valid}.")


def rating_from_number(value: Any, field: str = "rating") -> Rating:
    # bool is an int subclass and never a valid rating
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"Invalid {field} {value!r}. Must be an integer between 1 and 5.")
    try:
        return Rating.from_number(value)
    except ValueError as exc:
        raise InvalidInput(
            f"Invalid {field} {value!r}. Must be an integer between 1 and 5."
        ) from exc


def level_for(score_value: int, thresholds: Thresholds = THREAT_THRESHOLDS) -> RiskLevel:
    if isinstance(score_value, bool) or not isinstance(score_value, int):
        raise InvalidInput(f"Invalid risk score {score_value!r}. Must be an integer.")
    if not _MIN_SCORE <= score_value <= _MAX_SCORE:
        raise InvalidInput(
            f"Invalid risk score {score_value}. Must be between {_MIN_SCORE} and {_MAX_SCORE}."
        )
    return resolve_thresholds(thresholds).level_for(score_value)


def score(
    likelihood: Union[str, Rating],
    impact: Union[str, Rating],
    thresholds: Thresholds = THREAT_THRESHOLDS,
) -> RiskScore:
    table = resolve_thresholds(thresholds)
    likelihood_rating = parse_rating(likelihood, "likelihood")
    impact_rating = parse_rating(impact, "impact")
    value = likelihood_rating.number * impact_rating.number
    return RiskScore(score=value, level=table.level_for(value))


def score_values(
    likelihood: int,
    impact: int,
    thresholds: Thresholds = THREAT_THRESHOLDS,
) -> RiskScore:
    return score(
        rating_from_number(likelihood, "likelihood"),
        rating_from_number(impact, "impact"),
        thresholds,
    )
