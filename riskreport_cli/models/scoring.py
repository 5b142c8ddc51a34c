from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple


class Rating(str, Enum):
    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"

    @property
    def number(self) -> int:
        return _RATING_NUMBERS[self]

    @property
    def label(self) -> str:
        return _RATING_LABELS[self]

    @classmethod
    def from_number(cls, number: int) -> "Rating":
        for rating, value in _RATING_NUMBERS.items():
            if value == number:
                return rating
        raise ValueError(f"{number!r} is not a rating between 1 and 5")


_RATING_NUMBERS: Dict[Rating, int] = {
    Rating.VERY_LOW: 1,
    Rating.LOW: 2,
    Rating.MEDIUM: 3,
    Rating.HIGH: 4,
    Rating.VERY_HIGH: 5,
}

_RATING_LABELS: Dict[Rating, str] = {
    Rating.VERY_LOW: "Very Low",
    Rating.LOW: "Low",
    Rating.MEDIUM: "Medium",
    Rating.HIGH: "High",
    Rating.VERY_HIGH: "Very High",
}


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: str) -> "RiskLevel":
        return cls(value.strip().lower())


# Highest first; used wherever levels are listed.
RISK_LEVEL_ORDER: List[RiskLevel] = [
    RiskLevel.CRITICAL,
    RiskLevel.HIGH,
    RiskLevel.MEDIUM,
    RiskLevel.LOW,
]


@dataclass(frozen=True)
class ThresholdTable:
    """Inclusive lower bounds of each level; anything below ``medium_min`` is low."""

    name: str
    critical_min: int
    high_min: int
    medium_min: int

    def level_for(self, score: int) -> RiskLevel:
        if score >= self.critical_min:
            return RiskLevel.CRITICAL
        if score >= self.high_min:
            return RiskLevel.HIGH
        if score >= self.medium_min:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def score_range(self, level: RiskLevel) -> Tuple[int, int]:
        if level is RiskLevel.CRITICAL:
            return (self.critical_min, 25)
        if level is RiskLevel.HIGH:
            return (self.high_min, self.critical_min - 1)
        if level is RiskLevel.MEDIUM:
            return (self.medium_min, self.high_min - 1)
        return (1, self.medium_min - 1)


THREAT_THRESHOLDS = ThresholdTable(name="threat", critical_min=20, high_min=12, medium_min=6)
REGISTER_THRESHOLDS = ThresholdTable(name="register", critical_min=17, high_min=10, medium_min=5)

THRESHOLD_PRESETS: Dict[str, ThresholdTable] = {
    THREAT_THRESHOLDS.name: THREAT_THRESHOLDS,
    REGISTER_THRESHOLDS.name: REGISTER_THRESHOLDS,
}


@dataclass(frozen=True)
class RiskScore:
    score: int
    level: RiskLevel
