from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from riskreport_cli.models.scoring import Rating, RiskLevel


class StrideCategory(str, Enum):
    SPOOFING = "S"
    TAMPERING = "T"
    REPUDIATION = "R"
    INFORMATION_DISCLOSURE = "I"
    DENIAL_OF_SERVICE = "D"
    ELEVATION_OF_PRIVILEGE = "E"

    @property
    def label(self) -> str:
        return STRIDE_NAMES[self]


STRIDE_NAMES: Dict[StrideCategory, str] = {
    StrideCategory.SPOOFING: "Spoofing",
    StrideCategory.TAMPERING: "Tampering",
    StrideCategory.REPUDIATION: "Repudiation",
    StrideCategory.INFORMATION_DISCLOSURE: "Information Disclosure",
    StrideCategory.DENIAL_OF_SERVICE: "Denial of Service",
    StrideCategory.ELEVATION_OF_PRIVILEGE: "Elevation of Privilege",
}

STRIDE_ORDER: List[StrideCategory] = list(StrideCategory)


class ThreatStatus(str, Enum):
    IDENTIFIED = "identified"
    ANALYZING = "analyzing"
    MITIGATING = "mitigating"
    MITIGATED = "mitigated"
    ACCEPTED = "accepted"
    TRANSFERRED = "transferred"


THREAT_STATUS_ORDER: List[ThreatStatus] = list(ThreatStatus)
TERMINAL_THREAT_STATUSES = frozenset({ThreatStatus.MITIGATED, ThreatStatus.ACCEPTED})
EARLY_THREAT_STATUSES = frozenset({ThreatStatus.IDENTIFIED, ThreatStatus.ANALYZING})


class MitigationStrategy(str, Enum):
    ELIMINATE = "eliminate"
    REDUCE = "reduce"
    TRANSFER = "transfer"
    ACCEPT = "accept"


class MitigationStatus(str, Enum):
    PROPOSED = "proposed"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    IMPLEMENTED = "implemented"
    VERIFIED = "verified"
    REJECTED = "rejected"


MITIGATION_STATUS_ORDER: List[MitigationStatus] = list(MitigationStatus)
EFFECTIVE_MITIGATION_STATUSES = frozenset({
    MitigationStatus.IMPLEMENTED,
    MitigationStatus.VERIFIED,
})
PENDING_MITIGATION_STATUSES = frozenset({
    MitigationStatus.PROPOSED,
    MitigationStatus.APPROVED,
})
# Not tracked for due dates once reached.
CLOSED_MITIGATION_STATUSES = frozenset({
    MitigationStatus.IMPLEMENTED,
    MitigationStatus.VERIFIED,
    MitigationStatus.REJECTED,
})


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_ORDER: List[Priority] = list(Priority)


class EffectivenessRating(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXCELLENT = "excellent"


EFFECTIVENESS_VALUES: Dict[EffectivenessRating, int] = {
    EffectivenessRating.LOW: 1,
    EffectivenessRating.MEDIUM: 2,
    EffectivenessRating.HIGH: 3,
    EffectivenessRating.EXCELLENT: 4,
}


@dataclass
class ThreatModel:
    id: int
    name: str
    system_name: str = ""
    organization_id: Optional[int] = None
    status: str = "draft"
    risk_score: Optional[float] = None


@dataclass
class Asset:
    id: int
    name: str
    threat_model_id: Optional[int] = None
    asset_type: str = ""
    criticality: str = ""


@dataclass
class Threat:
    id: int
    threat_model_id: int
    title: str
    stride_category: StrideCategory
    likelihood: Rating
    impact: Rating
    risk_score: int
    risk_level: RiskLevel
    status: ThreatStatus = ThreatStatus.IDENTIFIED
    description: str = ""
    asset_id: Optional[int] = None
    asset_name: str = ""
    identified_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def recency(self) -> float:
        moment = self.updated_at or self.identified_at
        return moment.timestamp() if moment else 0.0


@dataclass
class Mitigation:
    id: int
    threat_id: int
    strategy: MitigationStrategy
    description: str = ""
    status: MitigationStatus = MitigationStatus.PROPOSED
    priority: Priority = Priority.MEDIUM
    effectiveness: Optional[EffectivenessRating] = None
    cost_estimate: Optional[float] = None
    assigned_to: str = ""
    target_date: Optional[date] = None
    completed_at: Optional[datetime] = None


@dataclass
class ThreatUpdate:
    """Partial update; ``None`` leaves a field unchanged.

    Score and level are not settable: they are recomputed whenever
    likelihood or impact is supplied, reading the other from storage.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    likelihood: Optional[Rating] = None
    impact: Optional[Rating] = None
    status: Optional[ThreatStatus] = None
    asset_id: Optional[int] = None
    stride_category: Optional[StrideCategory] = None


@dataclass
class MitigationUpdate:
    """Partial update; ``None`` leaves a field unchanged."""

    description: Optional[str] = None
    strategy: Optional[MitigationStrategy] = None
    status: Optional[MitigationStatus] = None
    priority: Optional[Priority] = None
    effectiveness: Optional[EffectivenessRating] = None
    cost_estimate: Optional[float] = None
    assigned_to: Optional[str] = None
    target_date: Optional[date] = None

