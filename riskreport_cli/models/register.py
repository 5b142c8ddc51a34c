from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from riskreport_cli.models.assessments import ImplementationStatus
from riskreport_cli.models.scoring import RiskLevel


class MitigationState(str, Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    DEFERRED = "Deferred"


MITIGATION_STATE_ORDER: List[MitigationState] = list(MitigationState)
# Terminal for display only; entries are kept indefinitely.
TERMINAL_STATES = frozenset({MitigationState.COMPLETED, MitigationState.DEFERRED})


@dataclass
class RiskRegisterEntry:
    id: int
    risk_id: str
    description: str
    likelihood: Optional[int] = None
    impact: Optional[int] = None
    risk_score: Optional[int] = None
    risk_level: Optional[RiskLevel] = None
    assessment_id: Optional[int] = None
    control_id: Optional[int] = None
    subcategory_id: str = ""
    category: str = ""
    mitigation_strategy: str = ""
    mitigation_owner: str = ""
    mitigation_deadline: Optional[date] = None
    status: MitigationState = MitigationState.NOT_STARTED
    residual_likelihood: Optional[int] = None
    residual_impact: Optional[int] = None
    residual_score: Optional[int] = None
    residual_level: Optional[RiskLevel] = None
    notes: str = ""
    comments: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Bumped by storage on every write; used for optimistic concurrency.
    version: int = 0

    @property
    def is_open(self) -> bool:
        return self.status is not MitigationState.COMPLETED


@dataclass
class RiskRegisterUpdate:
    """Partial update of a register entry.

    ``None`` means "leave unchanged" for every field. Score and level are not
    part of the update: they are recomputed when likelihood and impact (or
    the residual pair) are both known after the merge.
    """

    description: Optional[str] = None
    category: Optional[str] = None
    likelihood: Optional[int] = None
    impact: Optional[int] = None
    residual_likelihood: Optional[int] = None
    residual_impact: Optional[int] = None
    mitigation_strategy: Optional[str] = None
    mitigation_owner: Optional[str] = None
    mitigation_deadline: Optional[date] = None
    status: Optional[MitigationState] = None
    notes: Optional[str] = None


@dataclass
class NewRiskEntry:
    description: str
    likelihood: int
    impact: int
    assessment_id: Optional[int] = None
    control_id: Optional[int] = None
    subcategory_id: str = ""
    category: str = ""
    mitigation_strategy: str = ""
    mitigation_owner: str = ""
    mitigation_deadline: Optional[date] = None
    status: MitigationState = MitigationState.NOT_STARTED
    notes: str = ""
    comments: str = ""


@dataclass(frozen=True)
class ControlStatusChanged:
    assessment_id: int
    control_id: int
    previous_status: Optional[ImplementationStatus]
    new_status: ImplementationStatus
    notes: str = ""
    comments: str = ""
    assessed_by: Optional[str] = None


@dataclass
class LifecycleOutcome:
    created: Optional[RiskRegisterEntry] = None
    mitigated: List[RiskRegisterEntry] = field(default_factory=list)

    @property
    def created_risk_id(self) -> Optional[str]:
        return self.created.risk_id if self.created else None

    @property
    def mitigated_risk_ids(self) -> List[str]:
        return [entry.risk_id for entry in self.mitigated]


@dataclass(frozen=True)
class AutoRiskDefaults:
    """Seed values for entries created from at-risk controls."""

    likelihood: int = 4
    impact: int = 4
    category: str = "Compliance"
