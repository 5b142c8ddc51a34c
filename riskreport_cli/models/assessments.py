from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class ImplementationStatus(str, Enum):
    NOT_IMPLEMENTED = "not_implemented"
    PARTIALLY_IMPLEMENTED = "partially_implemented"
    LARGELY_IMPLEMENTED = "largely_implemented"
    FULLY_IMPLEMENTED = "fully_implemented"
    NOT_APPLICABLE = "not_applicable"
    AT_RISK = "at_risk"


IMPLEMENTATION_STATUS_ORDER: List[ImplementationStatus] = [
    ImplementationStatus.FULLY_IMPLEMENTED,
    ImplementationStatus.LARGELY_IMPLEMENTED,
    ImplementationStatus.PARTIALLY_IMPLEMENTED,
    ImplementationStatus.NOT_IMPLEMENTED,
    ImplementationStatus.AT_RISK,
    ImplementationStatus.NOT_APPLICABLE,
]

IMPLEMENTED_STATUSES = frozenset({
    ImplementationStatus.FULLY_IMPLEMENTED,
    ImplementationStatus.LARGELY_IMPLEMENTED,
})


class MaturityLevel(str, Enum):
    INITIAL = "initial"
    MANAGED = "managed"
    DEFINED = "defined"
    QUANTITATIVELY_MANAGED = "quantitatively_managed"
    OPTIMIZING = "optimizing"


class NistFunction(str, Enum):
    IDENTIFY = "ID"
    PROTECT = "PR"
    DETECT = "DE"
    RESPOND = "RS"
    RECOVER = "RC"

    @property
    def label(self) -> str:
        return NIST_FUNCTION_NAMES[self]

    @classmethod
    def from_control_code(cls, code: str) -> Optional["NistFunction"]:
        prefix = (code or "")[:2].upper()
        for function in cls:
            if function.value == prefix:
                return function
        return None


NIST_FUNCTION_NAMES: Dict[NistFunction, str] = {
    NistFunction.IDENTIFY: "Identify",
    NistFunction.PROTECT: "Protect",
    NistFunction.DETECT: "Detect",
    NistFunction.RESPOND: "Respond",
    NistFunction.RECOVER: "Recover",
}

# Enum definition order is the display order.
NIST_FUNCTION_ORDER: List[NistFunction] = list(NistFunction)


@dataclass
class Organization:
    id: int
    name: str


@dataclass
class Assessment:
    id: int
    name: str
    organization_id: Optional[int] = None
    status: str = "draft"
    framework_version: str = "NIST CSF v1.1"


@dataclass
class Control:
    id: int
    code: str
    name: str
    description: str = ""
    category_name: str = ""

    @property
    def function(self) -> Optional[NistFunction]:
        return NistFunction.from_control_code(self.code)


@dataclass
class ControlAssessment:
    """One control's assessed state within one assessment, keyed by (assessment_id, control_id)."""

    assessment_id: int
    control_id: int
    status: ImplementationStatus
    maturity_level: Optional[MaturityLevel] = None
    compliance_score: Optional[float] = None
    notes: str = ""
    recommendations: str = ""
    assessed_by: Optional[str] = None
    assessed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    control_code: str = ""
    control_name: str = ""
    control_description: str = ""
    category_name: str = ""
    evidence_count: int = 0

    @property
    def function(self) -> Optional[NistFunction]:
        return NistFunction.from_control_code(self.control_code)

    @property
    def recency(self) -> float:
        moment = self.updated_at or self.assessed_at
        return moment.timestamp() if moment else 0.0
