from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class GroupCount:
    key: str
    label: str
    count: int = 0
    high_risk: Optional[int] = None
    average_score: Optional[float] = None


@dataclass
class FunctionProgress:
    function: str
    label: str
    assessed: int = 0
    implemented: int = 0
    rate: int = 0


@dataclass
class MatrixCount:
    likelihood: int
    impact: int
    count: int


@dataclass
class DueSummary:
    overdue: int = 0
    due_soon: int = 0


@dataclass
class AssessmentStatistics:
    assessment_id: int
    total_controls: int
    assessed_controls: int
    completion_percentage: float
    implementation_rate: int
    status_breakdown: List[GroupCount] = field(default_factory=list)
    maturity_breakdown: List[GroupCount] = field(default_factory=list)
    # None when no entry carries a compliance score
    average_compliance_score: Optional[float] = None
    function_breakdown: List[FunctionProgress] = field(default_factory=list)
    controls_with_evidence: int = 0
    evidence_files: int = 0
    evidence_coverage: int = 0
    register_total: int = 0
    register_open: int = 0
    register_levels: List[GroupCount] = field(default_factory=list)
    register_statuses: List[GroupCount] = field(default_factory=list)
    register_due: DueSummary = field(default_factory=DueSummary)


@dataclass
class ThreatModelStatistics:
    threat_model_id: int
    total_threats: int
    level_breakdown: List[GroupCount] = field(default_factory=list)
    average_risk_score: Optional[float] = None
    max_risk_score: Optional[int] = None
    min_risk_score: Optional[int] = None
    status_breakdown: List[GroupCount] = field(default_factory=list)
    stride_breakdown: List[GroupCount] = field(default_factory=list)
    total_mitigations: int = 0
    mitigation_status_breakdown: List[GroupCount] = field(default_factory=list)
    priority_breakdown: List[GroupCount] = field(default_factory=list)
    pending_mitigations: int = 0
    in_progress_mitigations: int = 0
    threats_with_mitigations: int = 0
    # None means "no data", never zero
    effectiveness_average: Optional[float] = None
    total_assets: int = 0
    assets_with_threats: int = 0
    asset_coverage: int = 0
    matrix_distribution: List[MatrixCount] = field(default_factory=list)
    mitigation_coverage: int = 0
    mitigations_due: DueSummary = field(default_factory=DueSummary)

    def level_count(self, level: str) -> int:
        for group in self.level_breakdown:
            if group.key == level:
                return group.count
        return 0
