"""Read-only rollups over assessment, threat and register records.

Every function tolerates empty input: percentages fall back to 0 and
averages to ``None`` ("no data"). Unknown subject ids surface as
``NotFound`` from the repository lookups.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from riskreport_cli.models.assessments import (
    IMPLEMENTATION_STATUS_ORDER,
    IMPLEMENTED_STATUSES,
    NIST_FUNCTION_ORDER,
    Assessment,
    ControlAssessment,
    MaturityLevel,
)
from riskreport_cli.models.register import (
    MITIGATION_STATE_ORDER,
    TERMINAL_STATES,
    RiskRegisterEntry,
)
from riskreport_cli.models.scoring import RISK_LEVEL_ORDER, THREAT_THRESHOLDS
from riskreport_cli.models.statistics import (
    AssessmentStatistics,
    DueSummary,
    FunctionProgress,
    GroupCount,
    MatrixCount,
    ThreatModelStatistics,
)
from riskreport_cli.models.threats import (
    CLOSED_MITIGATION_STATUSES,
    EFFECTIVENESS_VALUES,
    MITIGATION_STATUS_ORDER,
    PRIORITY_ORDER,
    STRIDE_ORDER,
    TERMINAL_THREAT_STATUSES,
    THREAT_STATUS_ORDER,
    Asset,
    Mitigation,
    MitigationStatus,
    Threat,
    ThreatModel,
)
from riskreport_cli.storage.base import Repository

logger = logging.getLogger(__name__)

DUE_SOON_DAYS = 30
OVERDUE = "overdue"
DUE_SOON = "due_soon"

T = TypeVar("T")


def round_half_up(value: float, places: int = 0) -> float:
    """Round like a spreadsheet does: 2.5 -> 3, not 2."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _percentage(part: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(round_half_up(part / total * 100))


def completion_percentage(assessed: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round_half_up(assessed / total * 100, 2)


def implementation_rate(entries: Sequence[ControlAssessment]) -> int:
    implemented = sum(1 for e in entries if e.status in IMPLEMENTED_STATUSES)
    return _percentage(implemented, len(entries))


def mitigation_coverage(threats: Sequence[Threat]) -> int:
    terminal = sum(1 for t in threats if t.status in TERMINAL_THREAT_STATUSES)
    return _percentage(terminal, len(threats))


def effectiveness_average(mitigations: Iterable[Mitigation]) -> Optional[float]:
    values = [EFFECTIVENESS_VALUES[m.effectiveness] for m in mitigations if m.effectiveness]
    if not values:
        return None
    return round_half_up(sum(values) / len(values), 2)


def _average(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return round_half_up(sum(values) / len(values), 2)


def grouped_counts(
    items: Iterable[T],
    key: Callable[[T], object],
    order: Sequence,
    label: Callable[[object], str] = lambda k: str(getattr(k, "value", k)),
) -> List[GroupCount]:
    """Count *items* per key, emitting every key of *order* in that order."""
    counts = Counter(key(item) for item in items)
    return [
        GroupCount(key=str(getattr(k, "value", k)), label=label(k), count=counts.get(k, 0))
        for k in order
    ]


def _status_label(value: object) -> str:
    return str(getattr(value, "value", value)).replace("_", " ").title()


def status_breakdown(threats: Sequence[Threat]) -> List[GroupCount]:
    return grouped_counts(threats, lambda t: t.status, THREAT_STATUS_ORDER, _status_label)


def priority_breakdown(mitigations: Sequence[Mitigation]) -> List[GroupCount]:
    return grouped_counts(mitigations, lambda m: m.priority, PRIORITY_ORDER, _status_label)


def implementation_breakdown(entries: Sequence[ControlAssessment]) -> List[GroupCount]:
    return grouped_counts(entries, lambda e: e.status, IMPLEMENTATION_STATUS_ORDER, _status_label)


def level_breakdown(scores: Iterable[int]) -> List[GroupCount]:
    levels = [THREAT_THRESHOLDS.level_for(s) for s in scores]
    return grouped_counts(levels, lambda level: level, RISK_LEVEL_ORDER, lambda k: k.label)


def stride_breakdown(threats: Sequence[Threat]) -> List[GroupCount]:
    groups: List[GroupCount] = []
    for category in STRIDE_ORDER:
        members = [t.risk_score for t in threats if t.stride_category == category]
        groups.append(GroupCount(
            key=category.value,
            label=category.label,
            count=len(members),
            high_risk=sum(1 for s in members if s >= THREAT_THRESHOLDS.high_min),
            average_score=_average(members),
        ))
    return groups


def function_breakdown(entries: Sequence[ControlAssessment]) -> List[FunctionProgress]:
    rows: List[FunctionProgress] = []
    for function in NIST_FUNCTION_ORDER:
        members = [e for e in entries if e.function == function]
        implemented = sum(1 for e in members if e.status in IMPLEMENTED_STATUSES)
        rows.append(FunctionProgress(
            function=function.value,
            label=function.label,
            assessed=len(members),
            implemented=implemented,
            rate=_percentage(implemented, len(members)),
        ))
    return rows


def _today(now: Optional[datetime]) -> date:
    moment = now or datetime.now(timezone.utc)
    return moment.date()


def due_state(target: Optional[date], terminal: bool, now: Optional[datetime] = None) -> Optional[str]:
    if target is None or terminal:
        return None
    remaining = (target - _today(now)).days
    if remaining < 0:
        return OVERDUE
    if remaining <= DUE_SOON_DAYS:
        return DUE_SOON
    return None


def due_summary(
    items: Iterable[Tuple[Optional[date], bool]],
    now: Optional[datetime] = None,
) -> DueSummary:
    summary = DueSummary()
    for target, terminal in items:
        state = due_state(target, terminal, now)
        if state == OVERDUE:
            summary.overdue += 1
        elif state == DUE_SOON:
            summary.due_soon += 1
    return summary


def summarize_assessment(
    assessment: Assessment,
    total_controls: int,
    entries: Sequence[ControlAssessment],
    register: Sequence[RiskRegisterEntry] = (),
    now: Optional[datetime] = None,
) -> AssessmentStatistics:
    assessed = len({e.control_id for e in entries})
    scores = [e.compliance_score for e in entries if e.compliance_score is not None]
    with_evidence = [e for e in entries if e.evidence_count > 0]
    maturity = grouped_counts(
        [e for e in entries if e.maturity_level],
        lambda e: e.maturity_level,
        list(MaturityLevel),
        _status_label,
    )
    return AssessmentStatistics(
        assessment_id=assessment.id,
        total_controls=total_controls,
        assessed_controls=assessed,
        completion_percentage=completion_percentage(assessed, total_controls),
        implementation_rate=implementation_rate(entries),
        status_breakdown=implementation_breakdown(entries),
        maturity_breakdown=maturity,
        average_compliance_score=_average(scores),
        function_breakdown=function_breakdown(entries),
        controls_with_evidence=len(with_evidence),
        evidence_files=sum(e.evidence_count for e in with_evidence),
        evidence_coverage=_percentage(len(with_evidence), len(entries)),
        register_total=len(register),
        register_open=sum(1 for r in register if r.is_open),
        register_levels=grouped_counts(
            [r for r in register if r.risk_level],
            lambda r: r.risk_level,
            RISK_LEVEL_ORDER,
            lambda k: k.label,
        ),
        register_statuses=grouped_counts(
            register, lambda r: r.status, MITIGATION_STATE_ORDER, lambda k: k.value,
        ),
        register_due=due_summary(
            ((r.mitigation_deadline, r.status in TERMINAL_STATES) for r in register), now,
        ),
    )


def summarize_threat_model(
    model: ThreatModel,
    threats: Sequence[Threat],
    mitigations: Dict[int, List[Mitigation]],
    assets: Sequence[Asset] = (),
    now: Optional[datetime] = None,
) -> ThreatModelStatistics:
    all_mitigations = [m for t in threats for m in mitigations.get(t.id, [])]
    scores = [t.risk_score for t in threats]
    threatened_assets = {t.asset_id for t in threats if t.asset_id is not None}
    assets_with_threats = sum(1 for a in assets if a.id in threatened_assets)
    cells = Counter((t.likelihood.number, t.impact.number) for t in threats)
    matrix = [
        MatrixCount(likelihood=l, impact=i, count=cells[(l, i)])
        for l in range(5, 0, -1)
        for i in range(1, 6)
        if cells.get((l, i))
    ]
    statuses = Counter(m.status for m in all_mitigations)
    return ThreatModelStatistics(
        threat_model_id=model.id,
        total_threats=len(threats),
        level_breakdown=level_breakdown(scores),
        average_risk_score=_average(scores),
        max_risk_score=max(scores) if scores else None,
        min_risk_score=min(scores) if scores else None,
        status_breakdown=status_breakdown(threats),
        stride_breakdown=stride_breakdown(threats),
        total_mitigations=len(all_mitigations),
        mitigation_status_breakdown=grouped_counts(
            all_mitigations, lambda m: m.status, MITIGATION_STATUS_ORDER, _status_label,
        ),
        priority_breakdown=priority_breakdown(all_mitigations),
        pending_mitigations=statuses[MitigationStatus.PROPOSED] + statuses[MitigationStatus.APPROVED],
        in_progress_mitigations=statuses[MitigationStatus.IN_PROGRESS],
        threats_with_mitigations=sum(1 for t in threats if mitigations.get(t.id)),
        effectiveness_average=effectiveness_average(all_mitigations),
        total_assets=len(assets),
        assets_with_threats=assets_with_threats,
        asset_coverage=_percentage(assets_with_threats, len(assets)),
        matrix_distribution=matrix,
        mitigation_coverage=mitigation_coverage(threats),
        mitigations_due=due_summary(
            ((m.target_date, m.status in CLOSED_MITIGATION_STATUSES) for m in all_mitigations), now,
        ),
    )


def assessment_statistics(
    repo: Repository,
    assessment_id: int,
    now: Optional[datetime] = None,
) -> AssessmentStatistics:
    assessment = repo.get_assessment(assessment_id)
    entries = repo.list_control_entries(assessment_id)
    register = repo.list_register_entries(assessment_id=assessment_id)
    logger.debug("Aggregating %d control entries for assessment %s", len(entries), assessment_id)
    return summarize_assessment(assessment, repo.count_catalogue_controls(), entries, register, now)


def threat_model_statistics(
    repo: Repository,
    threat_model_id: int,
    now: Optional[datetime] = None,
) -> ThreatModelStatistics:
    model = repo.get_threat_model(threat_model_id)
    threats = repo.list_threats(threat_model_id)
    mitigations = repo.list_model_mitigations(threat_model_id)
    assets = repo.list_assets(threat_model_id)
    logger.debug("Aggregating %d threats for threat model %s", len(threats), threat_model_id)
    return summarize_threat_model(model, threats, mitigations, assets, now)
