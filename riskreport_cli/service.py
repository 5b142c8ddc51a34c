"""Entry points used by the CLI and by embedding applications."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, Union

from riskreport_cli.exceptions import InvalidInput, RiskReportError
from riskreport_cli.models.assessments import ControlAssessment, ImplementationStatus, MaturityLevel
from riskreport_cli.models.register import LifecycleOutcome
from riskreport_cli.models.reports import ReportDocument, ReportFormat, ReportKind
from riskreport_cli.models.scoring import THREAT_THRESHOLDS, RiskScore
from riskreport_cli.models.statistics import AssessmentStatistics, ThreatModelStatistics
from riskreport_cli.models.threats import (
    EFFECTIVE_MITIGATION_STATUSES,
    Mitigation,
    MitigationUpdate,
    Threat,
    ThreatUpdate,
)
from riskreport_cli.register import RiskRegisterManager, control_status_event
from riskreport_cli.reports.base import BaseReportGenerator
from riskreport_cli.reports.compliance import ComplianceReportGenerator
from riskreport_cli.reports.threats import ThreatReportGenerator
from riskreport_cli.scoring import Thresholds, parse_rating, score
from riskreport_cli.statistics import assessment_statistics, threat_model_statistics
from riskreport_cli.storage.base import Repository

logger = logging.getLogger(__name__)

GENERATORS: Dict[ReportKind, Type[BaseReportGenerator]] = {
    ReportKind.ASSESSMENT: ComplianceReportGenerator,
    ReportKind.THREAT_MODEL: ThreatReportGenerator,
}


@dataclass
class ControlStatusResult:
    entry: ControlAssessment
    created_risk_id: Optional[str] = None
    mitigated_risk_ids: List[str] = field(default_factory=list)


def parse_kind(kind: Union[str, ReportKind]) -> ReportKind:
    try:
        return ReportKind(kind)
    except ValueError as exc:
        raise InvalidInput(f"Unknown subject kind '{kind}'. Use assessment or threat_model.") from exc


def _enum(enum_type: Any, value: Any, name: str) -> Any:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value).strip().lower())
    except ValueError as exc:
        valid = ", ".join(m.value for m in enum_type)
        raise InvalidInput(f"Invalid {name} '{value}'. Must be one of: {valid}.") from exc


def compute_risk_score(likelihood: Any, impact: Any, thresholds: Thresholds = "threat") -> RiskScore:
    return score(likelihood, impact, thresholds)


def compute_statistics(
    repo: Repository,
    subject_id: int,
    kind: Union[str, ReportKind],
    now: Optional[datetime] = None,
) -> Union[AssessmentStatistics, ThreatModelStatistics]:
    if parse_kind(kind) is ReportKind.ASSESSMENT:
        return assessment_statistics(repo, subject_id, now)
    return threat_model_statistics(repo, subject_id, now)


def apply_control_status(
    repo: Repository,
    assessment_id: int,
    control_id: int,
    new_status: Union[str, ImplementationStatus],
    *,
    notes: Optional[str] = None,
    recommendations: Optional[str] = None,
    maturity_level: Union[None, str, MaturityLevel] = None,
    compliance_score: Optional[float] = None,
    assessed_by: Optional[str] = None,
    manager: Optional[RiskRegisterManager] = None,
    now: Optional[datetime] = None,
) -> ControlStatusResult:
    """Upsert a control's assessed status and keep the risk register in step.

    The previous status is read, the register updated and the entry written
    while holding the (assessment, control) lock, so concurrent changes to the
    same control are serialized. The register runs first: a failed lifecycle
    step leaves the stored status untouched and the call can be retried. An
    entry opened for a write that then fails is removed again.

    ``None`` for ``notes``, ``recommendations`` or ``assessed_by`` keeps the
    stored text; an empty string clears it.
    """
    status = _enum(ImplementationStatus, new_status, "implementation status")
    maturity = _enum(MaturityLevel, maturity_level, "maturity level") if maturity_level else None
    if compliance_score is not None and not 0 <= compliance_score <= 100:
        raise InvalidInput(f"Compliance score must be between 0 and 100, got {compliance_score}.")
    manager = manager or RiskRegisterManager(repo)
    moment = now or datetime.now(timezone.utc)

    with manager.pair_lock(assessment_id, control_id):
        current = repo.get_control_entry(assessment_id, control_id)
        previous = current.status if current else None
        if current is None:
            entry = ControlAssessment(
                assessment_id=assessment_id,
                control_id=control_id,
                status=status,
                assessed_at=moment,
            )
        else:
            entry = replace(current, status=status)
        entry = replace(
            entry,
            maturity_level=maturity if maturity is not None else entry.maturity_level,
            compliance_score=compliance_score if compliance_score is not None else entry.compliance_score,
            notes=notes if notes is not None else entry.notes,
            recommendations=recommendations if recommendations is not None else entry.recommendations,
            assessed_by=assessed_by if assessed_by is not None else entry.assessed_by,
            updated_at=moment,
        )

        event = control_status_event(
            assessment_id, control_id, previous, status,
            notes=notes or "", comments=recommendations or "", assessed_by=assessed_by,
        )
        outcome = manager.handle(event) if event is not None else LifecycleOutcome()
        try:
            saved = repo.save_control_entry(entry)
        except RiskReportError:
            if outcome.created is not None:
                repo.delete_register_entry(outcome.created.id, version=outcome.created.version)
                logger.warning("Removed risk %s after failed control update", outcome.created.risk_id)
            raise
        logger.info(
            "Control %s in assessment %s: %s -> %s",
            control_id, assessment_id, previous.value if previous else "unassessed", status.value,
        )
    return ControlStatusResult(
        entry=saved,
        created_risk_id=outcome.created_risk_id,
        mitigated_risk_ids=outcome.mitigated_risk_ids,
    )


def generate_report(
    repo: Repository,
    subject_id: int,
    kind: Union[str, ReportKind],
    org_name: str,
    *,
    fmt: Union[str, ReportFormat] = ReportFormat.PDF,
    generated_by: str = "riskreport-cli",
    now: Optional[datetime] = None,
) -> ReportDocument:
    generator = GENERATORS[parse_kind(kind)](repo, generated_by=generated_by, now=now)
    return generator.generate(subject_id, org_name, fmt)


def update_threat(repo: Repository, threat_id: int, update: ThreatUpdate) -> Threat:
    """Apply a partial update; score and level always follow likelihood and impact.

    A missing likelihood or impact is taken from the stored threat, never from
    the caller's copy.
    """
    current = repo.get_threat(threat_id)
    changes = {f.name: getattr(update, f.name) for f in fields(update) if getattr(update, f.name) is not None}
    merged = replace(current, **changes)
    if update.likelihood is not None or update.impact is not None:
        likelihood = parse_rating(update.likelihood or current.likelihood, "likelihood")
        impact = parse_rating(update.impact or current.impact, "impact")
        result = score(likelihood, impact, THREAT_THRESHOLDS)
        merged = replace(merged, likelihood=likelihood, impact=impact,
                         risk_score=result.score, risk_level=result.level)
    saved = repo.save_threat(merged)
    logger.debug("Threat %s saved with score %s", threat_id, saved.risk_score)
    return saved


def update_mitigation(
    repo: Repository,
    mitigation_id: int,
    update: MitigationUpdate,
    now: Optional[datetime] = None,
) -> Mitigation:
    current = repo.get_mitigation(mitigation_id)
    changes = {f.name: getattr(update, f.name) for f in fields(update) if getattr(update, f.name) is not None}
    merged = replace(current, **changes)
    if (
        update.status in EFFECTIVE_MITIGATION_STATUSES
        and current.status not in EFFECTIVE_MITIGATION_STATUSES
    ):
        merged = replace(merged, completed_at=now or datetime.now(timezone.utc))
    return repo.save_mitigation(merged)
