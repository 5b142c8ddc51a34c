"""Conversion between wire/snapshot records (plain dicts) and model objects.

Field names follow the compliance platform's REST payloads, so the same
functions serve the API repository and local snapshots.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar

from riskreport_cli.exceptions import InvalidInput
from riskreport_cli.models.assessments import (
    Assessment,
    Control,
    ControlAssessment,
    ImplementationStatus,
    MaturityLevel,
    Organization,
)
from riskreport_cli.models.register import MitigationState, RiskRegisterEntry
from riskreport_cli.models.scoring import THREAT_THRESHOLDS, RiskLevel
from riskreport_cli.models.threats import (
    Asset,
    EffectivenessRating,
    Mitigation,
    MitigationStatus,
    MitigationStrategy,
    Priority,
    StrideCategory,
    Threat,
    ThreatModel,
    ThreatStatus,
)
from riskreport_cli.scoring import parse_rating

E = TypeVar("E", bound=Enum)


def _as_int(value: Any, name: str = "value") -> int:
    """Missing values read as 0; anything else must be a whole number."""
    if value is None or value == "":
        return 0
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise InvalidInput(f"Invalid {name} '{value}': expected an integer.")


def _opt_int(value: Any, name: str = "value") -> Optional[int]:
    if value is None or value == "":
        return None
    return _as_int(value, name)


def _opt_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _text(value: Any) -> str:
    return str(value or "")


def _datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise InvalidInput(f"Invalid timestamp {value!r}.") from exc


def _date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    moment = _datetime(str(value)[:10])
    return moment.date() if moment else None


def _enum(enum_type: Type[E], value: Any, field: str) -> E:
    try:
        return enum_type(value)
    except ValueError as exc:
        valid = ", ".join(str(member.value) for member in enum_type)
        raise InvalidInput(f"Invalid {field} {value!r}. Must be one of: {valid}.") from exc


def _opt_enum(enum_type: Type[E], value: Any, field: str) -> Optional[E]:
    if value is None or value == "":
        return None
    return _enum(enum_type, value, field)


def _level(value: Any) -> Optional[RiskLevel]:
    if not value:
        return None
    try:
        return RiskLevel.parse(str(value))
    except ValueError as exc:
        raise InvalidInput(f"Invalid risk level {value!r}.") from exc


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_organization(raw: Dict[str, Any]) -> Organization:
    return Organization(
        id=_as_int(raw.get("id"), "id"),
        name=_text(raw.get("name") or raw.get("organization_name")),
    )


def parse_assessment(raw: Dict[str, Any]) -> Assessment:
    return Assessment(
        id=_as_int(raw.get("id"), "id"),
        name=_text(raw.get("assessment_name") or raw.get("name")),
        organization_id=_opt_int(raw.get("organization_id"), "organization_id"),
        status=_text(raw.get("assessment_status") or raw.get("status") or "draft"),
        framework_version=_text(raw.get("framework_version") or "NIST CSF v1.1"),
    )


def parse_control(raw: Dict[str, Any]) -> Control:
    return Control(
        id=_as_int(raw.get("id"), "id"),
        code=_text(raw.get("control_code") or raw.get("code")),
        name=_text(raw.get("control_name") or raw.get("name")),
        description=_text(raw.get("description")),
        category_name=_text(raw.get("category_name")),
    )


def parse_control_entry(raw: Dict[str, Any]) -> ControlAssessment:
    return ControlAssessment(
        assessment_id=_as_int(raw.get("assessment_id"), "assessment_id"),
        control_id=_as_int(raw.get("control_id"), "control_id"),
        status=_enum(ImplementationStatus, raw.get("implementation_status"), "implementation status"),
        maturity_level=_opt_enum(MaturityLevel, raw.get("maturity_level"), "maturity level"),
        compliance_score=_opt_float(raw.get("compliance_score")),
        notes=_text(raw.get("notes")),
        recommendations=_text(raw.get("recommendations")),
        assessed_by=raw.get("assessed_by_name") or raw.get("assessed_by"),
        assessed_at=_datetime(raw.get("assessed_at")),
        updated_at=_datetime(raw.get("updated_at")),
        control_code=_text(raw.get("control_code")),
        control_name=_text(raw.get("control_name")),
        control_description=_text(raw.get("control_description")),
        category_name=_text(raw.get("category_name")),
        evidence_count=_as_int(raw.get("evidence_count"), "evidence_count"),
    )


def dump_control_entry(entry: ControlAssessment) -> Dict[str, Any]:
    return {
        "assessment_id": entry.assessment_id,
        "control_id": entry.control_id,
        "implementation_status": entry.status.value,
        "maturity_level": entry.maturity_level.value if entry.maturity_level else None,
        "compliance_score": entry.compliance_score,
        "notes": entry.notes,
        "recommendations": entry.recommendations,
        "assessed_by": entry.assessed_by,
        "assessed_at": entry.assessed_at.isoformat() if entry.assessed_at else None,
        "updated_at": entry.updated_at.isoformat() if entry.updated_at else None,
        "evidence_count": entry.evidence_count,
    }


def parse_threat_model(raw: Dict[str, Any]) -> ThreatModel:
    return ThreatModel(
        id=_as_int(raw.get("id"), "id"),
        name=_text(raw.get("model_name") or raw.get("name")),
        system_name=_text(raw.get("system_name")),
        organization_id=_opt_int(raw.get("organization_id"), "organization_id"),
        status=_text(raw.get("status") or "draft"),
        risk_score=_opt_float(raw.get("risk_score")),
    )


def parse_asset(raw: Dict[str, Any]) -> Asset:
    return Asset(
        id=_as_int(raw.get("id"), "id"),
        name=_text(raw.get("asset_name") or raw.get("name")),
        threat_model_id=_opt_int(raw.get("threat_model_id"), "threat_model_id"),
        asset_type=_text(raw.get("asset_type")),
        criticality=_text(raw.get("criticality")),
    )


def parse_threat(raw: Dict[str, Any]) -> Threat:
    likelihood = parse_rating(raw.get("likelihood"), "likelihood")
    impact = parse_rating(raw.get("impact"), "impact")
    stored_score = _opt_int(raw.get("risk_score"), "risk_score")
    score = stored_score if stored_score else likelihood.number * impact.number
    level = _level(raw.get("risk_level"))
    return Threat(
        id=_as_int(raw.get("id"), "id"),
        threat_model_id=_as_int(raw.get("threat_model_id"), "threat_model_id"),
        title=_text(raw.get("threat_title") or raw.get("title")),
        stride_category=_enum(
            StrideCategory, raw.get("stride_code") or raw.get("stride_category"), "STRIDE category",
        ),
        likelihood=likelihood,
        impact=impact,
        risk_score=score,
        risk_level=level or THREAT_THRESHOLDS.level_for(score),
        status=_enum(ThreatStatus, raw.get("status") or "identified", "threat status"),
        description=_text(raw.get("threat_description") or raw.get("description")),
        asset_id=_opt_int(raw.get("asset_id"), "asset_id"),
        asset_name=_text(raw.get("asset_name")),
        identified_at=_datetime(raw.get("identified_at")),
        updated_at=_datetime(raw.get("updated_at")),
    )


def dump_threat(threat: Threat) -> Dict[str, Any]:
    return {
        "id": threat.id,
        "threat_model_id": threat.threat_model_id,
        "asset_id": threat.asset_id,
        "stride_code": threat.stride_category.value,
        "threat_title": threat.title,
        "threat_description": threat.description,
        "likelihood": threat.likelihood.value,
        "impact": threat.impact.value,
        "risk_score": threat.risk_score,
        "risk_level": threat.risk_level.value,
        "status": threat.status.value,
    }


def parse_mitigation(raw: Dict[str, Any]) -> Mitigation:
    return Mitigation(
        id=_as_int(raw.get("id"), "id"),
        threat_id=_as_int(raw.get("threat_id"), "threat_id"),
        strategy=_enum(MitigationStrategy, raw.get("mitigation_strategy") or "reduce", "mitigation strategy"),
        description=_text(raw.get("mitigation_description") or raw.get("description")),
        status=_enum(
            MitigationStatus, raw.get("implementation_status") or "proposed", "implementation status",
        ),
        priority=_enum(Priority, raw.get("priority") or "medium", "priority"),
        effectiveness=_opt_enum(EffectivenessRating, raw.get("effectiveness_rating"), "effectiveness rating"),
        cost_estimate=_opt_float(raw.get("cost_estimate")),
        assigned_to=_text(raw.get("assigned_to_name") or raw.get("assigned_to")),
        target_date=_date(raw.get("implementation_date")),
        completed_at=_datetime(raw.get("completed_at")),
    )


def dump_mitigation(mitigation: Mitigation) -> Dict[str, Any]:
    return {
        "id": mitigation.id,
        "threat_id": mitigation.threat_id,
        "mitigation_strategy": mitigation.strategy.value,
        "mitigation_description": mitigation.description,
        "implementation_status": mitigation.status.value,
        "priority": mitigation.priority.value,
        "effectiveness_rating": mitigation.effectiveness.value if mitigation.effectiveness else None,
        "cost_estimate": mitigation.cost_estimate,
        "assigned_to": mitigation.assigned_to,
        "implementation_date": _iso(mitigation.target_date),
        "completed_at": mitigation.completed_at.isoformat() if mitigation.completed_at else None,
    }


def parse_register_entry(raw: Dict[str, Any]) -> RiskRegisterEntry:
    return RiskRegisterEntry(
        id=_as_int(raw.get("id"), "id"),
        risk_id=_text(raw.get("risk_id")),
        description=_text(raw.get("risk_description") or raw.get("description")),
        likelihood=_opt_int(raw.get("likelihood"), "likelihood"),
        impact=_opt_int(raw.get("impact"), "impact"),
        risk_score=_opt_int(raw.get("risk_score"), "risk_score"),
        risk_level=_level(raw.get("risk_level")),
        assessment_id=_opt_int(raw.get("assessment_id"), "assessment_id"),
        control_id=_opt_int(raw.get("control_id"), "control_id"),
        subcategory_id=_text(raw.get("subcategory_id")),
        category=_text(raw.get("risk_category") or raw.get("category")),
        mitigation_strategy=_text(raw.get("mitigation_strategy")),
        mitigation_owner=_text(raw.get("mitigation_owner")),
        mitigation_deadline=_date(raw.get("mitigation_deadline")),
        status=_enum(MitigationState, raw.get("mitigation_status") or "Not Started", "mitigation status"),
        residual_likelihood=_opt_int(raw.get("residual_likelihood"), "residual_likelihood"),
        residual_impact=_opt_int(raw.get("residual_impact"), "residual_impact"),
        residual_score=_opt_int(raw.get("residual_risk_score"), "residual_risk_score"),
        residual_level=_level(raw.get("residual_risk_level")),
        notes=_text(raw.get("notes")),
        comments=_text(raw.get("comments")),
        created_at=_datetime(raw.get("created_at")),
        updated_at=_datetime(raw.get("updated_at")),
        version=_as_int(raw.get("version"), "version"),
    )


def dump_register_entry(entry: RiskRegisterEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "risk_id": entry.risk_id,
        "assessment_id": entry.assessment_id,
        "control_id": entry.control_id,
        "subcategory_id": entry.subcategory_id,
        "risk_description": entry.description,
        "risk_category": entry.category,
        "likelihood": entry.likelihood,
        "impact": entry.impact,
        "risk_score": entry.risk_score,
        "risk_level": entry.risk_level.label if entry.risk_level else None,
        "mitigation_strategy": entry.mitigation_strategy,
        "mitigation_owner": entry.mitigation_owner,
        "mitigation_deadline": _iso(entry.mitigation_deadline),
        "mitigation_status": entry.status.value,
        "residual_likelihood": entry.residual_likelihood,
        "residual_impact": entry.residual_impact,
        "residual_risk_score": entry.residual_score,
        "residual_risk_level": entry.residual_level.label if entry.residual_level else None,
        "notes": entry.notes,
        "comments": entry.comments,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
        "updated_at": entry.updated_at.isoformat() if entry.updated_at else None,
        "version": entry.version,
    }
