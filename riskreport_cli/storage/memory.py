from __future__ import annotations

import copy
import json
import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from riskreport_cli.exceptions import ConflictWrite, InvalidInput, NotFound
from riskreport_cli.models.assessments import Assessment, Control, ControlAssessment, Organization
from riskreport_cli.models.register import RiskRegisterEntry
from riskreport_cli.models.threats import Asset, Mitigation, Threat, ThreatModel
from riskreport_cli.storage import records
from riskreport_cli.storage.base import Repository

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRepository(Repository):
    """Thread-safe repository over plain dicts.

    Returned objects are copies; mutate them and save them back.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.organizations: Dict[int, Organization] = {}
        self.assessments: Dict[int, Assessment] = {}
        self.controls: Dict[int, Control] = {}
        self.control_entries: Dict[Tuple[int, int], ControlAssessment] = {}
        self.threat_models: Dict[int, ThreatModel] = {}
        self.threats: Dict[int, Threat] = {}
        self.mitigations: Dict[int, Mitigation] = {}
        self.assets: Dict[int, Asset] = {}
        self.register: Dict[int, RiskRegisterEntry] = {}
        self._next_register_id = 1

    @classmethod
    def from_snapshot(cls, path: Path) -> "InMemoryRepository":
        """Load a YAML or JSON snapshot file (format chosen by extension)."""
        if not path.is_file():
            raise NotFound(f"Snapshot file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            try:
                if path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
            except (ValueError, yaml.YAMLError) as exc:
                raise InvalidInput(f"Cannot parse snapshot {path.name}: {exc}") from exc
        if not isinstance(data, dict):
            raise InvalidInput(f"Snapshot {path.name} must contain a mapping at the top level.")
        return cls.from_records(data)

    @classmethod
    def from_records(cls, data: Dict[str, Any]) -> "InMemoryRepository":
        repo = cls()
        for raw in data.get("organizations") or []:
            repo.add_organization(records.parse_organization(raw))
        for raw in data.get("controls") or []:
            repo.add_control(records.parse_control(raw))
        for raw in data.get("assessments") or []:
            repo.add_assessment(records.parse_assessment(raw))
        for raw in data.get("control_assessments") or []:
            repo.save_control_entry(records.parse_control_entry(raw))
        for raw in data.get("threat_models") or []:
            repo.add_threat_model(records.parse_threat_model(raw))
        for raw in data.get("assets") or []:
            repo.add_asset(records.parse_asset(raw))
        for raw in data.get("threats") or []:
            repo.save_threat(records.parse_threat(raw))
        for raw in data.get("mitigations") or []:
            repo.save_mitigation(records.parse_mitigation(raw))
        for raw in data.get("risk_register") or []:
            entry = records.parse_register_entry(raw)
            repo.register[entry.id] = entry
            repo._next_register_id = max(repo._next_register_id, entry.id + 1)
        logger.debug(
            "Loaded snapshot: %d assessments, %d threat models",
            len(repo.assessments), len(repo.threat_models),
        )
        return repo

    def to_records(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "organizations": [{"id": o.id, "name": o.name} for o in self.organizations.values()],
                "controls": [
                    {
                        "id": c.id,
                        "control_code": c.code,
                        "control_name": c.name,
                        "description": c.description,
                        "category_name": c.category_name,
                    }
                    for c in self.controls.values()
                ],
                "assessments": [
                    {
                        "id": a.id,
                        "assessment_name": a.name,
                        "organization_id": a.organization_id,
                        "assessment_status": a.status,
                        "framework_version": a.framework_version,
                    }
                    for a in self.assessments.values()
                ],
                "control_assessments": [
                    records.dump_control_entry(e) for e in self.control_entries.values()
                ],
                "threat_models": [
                    {
                        "id": m.id,
                        "model_name": m.name,
                        "system_name": m.system_name,
                        "organization_id": m.organization_id,
                        "status": m.status,
                    }
                    for m in self.threat_models.values()
                ],
                "assets": [
                    {
                        "id": a.id,
                        "threat_model_id": a.threat_model_id,
                        "asset_name": a.name,
                        "asset_type": a.asset_type,
                        "criticality": a.criticality,
                    }
                    for a in self.assets.values()
                ],
                "threats": [records.dump_threat(t) for t in self.threats.values()],
                "mitigations": [records.dump_mitigation(m) for m in self.mitigations.values()],
                "risk_register": [records.dump_register_entry(r) for r in self.register.values()],
            }

    def save_snapshot(self, path: Path) -> None:
        data = self.to_records()
        with open(path, "w", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.write("\n")
            else:
                yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

    def add_organization(self, organization: Organization) -> None:
        with self._lock:
            self.organizations[organization.id] = organization

    def add_assessment(self, assessment: Assessment) -> None:
        with self._lock:
            self.assessments[assessment.id] = assessment

    def add_control(self, control: Control) -> None:
        with self._lock:
            self.controls[control.id] = control

    def add_threat_model(self, model: ThreatModel) -> None:
        with self._lock:
            self.threat_models[model.id] = model

    def add_asset(self, asset: Asset) -> None:
        with self._lock:
            self.assets[asset.id] = asset

    @staticmethod
    def _lookup(table: Dict[Any, Any], key: Any, noun: str) -> Any:
        try:
            return copy.copy(table[key])
        except KeyError:
            raise NotFound(f"{noun} {key} not found.") from None

    def get_organization(self, organization_id: int) -> Organization:
        with self._lock:
            return self._lookup(self.organizations, organization_id, "Organization")

    def get_assessment(self, assessment_id: int) -> Assessment:
        with self._lock:
            return self._lookup(self.assessments, assessment_id, "Assessment")

    def count_catalogue_controls(self) -> int:
        with self._lock:
            return len(self.controls)

    def get_control(self, control_id: int) -> Control:
        with self._lock:
            return self._lookup(self.controls, control_id, "Control")

    def list_control_entries(self, assessment_id: int) -> List[ControlAssessment]:
        with self._lock:
            self._lookup(self.assessments, assessment_id, "Assessment")
            return [
                copy.copy(e) for (aid, _), e in sorted(self.control_entries.items()) if aid == assessment_id
            ]

    def get_control_entry(self, assessment_id: int, control_id: int) -> Optional[ControlAssessment]:
        with self._lock:
            entry = self.control_entries.get((assessment_id, control_id))
            return copy.copy(entry) if entry else None

    def save_control_entry(self, entry: ControlAssessment) -> ControlAssessment:
        with self._lock:
            self._lookup(self.assessments, entry.assessment_id, "Assessment")
            control = self._lookup(self.controls, entry.control_id, "Control")
            stored = replace(
                entry,
                control_code=entry.control_code or control.code,
                control_name=entry.control_name or control.name,
                control_description=entry.control_description or control.description,
                category_name=entry.category_name or control.category_name,
            )
            self.control_entries[(entry.assessment_id, entry.control_id)] = stored
            return copy.copy(stored)

    def get_threat_model(self, threat_model_id: int) -> ThreatModel:
        with self._lock:
            return self._lookup(self.threat_models, threat_model_id, "Threat model")

    def list_threats(self, threat_model_id: int) -> List[Threat]:
        with self._lock:
            self._lookup(self.threat_models, threat_model_id, "Threat model")
            return [copy.copy(t) for t in self.threats.values() if t.threat_model_id == threat_model_id]

    def get_threat(self, threat_id: int) -> Threat:
        with self._lock:
            return self._lookup(self.threats, threat_id, "Threat")

    def save_threat(self, threat: Threat) -> Threat:
        with self._lock:
            self._lookup(self.threat_models, threat.threat_model_id, "Threat model")
            if threat.asset_id is not None and threat.asset_id in self.assets and not threat.asset_name:
                threat = replace(threat, asset_name=self.assets[threat.asset_id].name)
            self.threats[threat.id] = threat
            return copy.copy(threat)

    def list_mitigations(self, threat_id: int) -> List[Mitigation]:
        with self._lock:
            self._lookup(self.threats, threat_id, "Threat")
            return [copy.copy(m) for m in self.mitigations.values() if m.threat_id == threat_id]

    def get_mitigation(self, mitigation_id: int) -> Mitigation:
        with self._lock:
            return self._lookup(self.mitigations, mitigation_id, "Mitigation")

    def save_mitigation(self, mitigation: Mitigation) -> Mitigation:
        with self._lock:
            self._lookup(self.threats, mitigation.threat_id, "Threat")
            self.mitigations[mitigation.id] = mitigation
            return copy.copy(mitigation)

    def list_assets(self, threat_model_id: int) -> List[Asset]:
        with self._lock:
            return [copy.copy(a) for a in self.assets.values() if a.threat_model_id == threat_model_id]

    def list_register_entries(
        self,
        assessment_id: Optional[int] = None,
        control_id: Optional[int] = None,
    ) -> List[RiskRegisterEntry]:
        with self._lock:
            return [
                copy.copy(r)
                for r in self.register.values()
                if (assessment_id is None or r.assessment_id == assessment_id)
                and (control_id is None or r.control_id == control_id)
            ]

    def get_register_entry(self, entry_id: int) -> RiskRegisterEntry:
        with self._lock:
            return self._lookup(self.register, entry_id, "Risk register entry")

    def create_register_entry(self, entry: RiskRegisterEntry) -> RiskRegisterEntry:
        with self._lock:
            if any(r.risk_id == entry.risk_id for r in self.register.values()):
                raise ConflictWrite(f"Risk id {entry.risk_id} already exists.")
            now = _now()
            stored = replace(
                entry,
                id=self._next_register_id,
                created_at=entry.created_at or now,
                updated_at=now,
                version=1,
            )
            self._next_register_id += 1
            self.register[stored.id] = stored
            return copy.copy(stored)

    def update_register_entry(self, entry: RiskRegisterEntry) -> RiskRegisterEntry:
        with self._lock:
            current = self._lookup(self.register, entry.id, "Risk register entry")
            if current.version != entry.version:
                raise ConflictWrite(
                    f"Risk register entry {entry.risk_id or entry.id} was modified concurrently "
                    f"(expected version {entry.version}, found {current.version})."
                )
            stored = replace(entry, updated_at=_now(), version=current.version + 1)
            self.register[stored.id] = stored
            return copy.copy(stored)

    def delete_register_entry(self, entry_id: int, version: Optional[int] = None) -> None:
        with self._lock:
            current = self._lookup(self.register, entry_id, "Risk register entry")
            if version is not None and current.version != version:
                raise ConflictWrite(
                    f"Risk register entry {current.risk_id} was modified concurrently."
                )
            del self.register[entry_id]
