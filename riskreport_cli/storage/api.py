from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from riskreport_cli.client import ComplianceApiClient, as_list
from riskreport_cli.exceptions import ApiError, ConflictWrite, NotFound
from riskreport_cli.models.assessments import Assessment, Control, ControlAssessment, Organization
from riskreport_cli.models.register import RiskRegisterEntry
from riskreport_cli.models.threats import Asset, Mitigation, Threat, ThreatModel
from riskreport_cli.storage import records
from riskreport_cli.storage.base import Repository

logger = logging.getLogger(__name__)


def _record(value: Any, noun: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ApiError(f"Unexpected response for {noun}: expected an object.")
    return value


class ApiRepository(Repository):
    """Repository backed by the compliance platform REST API.

    Register writes compare the ``updated_at`` the caller read against the
    server's current value before writing; the API has no native versioning.
    """

    def __init__(self, client: ComplianceApiClient) -> None:
        self.client = client
        self._catalogue_size: Optional[int] = None

    def get_organization(self, organization_id: int) -> Organization:
        return records.parse_organization(
            _record(self.client.get_organization(organization_id), "organization")
        )

    def get_assessment(self, assessment_id: int) -> Assessment:
        return records.parse_assessment(
            _record(self.client.get_assessment(assessment_id), "assessment")
        )

    def count_catalogue_controls(self) -> int:
        if self._catalogue_size is None:
            self._catalogue_size = len(as_list(self.client.list_controls(), "controls"))
        return self._catalogue_size

    def get_control(self, control_id: int) -> Control:
        return records.parse_control(_record(self.client.get_control(control_id), "control"))

    def list_control_entries(self, assessment_id: int) -> List[ControlAssessment]:
        response = self.client.list_control_assessments(assessment_id)
        return [records.parse_control_entry(raw) for raw in as_list(response, "controls")]

    def get_control_entry(self, assessment_id: int, control_id: int) -> Optional[ControlAssessment]:
        try:
            response = self.client.get_control_assessment(assessment_id, control_id)
        except NotFound:
            return None
        if not response:
            return None
        return records.parse_control_entry(_record(response, "control assessment"))

    def save_control_entry(self, entry: ControlAssessment) -> ControlAssessment:
        response = self.client.save_control_assessment(
            entry.assessment_id, entry.control_id, records.dump_control_entry(entry),
        )
        saved = records.parse_control_entry(_record(response, "control assessment"))
        # the upsert response does not join control details
        saved.control_code = saved.control_code or entry.control_code
        saved.control_name = saved.control_name or entry.control_name
        saved.control_description = saved.control_description or entry.control_description
        saved.category_name = saved.category_name or entry.category_name
        return saved

    def get_threat_model(self, threat_model_id: int) -> ThreatModel:
        return records.parse_threat_model(
            _record(self.client.get_threat_model(threat_model_id), "threat model")
        )

    def list_threats(self, threat_model_id: int) -> List[Threat]:
        response = self.client.list_threats(threat_model_id)
        return [records.parse_threat(raw) for raw in as_list(response, "threats")]

    def get_threat(self, threat_id: int) -> Threat:
        return records.parse_threat(_record(self.client.get_threat(threat_id), "threat"))

    def save_threat(self, threat: Threat) -> Threat:
        response = self.client.update_threat(threat.id, records.dump_threat(threat))
        return records.parse_threat(_record(response, "threat"))

    def list_mitigations(self, threat_id: int) -> List[Mitigation]:
        response = self.client.list_mitigations(threat_id)
        return [records.parse_mitigation(raw) for raw in as_list(response, "mitigations")]

    def get_mitigation(self, mitigation_id: int) -> Mitigation:
        return records.parse_mitigation(_record(self.client.get_mitigation(mitigation_id), "mitigation"))

    def save_mitigation(self, mitigation: Mitigation) -> Mitigation:
        response = self.client.update_mitigation(mitigation.id, records.dump_mitigation(mitigation))
        return records.parse_mitigation(_record(response, "mitigation"))

    def list_assets(self, threat_model_id: int) -> List[Asset]:
        response = self.client.list_assets(threat_model_id)
        return [records.parse_asset(raw) for raw in as_list(response, "assets")]

    def list_register_entries(
        self,
        assessment_id: Optional[int] = None,
        control_id: Optional[int] = None,
    ) -> List[RiskRegisterEntry]:
        response = self.client.list_risk_register(assessment_id)
        entries = [records.parse_register_entry(raw) for raw in as_list(response, "risks")]
        if control_id is not None:
            entries = [e for e in entries if e.control_id == control_id]
        return entries

    def get_register_entry(self, entry_id: int) -> RiskRegisterEntry:
        return records.parse_register_entry(
            _record(self.client.get_risk_entry(entry_id), "risk register entry")
        )

    def create_register_entry(self, entry: RiskRegisterEntry) -> RiskRegisterEntry:
        body = records.dump_register_entry(entry)
        for key in ("id", "created_at", "updated_at", "version"):
            body.pop(key, None)
        response = self.client.create_risk_entry(body)
        return records.parse_register_entry(_record(response, "risk register entry"))

    def update_register_entry(self, entry: RiskRegisterEntry) -> RiskRegisterEntry:
        self._check_unchanged(entry)
        body = records.dump_register_entry(entry)
        for key in ("id", "risk_id", "created_at", "updated_at", "version"):
            body.pop(key, None)
        response = self.client.update_risk_entry(entry.id, body)
        return records.parse_register_entry(_record(response, "risk register entry"))

    def delete_register_entry(self, entry_id: int, version: Optional[int] = None) -> None:
        self.client.delete_risk_entry(entry_id)

    def _check_unchanged(self, entry: RiskRegisterEntry) -> None:
        if entry.updated_at is None:
            return
        current = self.get_register_entry(entry.id)
        if current.updated_at is not None and current.updated_at != entry.updated_at:
            logger.debug("Register entry %s changed since it was read", entry.risk_id)
            raise ConflictWrite(
                f"Risk register entry {entry.risk_id} was modified concurrently. Reload and try again."
            )
