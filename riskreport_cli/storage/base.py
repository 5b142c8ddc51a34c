from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from riskreport_cli.models.assessments import Assessment, Control, ControlAssessment, Organization
from riskreport_cli.models.register import RiskRegisterEntry
from riskreport_cli.models.threats import Asset, Mitigation, Threat, ThreatModel


class Repository(ABC):
    """Read/write access to persisted entities.

    Lookups of a single record raise ``NotFound`` for unknown ids. Register
    writes carry the version the caller read; a mismatch raises
    ``ConflictWrite``.
    """

    @abstractmethod
    def get_organization(self, organization_id: int) -> Organization:
        ...

    @abstractmethod
    def get_assessment(self, assessment_id: int) -> Assessment:
        ...

    @abstractmethod
    def count_catalogue_controls(self) -> int:
        ...

    @abstractmethod
    def get_control(self, control_id: int) -> Control:
        ...

    @abstractmethod
    def list_control_entries(self, assessment_id: int) -> List[ControlAssessment]:
        ...

    @abstractmethod
    def get_control_entry(self, assessment_id: int, control_id: int) -> Optional[ControlAssessment]:
        ...

    @abstractmethod
    def save_control_entry(self, entry: ControlAssessment) -> ControlAssessment:
        """Upsert keyed by (assessment_id, control_id)."""
        ...

    @abstractmethod
    def get_threat_model(self, threat_model_id: int) -> ThreatModel:
        ...

    @abstractmethod
    def list_threats(self, threat_model_id: int) -> List[Threat]:
        ...

    @abstractmethod
    def get_threat(self, threat_id: int) -> Threat:
        ...

    @abstractmethod
    def save_threat(self, threat: Threat) -> Threat:
        ...

    @abstractmethod
    def list_mitigations(self, threat_id: int) -> List[Mitigation]:
        ...

    @abstractmethod
    def get_mitigation(self, mitigation_id: int) -> Mitigation:
        ...

    @abstractmethod
    def save_mitigation(self, mitigation: Mitigation) -> Mitigation:
        ...

    @abstractmethod
    def list_assets(self, threat_model_id: int) -> List[Asset]:
        ...

    @abstractmethod
    def list_register_entries(
        self,
        assessment_id: Optional[int] = None,
        control_id: Optional[int] = None,
    ) -> List[RiskRegisterEntry]:
        ...

    @abstractmethod
    def get_register_entry(self, entry_id: int) -> RiskRegisterEntry:
        ...

    @abstractmethod
    def create_register_entry(self, entry: RiskRegisterEntry) -> RiskRegisterEntry:
        ...

    @abstractmethod
    def update_register_entry(self, entry: RiskRegisterEntry) -> RiskRegisterEntry:
        """Persist *entry* if its ``version`` still matches the stored one."""
        ...

    @abstractmethod
    def delete_register_entry(self, entry_id: int, version: Optional[int] = None) -> None:
        ...

    def list_model_mitigations(self, threat_model_id: int) -> Dict[int, List[Mitigation]]:
        return {
            threat.id: self.list_mitigations(threat.id)
            for threat in self.list_threats(threat_model_id)
        }
