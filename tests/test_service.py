from __future__ import annotations

import json
import threading
import time
from datetime import datetime
from typing import Any, List

import pytest

from riskreport_cli.exceptions import ConflictWrite, EmptyDataset, InvalidInput, NotFound
from riskreport_cli.models.assessments import ControlAssessment, ImplementationStatus
from riskreport_cli.models.register import MitigationState, RiskRegisterEntry
from riskreport_cli.models.reports import ReportFormat, ReportKind
from riskreport_cli.models.scoring import Rating, RiskLevel
from riskreport_cli.models.statistics import AssessmentStatistics, ThreatModelStatistics
from riskreport_cli.models.threats import MitigationStatus, MitigationUpdate, ThreatStatus, ThreatUpdate
from riskreport_cli.register import RiskRegisterManager
from riskreport_cli.service import (
    apply_control_status,
    compute_risk_score,
    compute_statistics,
    generate_report,
    update_mitigation,
    update_threat,
)
from riskreport_cli.storage.memory import InMemoryRepository


class TestComputeRiskScore:
    def test_threat_preset_by_default(self) -> None:
        result = compute_risk_score("high", "high")
        assert result.score == 16
        assert result.level is RiskLevel.HIGH

    def test_register_preset(self) -> None:
        assert compute_risk_score("very_high", "high", "register").level is RiskLevel.CRITICAL


class TestComputeStatistics:
    def test_dispatch_by_kind(self, repo: InMemoryRepository) -> None:
        assert isinstance(compute_statistics(repo, 1, "assessment"), AssessmentStatistics)
        assert isinstance(compute_statistics(repo, 1, ReportKind.THREAT_MODEL), ThreatModelStatistics)

    def test_unknown_kind(self, repo: InMemoryRepository) -> None:
        with pytest.raises(InvalidInput, match="Unknown subject kind"):
            compute_statistics(repo, 1, "vendor")


class TestApplyControlStatus:
    def test_at_risk_creates_register_entry(self, repo: InMemoryRepository, now: datetime) -> None:
        result = apply_control_status(
            repo, 1, 2, "at_risk", notes="Software inventory is stale", assessed_by="auditor", now=now,
        )
        assert result.entry.status is ImplementationStatus.AT_RISK
        assert result.entry.control_code == "ID.AM-2"
        assert result.created_risk_id is not None
        entries = repo.list_register_entries(assessment_id=1, control_id=2)
        assert [e.description for e in entries] == ["Software inventory is stale"]

    def test_round_trip_completes_the_risk(self, repo: InMemoryRepository, now: datetime) -> None:
        manager = RiskRegisterManager(repo)
        created = apply_control_status(repo, 1, 7, "at_risk", manager=manager, now=now)
        resolved = apply_control_status(repo, 1, 7, "fully_implemented", manager=manager, now=now)
        assert resolved.created_risk_id is None
        assert resolved.mitigated_risk_ids == [created.created_risk_id]
        entry = repo.list_register_entries(assessment_id=1, control_id=7)[0]
        assert entry.status is MitigationState.COMPLETED

    def test_unrelated_change_leaves_register_alone(self, repo: InMemoryRepository, now: datetime) -> None:
        result = apply_control_status(repo, 1, 5, ImplementationStatus.FULLY_IMPLEMENTED, now=now)
        assert result.created_risk_id is None
        assert result.mitigated_risk_ids == []
        assert repo.list_register_entries() == []

    def test_existing_fields_are_kept(self, repo: InMemoryRepository, now: datetime) -> None:
        result = apply_control_status(repo, 1, 1, "largely_implemented", now=now)
        assert result.entry.compliance_score == 90
        assert result.entry.evidence_count == 2
        assert result.entry.updated_at == now

    def test_invalid_status(self, repo: InMemoryRepository) -> None:
        with pytest.raises(InvalidInput, match="implementation status"):
            apply_control_status(repo, 1, 1, "done")

    def test_invalid_compliance_score(self, repo: InMemoryRepository) -> None:
        with pytest.raises(InvalidInput, match="between 0 and 100"):
            apply_control_status(repo, 1, 1, "fully_implemented", compliance_score=150)

    def test_unknown_control(self, repo: InMemoryRepository) -> None:
        with pytest.raises(NotFound):
            apply_control_status(repo, 1, 99, "fully_implemented")

    def test_none_keeps_text_and_empty_string_clears_it(self, repo: InMemoryRepository, now: datetime) -> None:
        apply_control_status(
            repo, 1, 1, "fully_implemented", notes="Reviewed", recommendations="Automate scans", now=now,
        )
        kept = apply_control_status(repo, 1, 1, "largely_implemented", now=now)
        assert kept.entry.notes == "Reviewed"
        assert kept.entry.recommendations == "Automate scans"
        cleared = apply_control_status(repo, 1, 1, "fully_implemented", notes="", recommendations="", now=now)
        assert cleared.entry.notes == ""
        assert cleared.entry.recommendations == ""
        assert repo.get_control_entry(1, 1).notes == ""

    def test_unknown_assessment_leaves_no_risk(self, repo: InMemoryRepository, now: datetime) -> None:
        with pytest.raises(NotFound):
            apply_control_status(repo, 9, 7, "at_risk", now=now)
        assert repo.list_register_entries() == []


class TestControlStatusFailures:
    def test_parallel_at_risk_without_shared_manager(
        self, repo: InMemoryRepository, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        original = repo.list_register_entries

        def slow_list(*args: Any, **kwargs: Any) -> List[RiskRegisterEntry]:
            entries = original(*args, **kwargs)
            time.sleep(0.05)
            return entries

        monkeypatch.setattr(repo, "list_register_entries", slow_list)
        threads = [
            threading.Thread(target=apply_control_status, args=(repo, 1, 7, "at_risk"))
            for _ in range(4)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        entries = original(assessment_id=1, control_id=7)
        assert len([e for e in entries if e.is_open]) == 1

    def test_conflict_during_mitigation_can_be_retried(
        self, repo: InMemoryRepository, monkeypatch: pytest.MonkeyPatch, now: datetime,
    ) -> None:
        created = apply_control_status(repo, 1, 7, "at_risk", now=now)
        original = repo.update_register_entry
        calls: List[str] = []

        def conflicting(entry: RiskRegisterEntry) -> RiskRegisterEntry:
            calls.append(entry.risk_id)
            if len(calls) == 1:
                raise ConflictWrite(f"Risk register entry {entry.risk_id} was modified concurrently.")
            return original(entry)

        monkeypatch.setattr(repo, "update_register_entry", conflicting)
        with pytest.raises(ConflictWrite):
            apply_control_status(repo, 1, 7, "fully_implemented", now=now)
        stored = repo.get_control_entry(1, 7)
        assert stored is not None
        assert stored.status is ImplementationStatus.AT_RISK

        resolved = apply_control_status(repo, 1, 7, "fully_implemented", now=now)
        assert resolved.mitigated_risk_ids == [created.created_risk_id]
        assert [e for e in repo.list_register_entries(assessment_id=1, control_id=7) if e.is_open] == []

    def test_failed_control_write_removes_new_risk(
        self, repo: InMemoryRepository, monkeypatch: pytest.MonkeyPatch, now: datetime,
    ) -> None:
        def failing(entry: ControlAssessment) -> ControlAssessment:
            raise ConflictWrite("Control assessment was modified concurrently.")

        monkeypatch.setattr(repo, "save_control_entry", failing)
        with pytest.raises(ConflictWrite):
            apply_control_status(repo, 1, 7, "at_risk", now=now)
        assert repo.list_register_entries() == []
        stored = repo.get_control_entry(1, 7)
        assert stored is not None
        assert stored.status is ImplementationStatus.NOT_IMPLEMENTED


class TestUpdateThreat:
    def test_missing_impact_is_read_from_storage(self, repo: InMemoryRepository) -> None:
        updated = update_threat(repo, 2, ThreatUpdate(likelihood=Rating.VERY_HIGH))
        assert updated.impact is Rating.HIGH
        assert updated.risk_score == 20
        assert updated.risk_level is RiskLevel.CRITICAL
        assert repo.get_threat(2).risk_score == 20

    def test_status_only_keeps_score(self, repo: InMemoryRepository) -> None:
        updated = update_threat(repo, 1, ThreatUpdate(status=ThreatStatus.ACCEPTED))
        assert updated.status is ThreatStatus.ACCEPTED
        assert updated.risk_score == 25

    def test_unknown_threat(self, repo: InMemoryRepository) -> None:
        with pytest.raises(NotFound, match="Threat 77 not found"):
            update_threat(repo, 77, ThreatUpdate(title="x"))


class TestUpdateMitigation:
    def test_completion_timestamp_set_on_implementation(
        self, repo: InMemoryRepository, now: datetime,
    ) -> None:
        updated = update_mitigation(repo, 1, MitigationUpdate(status=MitigationStatus.IMPLEMENTED), now)
        assert updated.completed_at == now

    def test_already_verified_keeps_timestamp(self, repo: InMemoryRepository, now: datetime) -> None:
        updated = update_mitigation(repo, 2, MitigationUpdate(status=MitigationStatus.VERIFIED), now)
        assert updated.completed_at is None

    def test_other_fields(self, repo: InMemoryRepository, now: datetime) -> None:
        updated = update_mitigation(repo, 1, MitigationUpdate(assigned_to="Sam"), now)
        assert updated.assigned_to == "Sam"
        assert updated.completed_at is None


class TestGenerateReport:
    def test_json_report(self, repo: InMemoryRepository, now: datetime) -> None:
        document = generate_report(repo, 1, "threat_model", "Acme Corp", fmt="json", now=now)
        assert document.metadata.file_name == "threat-report-1-20240615-120000.json"
        assert document.metadata.format is ReportFormat.JSON
        assert document.metadata.size == len(document.content)
        payload = json.loads(document.content)
        assert payload["organization"] == "Acme Corp"
        assert payload["statistics"]["total_threats"] == 3

    def test_pdf_report(self, repo: InMemoryRepository, now: datetime) -> None:
        document = generate_report(repo, 1, "assessment", "Acme Corp", now=now)
        assert document.content.startswith(b"%PDF")
        assert document.metadata.file_name.endswith(".pdf")
        assert document.metadata.page_count >= 6

    def test_empty_subjects(self, repo: InMemoryRepository) -> None:
        with pytest.raises(EmptyDataset):
            generate_report(repo, 2, "assessment", "Acme Corp")
        with pytest.raises(EmptyDataset):
            generate_report(repo, 2, "threat_model", "Acme Corp")

    def test_unknown_format(self, repo: InMemoryRepository) -> None:
        with pytest.raises(InvalidInput, match="Unsupported report format"):
            generate_report(repo, 1, "assessment", "Acme Corp", fmt="docx")
