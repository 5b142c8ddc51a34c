from __future__ import annotations

import random
import re
import threading
from dataclasses import replace

import pytest

from riskreport_cli.exceptions import ConflictWrite, InvalidInput, NotFound
from riskreport_cli.models.assessments import ImplementationStatus
from riskreport_cli.models.register import (
    AutoRiskDefaults,
    MitigationState,
    NewRiskEntry,
    RiskRegisterUpdate,
)
from riskreport_cli.models.scoring import RiskLevel
from riskreport_cli.register import (
    RiskRegisterManager,
    control_status_event,
    generate_risk_id,
    register_csv,
)
from riskreport_cli.storage.memory import InMemoryRepository

AT_RISK = ImplementationStatus.AT_RISK
FULLY = ImplementationStatus.FULLY_IMPLEMENTED
NOT_IMPLEMENTED = ImplementationStatus.NOT_IMPLEMENTED


def _mark_at_risk(manager: RiskRegisterManager, control_id: int = 7, notes: str = ""):
    event = control_status_event(1, control_id, NOT_IMPLEMENTED, AT_RISK, notes=notes)
    assert event is not None
    return manager.handle(event)


class TestGenerateRiskId:
    def test_format(self) -> None:
        assert re.fullmatch(r"RISK-[0-9A-Z]+-[0-9A-Z]{5}", generate_risk_id())

    def test_timestamp_is_base36(self) -> None:
        risk_id = generate_risk_id(timestamp_ms=36 * 36, rng=random.Random(7))
        assert risk_id.startswith("RISK-100-")


class TestControlStatusEvent:
    def test_unrelated_change_has_no_event(self) -> None:
        assert control_status_event(1, 1, NOT_IMPLEMENTED, FULLY) is None

    def test_first_assessment_at_risk(self) -> None:
        event = control_status_event(1, 1, None, AT_RISK, notes="n")
        assert event is not None
        assert event.previous_status is None
        assert event.notes == "n"

    def test_leaving_at_risk(self) -> None:
        event = control_status_event(1, 1, AT_RISK, FULLY)
        assert event is not None
        assert event.new_status is FULLY


class TestAutoCreate:
    def test_creates_entry_with_defaults(self, repo: InMemoryRepository) -> None:
        outcome = _mark_at_risk(RiskRegisterManager(repo))
        entry = outcome.created
        assert entry is not None
        assert entry.description == (
            "Control at risk: Response plan executed - Response plan executed per policy"
        )
        assert entry.likelihood == 4
        assert entry.impact == 4
        assert entry.risk_score == 16
        assert entry.risk_level is RiskLevel.HIGH
        assert entry.category == "Compliance"
        assert entry.subcategory_id == "RS.RP-1"
        assert entry.mitigation_strategy == "Address risk for Response plan executed control"
        assert entry.notes.endswith("Control: RS.RP-1")
        assert entry.status is MitigationState.NOT_STARTED
        assert outcome.created_risk_id == entry.risk_id

    def test_notes_become_description(self, repo: InMemoryRepository) -> None:
        outcome = _mark_at_risk(RiskRegisterManager(repo), notes="Playbook is outdated")
        assert outcome.created is not None
        assert outcome.created.description == "Playbook is outdated"

    def test_configured_defaults(self, repo: InMemoryRepository) -> None:
        manager = RiskRegisterManager(repo, defaults=AutoRiskDefaults(likelihood=5, impact=4))
        outcome = _mark_at_risk(manager)
        assert outcome.created is not None
        assert outcome.created.risk_score == 20
        assert outcome.created.risk_level is RiskLevel.CRITICAL

    def test_repeated_at_risk_does_not_duplicate(self, repo: InMemoryRepository) -> None:
        manager = RiskRegisterManager(repo)
        first = _mark_at_risk(manager)
        second = _mark_at_risk(manager)
        assert first.created is not None
        assert second.created is None
        assert len(manager.open_entries(1, 7)) == 1

    def test_concurrent_at_risk_creates_one_entry(self, repo: InMemoryRepository) -> None:
        manager = RiskRegisterManager(repo)
        threads = [threading.Thread(target=_mark_at_risk, args=(manager,)) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(repo.list_register_entries(assessment_id=1, control_id=7)) == 1

    def test_managers_over_one_repository_share_pair_locks(self, repo: InMemoryRepository) -> None:
        first = RiskRegisterManager(repo)
        second = RiskRegisterManager(repo, thresholds="threat")
        assert first.pair_lock(1, 7) is second.pair_lock(1, 7)
        assert first.pair_lock(1, 7) is not first.pair_lock(1, 8)
        assert first.pair_lock(1, 7) is not RiskRegisterManager(InMemoryRepository()).pair_lock(1, 7)

    def test_concurrent_at_risk_with_separate_managers(self, repo: InMemoryRepository) -> None:
        threads = [
            threading.Thread(target=_mark_at_risk, args=(RiskRegisterManager(repo),))
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(repo.list_register_entries(assessment_id=1, control_id=7)) == 1

    def test_unknown_control(self, repo: InMemoryRepository) -> None:
        with pytest.raises(NotFound):
            _mark_at_risk(RiskRegisterManager(repo), control_id=99)


class TestAutoMitigate:
    def test_leaving_at_risk_completes_open_entries(self, repo: InMemoryRepository) -> None:
        manager = RiskRegisterManager(repo)
        created = _mark_at_risk(manager).created
        assert created is not None

        event = control_status_event(1, 7, AT_RISK, FULLY)
        assert event is not None
        outcome = manager.handle(event)

        assert outcome.mitigated_risk_ids == [created.risk_id]
        stored = repo.get_register_entry(created.id)
        assert stored.status is MitigationState.COMPLETED
        assert manager.open_entries(1, 7) == []

    def test_no_open_entries_is_a_no_op(self, repo: InMemoryRepository) -> None:
        event = control_status_event(1, 7, AT_RISK, FULLY)
        assert event is not None
        outcome = RiskRegisterManager(repo).handle(event)
        assert outcome.mitigated == []
        assert outcome.created is None

    def test_deferred_entries_are_completed_too(self, repo: InMemoryRepository) -> None:
        manager = RiskRegisterManager(repo)
        created = _mark_at_risk(manager).created
        assert created is not None
        manager.update(created.id, RiskRegisterUpdate(status=MitigationState.DEFERRED))

        event = control_status_event(1, 7, AT_RISK, FULLY)
        assert event is not None
        outcome = manager.handle(event)
        assert outcome.mitigated_risk_ids == [created.risk_id]


class TestUpdate:
    def _entry(self, manager: RiskRegisterManager):
        return manager.create(NewRiskEntry(description="Vendor lock-in", likelihood=4, impact=4))

    def test_changing_likelihood_recomputes_score(self, repo: InMemoryRepository) -> None:
        manager = RiskRegisterManager(repo)
        entry = self._entry(manager)
        updated = manager.update(entry.id, RiskRegisterUpdate(likelihood=2))
        assert updated.risk_score == 8
        assert updated.risk_level is RiskLevel.MEDIUM

    def test_residual_needs_both_values(self, repo: InMemoryRepository) -> None:
        manager = RiskRegisterManager(repo)
        entry = self._entry(manager)
        partial = manager.update(entry.id, RiskRegisterUpdate(residual_likelihood=2))
        assert partial.residual_score is None
        complete = manager.update(entry.id, RiskRegisterUpdate(residual_impact=2))
        assert complete.residual_score == 4
        assert complete.residual_level is RiskLevel.LOW

    def test_none_fields_are_left_unchanged(self, repo: InMemoryRepository) -> None:
        manager = RiskRegisterManager(repo)
        entry = self._entry(manager)
        updated = manager.update(entry.id, RiskRegisterUpdate(mitigation_owner="Dana"))
        assert updated.description == "Vendor lock-in"
        assert updated.mitigation_owner == "Dana"
        assert updated.version == entry.version + 1

    def test_out_of_range_rating(self, repo: InMemoryRepository) -> None:
        manager = RiskRegisterManager(repo)
        entry = self._entry(manager)
        with pytest.raises(InvalidInput):
            manager.update(entry.id, RiskRegisterUpdate(impact=6))

    def test_stale_version_conflicts(self, repo: InMemoryRepository) -> None:
        manager = RiskRegisterManager(repo)
        entry = self._entry(manager)
        stale = repo.get_register_entry(entry.id)
        manager.update(entry.id, RiskRegisterUpdate(notes="first writer"))
        with pytest.raises(ConflictWrite):
            repo.update_register_entry(replace(stale, notes="second writer"))

    def test_empty_description_rejected(self, repo: InMemoryRepository) -> None:
        with pytest.raises(InvalidInput, match="description"):
            RiskRegisterManager(repo).create(NewRiskEntry(description="  ", likelihood=1, impact=1))


class TestDelete:
    def test_delete(self, repo: InMemoryRepository) -> None:
        manager = RiskRegisterManager(repo)
        entry = manager.create(NewRiskEntry(description="x", likelihood=1, impact=1))
        manager.delete(entry.id)
        with pytest.raises(NotFound):
            repo.get_register_entry(entry.id)


class TestRegisterCsv:
    def test_header_and_rows(self, repo: InMemoryRepository) -> None:
        manager = RiskRegisterManager(repo)
        entry = _mark_at_risk(manager).created
        assert entry is not None
        lines = register_csv(repo.list_register_entries()).splitlines()
        assert lines[0].startswith("Risk ID,Control,Description,Category")
        assert len(lines) == 2
        assert lines[1].startswith(f"{entry.risk_id},RS.RP-1,")
        assert ",16,High," in lines[1]
