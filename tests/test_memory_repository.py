from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from riskreport_cli.exceptions import ConflictWrite, InvalidInput, NotFound
from riskreport_cli.models.register import MitigationState, NewRiskEntry
from riskreport_cli.models.scoring import RiskLevel
from riskreport_cli.register import RiskRegisterManager
from riskreport_cli.storage.memory import InMemoryRepository


class TestSnapshots:
    @pytest.mark.parametrize("name", ["snapshot.yaml", "snapshot.json"])
    def test_save_and_load(self, repo: InMemoryRepository, tmp_path: Path, name: str) -> None:
        RiskRegisterManager(repo).create(NewRiskEntry(
            description="Backup restore untested", likelihood=3, impact=5, assessment_id=1,
        ))
        path = tmp_path / name
        repo.save_snapshot(path)

        loaded = InMemoryRepository.from_snapshot(path)
        assert loaded.get_organization(1).name == "Acme Corp"
        assert len(loaded.list_control_entries(1)) == 4
        assert loaded.get_threat(1).risk_level is RiskLevel.CRITICAL
        assert loaded.get_mitigation(1).target_date == repo.get_mitigation(1).target_date
        entry = loaded.list_register_entries(assessment_id=1)[0]
        assert entry.risk_score == 15
        assert entry.status is MitigationState.NOT_STARTED

    def test_loaded_register_continues_numbering(self, repo: InMemoryRepository, tmp_path: Path) -> None:
        manager = RiskRegisterManager(repo)
        manager.create(NewRiskEntry(description="first", likelihood=1, impact=1))
        path = tmp_path / "snapshot.yaml"
        repo.save_snapshot(path)

        loaded = InMemoryRepository.from_snapshot(path)
        second = RiskRegisterManager(loaded).create(NewRiskEntry(description="second", likelihood=1, impact=1))
        assert second.id == 2

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(NotFound, match="Snapshot file not found"):
            InMemoryRepository.from_snapshot(tmp_path / "missing.yaml")

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(InvalidInput, match="mapping"):
            InMemoryRepository.from_snapshot(path)

    def test_unparseable_json(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(InvalidInput, match="Cannot parse snapshot"):
            InMemoryRepository.from_snapshot(path)


class TestLookups:
    def test_not_found_messages(self, repo: InMemoryRepository) -> None:
        with pytest.raises(NotFound, match="Assessment 9 not found"):
            repo.get_assessment(9)
        with pytest.raises(NotFound, match="Threat model 9 not found"):
            repo.list_threats(9)

    def test_returned_objects_are_copies(self, repo: InMemoryRepository) -> None:
        threat = repo.get_threat(1)
        threat.title = "changed"
        assert repo.get_threat(1).title != "changed"

    def test_control_entry_inherits_catalogue_fields(self, repo: InMemoryRepository) -> None:
        entry = repo.get_control_entry(1, 1)
        assert entry is not None
        assert entry.control_code == "ID.AM-1"
        assert repo.get_control_entry(1, 2) is None


class TestRegisterWrites:
    def test_version_bumps_on_update(self, repo: InMemoryRepository) -> None:
        entry = RiskRegisterManager(repo).create(NewRiskEntry(description="x", likelihood=2, impact=2))
        assert entry.version == 1
        updated = repo.update_register_entry(replace(entry, notes="reviewed"))
        assert updated.version == 2

    def test_duplicate_risk_id(self, repo: InMemoryRepository) -> None:
        entry = RiskRegisterManager(repo).create(NewRiskEntry(description="x", likelihood=2, impact=2))
        with pytest.raises(ConflictWrite, match=entry.risk_id):
            repo.create_register_entry(replace(entry, id=0))

    def test_delete_with_stale_version(self, repo: InMemoryRepository) -> None:
        entry = RiskRegisterManager(repo).create(NewRiskEntry(description="x", likelihood=2, impact=2))
        repo.update_register_entry(replace(entry, notes="bumped"))
        with pytest.raises(ConflictWrite):
            repo.delete_register_entry(entry.id, version=entry.version)
