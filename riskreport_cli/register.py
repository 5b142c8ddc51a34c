"""Risk register lifecycle: entries created and closed by control status changes.

A control moving to ``at_risk`` opens a register entry; moving away from
``at_risk`` completes the open entries of that (assessment, control) pair.
Both transitions run under a per-pair lock so repeated or concurrent
status changes cannot open duplicates or leave an entry dangling.
"""

from __future__ import annotations

import csv
import io
import logging
import random
import string
import threading
import time
import weakref
from dataclasses import fields, replace
from typing import Dict, Iterable, List, Optional, Tuple

from riskreport_cli.exceptions import InvalidInput
from riskreport_cli.models.assessments import ImplementationStatus
from riskreport_cli.models.register import (
    AutoRiskDefaults,
    ControlStatusChanged,
    LifecycleOutcome,
    MitigationState,
    NewRiskEntry,
    RiskRegisterEntry,
    RiskRegisterUpdate,
)
from riskreport_cli.models.scoring import REGISTER_THRESHOLDS
from riskreport_cli.scoring import Thresholds, rating_from_number, resolve_thresholds, score_values
from riskreport_cli.storage.base import Repository

logger = logging.getLogger(__name__)

# One lock per (assessment, control) pair, shared by every manager over the same repository.
_PAIR_LOCKS: weakref.WeakKeyDictionary[Repository, Dict[Tuple[int, int], threading.RLock]] = (
    weakref.WeakKeyDictionary()
)
_PAIR_LOCKS_GUARD = threading.Lock()

_BASE36 = string.digits + string.ascii_uppercase
_SUFFIX_LENGTH = 5


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_risk_id(timestamp_ms: Optional[int] = None, rng: Optional[random.Random] = None) -> str:
    """``RISK-<base36 millisecond timestamp>-<5 random base36 chars>``."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    chooser = rng or random
    suffix = "".join(chooser.choice(_BASE36) for _ in range(_SUFFIX_LENGTH))
    return f"RISK-{_base36(timestamp_ms)}-{suffix}"


def control_status_event(
    assessment_id: int,
    control_id: int,
    previous: Optional[ImplementationStatus],
    new: ImplementationStatus,
    notes: str = "",
    comments: str = "",
    assessed_by: Optional[str] = None,
) -> Optional[ControlStatusChanged]:
    """Return the lifecycle event for a status change, or None when the register is unaffected."""
    if new is not ImplementationStatus.AT_RISK and previous is not ImplementationStatus.AT_RISK:
        return None
    return ControlStatusChanged(
        assessment_id=assessment_id,
        control_id=control_id,
        previous_status=previous,
        new_status=new,
        notes=notes,
        comments=comments,
        assessed_by=assessed_by,
    )


class RiskRegisterManager:
    def __init__(
        self,
        repo: Repository,
        thresholds: Thresholds = REGISTER_THRESHOLDS,
        defaults: Optional[AutoRiskDefaults] = None,
    ) -> None:
        self.repo = repo
        self.thresholds = resolve_thresholds(thresholds)
        self.defaults = defaults or AutoRiskDefaults()

    def pair_lock(self, assessment_id: int, control_id: int) -> threading.RLock:
        key = (assessment_id, control_id)
        with _PAIR_LOCKS_GUARD:
            locks = _PAIR_LOCKS.setdefault(self.repo, {})
            lock = locks.get(key)
            if lock is None:
                lock = locks[key] = threading.RLock()
            return lock

    def handle(self, event: ControlStatusChanged) -> LifecycleOutcome:
        with self.pair_lock(event.assessment_id, event.control_id):
            if event.new_status is ImplementationStatus.AT_RISK:
                return LifecycleOutcome(created=self._auto_create(event))
            if event.previous_status is ImplementationStatus.AT_RISK:
                return LifecycleOutcome(mitigated=self._auto_mitigate(event))
            return LifecycleOutcome()

    def open_entries(self, assessment_id: int, control_id: int) -> List[RiskRegisterEntry]:
        entries = self.repo.list_register_entries(assessment_id=assessment_id, control_id=control_id)
        return [e for e in entries if e.is_open]

    def _auto_create(self, event: ControlStatusChanged) -> Optional[RiskRegisterEntry]:
        existing = self.open_entries(event.assessment_id, event.control_id)
        if existing:
            logger.debug(
                "Control %s in assessment %s already has open risk %s",
                event.control_id, event.assessment_id, existing[0].risk_id,
            )
            return None

        control = self.repo.get_control(event.control_id)
        description = event.notes.strip() or f"Control at risk: {control.name} - {control.description}"
        entry = self.create(NewRiskEntry(
            description=description,
            likelihood=self.defaults.likelihood,
            impact=self.defaults.impact,
            assessment_id=event.assessment_id,
            control_id=event.control_id,
            subcategory_id=control.code,
            category=self.defaults.category,
            mitigation_strategy=f"Address risk for {control.name} control",
            notes=(
                "Auto-generated from control assessment marked as At Risk. "
                f"Control: {control.code}"
            ),
            comments=event.comments,
        ))
        logger.info("Created risk %s for control %s", entry.risk_id, control.code)
        return entry

    def _auto_mitigate(self, event: ControlStatusChanged) -> List[RiskRegisterEntry]:
        completed: List[RiskRegisterEntry] = []
        for entry in self.open_entries(event.assessment_id, event.control_id):
            saved = self.repo.update_register_entry(replace(entry, status=MitigationState.COMPLETED))
            logger.info("Marked risk %s completed", saved.risk_id)
            completed.append(saved)
        return completed

    def create(self, new: NewRiskEntry) -> RiskRegisterEntry:
        if not new.description.strip():
            raise InvalidInput("Risk description cannot be empty.")
        result = score_values(new.likelihood, new.impact, self.thresholds)
        entry = RiskRegisterEntry(
            id=0,
            risk_id=generate_risk_id(),
            description=new.description,
            likelihood=new.likelihood,
            impact=new.impact,
            risk_score=result.score,
            risk_level=result.level,
            assessment_id=new.assessment_id,
            control_id=new.control_id,
            subcategory_id=new.subcategory_id,
            category=new.category,
            mitigation_strategy=new.mitigation_strategy,
            mitigation_owner=new.mitigation_owner,
            mitigation_deadline=new.mitigation_deadline,
            status=new.status,
            notes=new.notes,
            comments=new.comments,
        )
        return self.repo.create_register_entry(entry)

    def update(self, entry_id: int, update: RiskRegisterUpdate) -> RiskRegisterEntry:
        current = self.repo.get_register_entry(entry_id)
        if current.assessment_id is None or current.control_id is None:
            return self._merge_and_save(current, update)
        with self.pair_lock(current.assessment_id, current.control_id):
            return self._merge_and_save(current, update)

    def _merge_and_save(self, entry: RiskRegisterEntry, update: RiskRegisterUpdate) -> RiskRegisterEntry:
        changes = {
            f.name: getattr(update, f.name)
            for f in fields(update)
            if getattr(update, f.name) is not None
        }
        for name in ("likelihood", "impact", "residual_likelihood", "residual_impact"):
            if name in changes:
                rating_from_number(changes[name], name.replace("_", " "))
        merged = replace(entry, **changes)

        if merged.likelihood is not None and merged.impact is not None:
            result = score_values(merged.likelihood, merged.impact, self.thresholds)
            merged = replace(merged, risk_score=result.score, risk_level=result.level)
        if merged.residual_likelihood is not None and merged.residual_impact is not None:
            residual = score_values(merged.residual_likelihood, merged.residual_impact, self.thresholds)
            merged = replace(merged, residual_score=residual.score, residual_level=residual.level)
        return self.repo.update_register_entry(merged)

    def delete(self, entry_id: int) -> None:
        current = self.repo.get_register_entry(entry_id)
        self.repo.delete_register_entry(entry_id, version=current.version)
        logger.info("Deleted risk %s", current.risk_id)


_CSV_COLUMNS = (
    "Risk ID", "Control", "Description", "Category", "Likelihood", "Impact",
    "Risk Score", "Risk Level", "Strategy", "Owner", "Deadline", "Status",
    "Residual Score", "Residual Level",
)


def register_csv(entries: Iterable[RiskRegisterEntry]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(_CSV_COLUMNS)
    for entry in entries:
        writer.writerow([
            entry.risk_id,
            entry.subcategory_id,
            entry.description,
            entry.category,
            entry.likelihood if entry.likelihood is not None else "",
            entry.impact if entry.impact is not None else "",
            entry.risk_score if entry.risk_score is not None else "",
            entry.risk_level.label if entry.risk_level else "",
            entry.mitigation_strategy,
            entry.mitigation_owner,
            entry.mitigation_deadline.isoformat() if entry.mitigation_deadline else "",
            entry.status.value,
            entry.residual_score if entry.residual_score is not None else "",
            entry.residual_level.label if entry.residual_level else "",
        ])
    return buffer.getvalue()
