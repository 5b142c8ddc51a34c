"""Rule-based recommendations.

Rules run in a fixed order and each one contributes independently. When
nothing fires the caller shows a single positive statement instead of an
empty list.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from riskreport_cli.models.reports import Recommendation
from riskreport_cli.models.scoring import THREAT_THRESHOLDS, ThresholdTable

THREATS_ADDRESSED = "All threats have been adequately addressed with mitigations."
CONTROLS_ADDRESSED = (
    "Congratulations! All controls are complete and supported by evidence. "
    "No recommendations at this time."
)


@dataclass
class RiskEntity:
    """An entity as seen by the rules: a threat or an assessed control."""

    name: str
    risk_score: Optional[int]
    protections: int
    effectively_protected: bool
    early_stage: bool


@dataclass
class RuleInput:
    entities: Sequence[RiskEntity]
    coverage: int
    pending: int
    in_progress: int


@dataclass(frozen=True)
class Vocabulary:
    entity: str
    entities: str
    protection: str
    coverage_phrase: str
    early_phrase: str
    pending_phrase: str
    high_title: str
    coverage_title: str
    pending_title: str
    early_title: str


THREAT_VOCABULARY = Vocabulary(
    entity="threat",
    entities="threats",
    protection="mitigations defined",
    coverage_phrase="of threats have been mitigated or accepted. Develop mitigation strategies "
                    "for unaddressed threats to improve security posture.",
    early_phrase="are still in early stages (identified/analyzing). Complete analysis and "
                 "begin mitigation planning.",
    pending_phrase="mitigations are proposed or approved but not yet in progress. "
                   "Allocate resources to begin implementation.",
    high_title="Implement Mitigations for High-Risk Threats",
    coverage_title="Increase Mitigation Coverage",
    pending_title="Begin Implementation of Proposed Mitigations",
    early_title="Progress Threat Analysis",
)

CONTROL_VOCABULARY = Vocabulary(
    entity="control",
    entities="controls",
    protection="supporting evidence",
    coverage_phrase="of assessed controls are supported by evidence. Upload documentation "
                    "to strengthen audit readiness.",
    early_phrase="are still not implemented. Plan their implementation to close compliance gaps.",
    pending_phrase="register risks are not started while few are in progress. "
                   "Assign owners and begin remediation.",
    high_title="Remediate High-Risk Controls",
    coverage_title="Increase Evidence Coverage",
    pending_title="Begin Remediation of Registered Risks",
    early_title="Implement Outstanding Controls",
)

Rule = Callable[[RuleInput, Vocabulary, ThresholdTable], Optional[Recommendation]]


def _plural(count: int, vocabulary: Vocabulary) -> str:
    return vocabulary.entity if count == 1 else vocabulary.entities


def critical_unprotected(data: RuleInput, vocab: Vocabulary, table: ThresholdTable) -> Optional[Recommendation]:
    matches = [
        e for e in data.entities
        if e.risk_score is not None and e.risk_score >= table.critical_min and e.protections == 0
    ]
    if not matches:
        return None
    count = len(matches)
    return Recommendation(
        priority="Critical",
        title=f"Address Critical {vocab.entities.title()} Immediately",
        description=(
            f"{count} critical {_plural(count, vocab)} (risk score {table.critical_min}-25) "
            f"{'has' if count == 1 else 'have'} no {vocab.protection}. These pose severe risk "
            "and require immediate action."
        ),
    )


def high_not_effective(data: RuleInput, vocab: Vocabulary, table: ThresholdTable) -> Optional[Recommendation]:
    matches = [
        e for e in data.entities
        if e.risk_score is not None
        and table.high_min <= e.risk_score < table.critical_min
        and not e.effectively_protected
    ]
    if not matches:
        return None
    count = len(matches)
    return Recommendation(
        priority="High",
        title=vocab.high_title,
        description=(
            f"{count} high-risk {_plural(count, vocab)} {'lacks' if count == 1 else 'lack'} "
            "implemented mitigations. Prioritize implementing existing plans or creating new ones."
        ),
    )


def low_coverage(data: RuleInput, vocab: Vocabulary, table: ThresholdTable) -> Optional[Recommendation]:
    if data.coverage >= 50:
        return None
    return Recommendation(
        priority="High",
        title=vocab.coverage_title,
        description=f"Only {data.coverage}% {vocab.coverage_phrase}",
    )


def stalled_pending(data: RuleInput, vocab: Vocabulary, table: ThresholdTable) -> Optional[Recommendation]:
    if data.pending <= data.in_progress * 2:
        return None
    return Recommendation(
        priority="Medium",
        title=vocab.pending_title,
        description=f"{data.pending} {vocab.pending_phrase}",
    )


def early_stage(data: RuleInput, vocab: Vocabulary, table: ThresholdTable) -> Optional[Recommendation]:
    matches = [e for e in data.entities if e.early_stage]
    if len(matches) <= len(data.entities) * 0.3:
        return None
    return Recommendation(
        priority="Medium",
        title=vocab.early_title,
        description=f"{len(matches)} {_plural(len(matches), vocab)} {vocab.early_phrase}",
    )


RULES: List[Rule] = [
    critical_unprotected,
    high_not_effective,
    low_coverage,
    stalled_pending,
    early_stage,
]


def evaluate(
    data: RuleInput,
    vocabulary: Vocabulary,
    thresholds: ThresholdTable = THREAT_THRESHOLDS,
    rules: Sequence[Rule] = RULES,
) -> List[Recommendation]:
    results: List[Recommendation] = []
    for rule in rules:
        recommendation = rule(data, vocabulary, thresholds)
        if recommendation is not None:
            results.append(recommendation)
    return results


def undocumented_complete(count: int) -> Optional[Recommendation]:
    if count <= 0:
        return None
    return Recommendation(
        priority="Medium",
        title="Document Evidence for Completed Controls",
        description=(
            f"{count} {'control is' if count == 1 else 'controls are'} fully implemented but "
            "lack supporting evidence. Upload documentation to strengthen audit readiness."
        ),
    )


def remaining_controls(count: int) -> Optional[Recommendation]:
    if count <= 0:
        return None
    return Recommendation(
        priority="Low",
        title="Begin Assessment of Remaining Controls",
        description=(
            f"{count} catalogue {'control has' if count == 1 else 'controls have'} not been "
            "assessed yet. Assess them to achieve comprehensive coverage."
        ),
    )


CRITICAL_FUNCTION_PREFIXES = ("PR", "DE")
IN_PROGRESS_LIMIT = 5


def critical_not_started(codes: Sequence[str]) -> Optional[Recommendation]:
    """Protect and Detect controls that are not implemented yet."""
    count = sum(1 for code in codes if code.upper().startswith(CRITICAL_FUNCTION_PREFIXES))
    if count == 0:
        return None
    return Recommendation(
        priority="High",
        title="Implement Critical Protection and Detection Controls",
        description=(
            f"{count} critical {'control' if count == 1 else 'controls'} in the Protect and Detect "
            "functions have not been started. These are essential for preventing and identifying "
            "security incidents."
        ),
    )


def in_progress_controls(count: int) -> Optional[Recommendation]:
    if count <= IN_PROGRESS_LIMIT:
        return None
    return Recommendation(
        priority="Medium",
        title="Complete In-Progress Controls",
        description=(
            f"Focus on completing the {count} controls currently in progress "
            "to improve overall compliance score."
        ),
    )
