from __future__ import annotations

from typing import Dict, List, Optional

from riskreport_cli.exceptions import EmptyDataset
from riskreport_cli.models.assessments import (
    IMPLEMENTED_STATUSES,
    NIST_FUNCTION_ORDER,
    Assessment,
    ControlAssessment,
    ImplementationStatus,
)
from riskreport_cli.models.register import MitigationState, RiskRegisterEntry
from riskreport_cli.models.reports import Recommendation, ReportKind
from riskreport_cli.models.scoring import THREAT_THRESHOLDS, RiskLevel
from riskreport_cli.models.statistics import AssessmentStatistics
from riskreport_cli.reports import recommendations
from riskreport_cli.reports.base import BaseReportGenerator, ReportContent, Section, format_date
from riskreport_cli.reports.blocks import (
    LEVEL_COLORS,
    BarSegment,
    Block,
    Card,
    DistributionBar,
    Finding,
    FindingGroup,
    Heading,
    KeyValueBox,
    Paragraph,
    ProgressBars,
    ProgressRow,
    RecommendationList,
    SummaryCards,
    TableBlock,
)
from riskreport_cli.reports.layout import MUTED_COLOR
from riskreport_cli.statistics import summarize_assessment

STATUS_COLORS: Dict[ImplementationStatus, str] = {
    ImplementationStatus.FULLY_IMPLEMENTED: "#10b981",
    ImplementationStatus.LARGELY_IMPLEMENTED: "#34d399",
    ImplementationStatus.PARTIALLY_IMPLEMENTED: "#f59e0b",
    ImplementationStatus.NOT_IMPLEMENTED: "#ef4444",
    ImplementationStatus.AT_RISK: "#7f1d1d",
    ImplementationStatus.NOT_APPLICABLE: "#6b7280",
}

FUNCTION_COLORS: Dict[str, str] = {
    "ID": "#3b82f6",
    "PR": "#8b5cf6",
    "DE": "#f59e0b",
    "RS": "#ef4444",
    "RC": "#10b981",
}


def score_color(score: float) -> str:
    if score >= 80:
        return "#10b981"
    if score >= 60:
        return "#f59e0b"
    if score >= 40:
        return "#fb923c"
    return "#ef4444"


def _status_label(status: ImplementationStatus) -> str:
    return status.value.replace("_", " ").title()


def key_findings(stats: AssessmentStatistics) -> List[str]:
    findings: List[str] = []
    rate = stats.implementation_rate
    if rate >= 80:
        findings.append(
            f"Strong overall compliance at {rate}%, demonstrating mature cybersecurity practices."
        )
    elif rate >= 50:
        findings.append(
            f"Moderate compliance at {rate}%, with significant room for improvement "
            "in cybersecurity posture."
        )
    else:
        findings.append(
            f"Low compliance at {rate}%, indicating critical gaps in cybersecurity controls "
            "that require immediate attention."
        )

    assessed = [row for row in stats.function_breakdown if row.assessed]
    if assessed:
        # min/max keep the first of equal rates, so display order breaks ties
        weakest = min(assessed, key=lambda row: row.rate)
        if weakest.rate < 70:
            findings.append(
                f"The {weakest.label} function shows the lowest compliance at {weakest.rate}%, "
                "representing a priority area for improvement."
            )
        strongest = max(assessed, key=lambda row: row.rate)
        if strongest.rate >= 80:
            findings.append(
                f"The {strongest.label} function demonstrates strong compliance at "
                f"{strongest.rate}%, serving as a model for other areas."
            )

    counts = {group.key: group.count for group in stats.status_breakdown}
    partial = counts.get(ImplementationStatus.PARTIALLY_IMPLEMENTED.value, 0)
    if partial:
        findings.append(
            f"{partial} controls are partially implemented, showing active effort toward "
            "improving compliance."
        )
    missing = counts.get(ImplementationStatus.NOT_IMPLEMENTED.value, 0)
    if stats.assessed_controls and missing > stats.assessed_controls * 0.3:
        share = round(missing / stats.assessed_controls * 100)
        findings.append(
            f"{missing} controls have not been implemented ({share}% of assessed), "
            "requiring immediate action planning."
        )
    return findings


class ComplianceReportGenerator(BaseReportGenerator):
    kind = ReportKind.ASSESSMENT
    file_prefix = "compliance-report"

    def build(self, subject_id: int, organization: str) -> ReportContent:
        assessment = self.repo.get_assessment(subject_id)
        entries = self.repo.list_control_entries(subject_id)
        if not entries:
            raise EmptyDataset(
                f"Assessment {subject_id} has no assessed controls. Assess at least one control "
                "before generating a report."
            )
        register = self.repo.list_register_entries(assessment_id=subject_id)
        now = self.now
        stats = summarize_assessment(
            assessment, self.repo.count_catalogue_controls(), entries, register, now,
        )
        open_risks = _open_risk_by_control(register)

        content = ReportContent(
            kind=self.kind,
            subject_id=subject_id,
            title=f"NIST CSF Compliance Report - {assessment.name}",
            subject_name=assessment.name,
            organization=organization,
            generated_by=self.generated_by,
            generated_at=now,
            statistics=stats,
            summary={
                "assessment": assessment.name,
                "organization": organization,
                "framework_version": assessment.framework_version,
                "completion_percentage": stats.completion_percentage,
                "implementation_rate": stats.implementation_rate,
            },
        )
        content.sections = [
            self._title_section(assessment, organization, stats, content),
            self._summary_section(stats),
            self._findings_section(entries, open_risks),
            self._register_section(register, stats),
            self._evidence_section(entries, stats),
            Section("Recommendations", [
                Heading("Recommendations", size=20),
                self.recommendations(entries, register, stats),
            ]),
        ]
        return content

    def _title_section(
        self,
        assessment: Assessment,
        organization: str,
        stats: AssessmentStatistics,
        content: ReportContent,
    ) -> Section:
        return Section("Title", [
            Paragraph("NIST Cybersecurity Framework", size=28, bold=True, align="center"),
            Paragraph("Compliance Assessment Report", size=24, color=MUTED_COLOR, align="center"),
            KeyValueBox([
                ("Organization", organization),
                ("Assessment", assessment.name),
                ("Framework Version", assessment.framework_version),
                ("Report Date", format_date(content.generated_at)),
                ("Status", assessment.status.upper()),
                ("Completion", f"{stats.completion_percentage:.2f}%"),
            ]),
        ], decorated=False)

    def _summary_section(self, stats: AssessmentStatistics) -> Section:
        at_risk = next(
            (g.count for g in stats.status_breakdown if g.key == ImplementationStatus.AT_RISK.value), 0,
        )
        blocks: List[Block] = [
            Heading("Executive Summary", size=20),
            SummaryCards([
                Card("Implementation", f"{stats.implementation_rate}%", score_color(stats.implementation_rate)),
                Card("Completion", f"{stats.completion_percentage:.0f}%", "#3b82f6"),
                Card("Assessed", f"{stats.assessed_controls}/{stats.total_controls}", "#6b7280"),
                Card("At Risk", str(at_risk), LEVEL_COLORS[RiskLevel.CRITICAL]),
            ]),
            DistributionBar("Implementation Status", [
                BarSegment(g.label, g.count, STATUS_COLORS[ImplementationStatus(g.key)])
                for g in stats.status_breakdown
            ]),
            ProgressBars("Compliance by NIST CSF Function", [
                ProgressRow(
                    label=f"{row.label} ({row.function})",
                    percentage=row.rate,
                    caption=f"{row.implemented}/{row.assessed} controls",
                    color=score_color(row.rate),
                )
                for row in stats.function_breakdown
            ]),
        ]
        if stats.average_compliance_score is not None:
            blocks.append(Paragraph(f"Average compliance score: {stats.average_compliance_score:.2f}"))
        blocks.append(Heading("Key Findings", size=14))
        blocks.extend(
            Paragraph(f"{i}. {text}", indent=20)
            for i, text in enumerate(key_findings(stats), start=1)
        )
        return Section("Executive Summary", blocks)

    def _findings_section(
        self,
        entries: List[ControlAssessment],
        open_risks: Dict[int, RiskRegisterEntry],
    ) -> Section:
        blocks: List[Block] = [Heading("Detailed Assessment Results", size=20)]
        for function in NIST_FUNCTION_ORDER:
            members = [e for e in entries if e.function == function]
            if not members:
                continue
            members.sort(key=lambda e: (_risk_score(open_risks.get(e.control_id)), e.recency), reverse=True)
            blocks.append(FindingGroup(
                key=function.value,
                title=f"{function.label} ({function.value})",
                color=FUNCTION_COLORS[function.value],
                subtitle=f"{len(members)} assessed controls",
                findings=[_control_finding(e, open_risks.get(e.control_id)) for e in members],
            ))
        unmapped = [e for e in entries if e.function is None]
        if unmapped:
            blocks.append(FindingGroup(
                key="other",
                title="Other Controls",
                color=MUTED_COLOR,
                findings=[_control_finding(e, open_risks.get(e.control_id)) for e in unmapped],
            ))
        return Section("Detailed Results", blocks)

    def _register_section(self, register: List[RiskRegisterEntry], stats: AssessmentStatistics) -> Section:
        blocks: List[Block] = [Heading("Risk Register", size=20)]
        if not register:
            blocks.append(Paragraph("No risk register entries are linked to this assessment."))
            return Section("Risk Register", blocks)
        blocks.append(Paragraph(
            f"{stats.register_total} risks recorded, {stats.register_open} open. "
            f"Overdue: {stats.register_due.overdue}. Due within 30 days: {stats.register_due.due_soon}."
        ))
        ordered = sorted(register, key=lambda r: _risk_score(r), reverse=True)
        blocks.append(TableBlock(
            columns=["Risk ID", "Control", "Description", "Score", "Level", "Status", "Deadline"],
            rows=[
                [
                    r.risk_id,
                    r.subcategory_id,
                    r.description,
                    str(r.risk_score) if r.risk_score is not None else "",
                    r.risk_level.label if r.risk_level else "",
                    r.status.value,
                    r.mitigation_deadline.isoformat() if r.mitigation_deadline else "",
                ]
                for r in ordered
            ],
            widths=[95, 50, 160, 35, 50, 60, 62],
        ))
        return Section("Risk Register", blocks)

    def _evidence_section(self, entries: List[ControlAssessment], stats: AssessmentStatistics) -> Section:
        blocks: List[Block] = [Heading("Evidence Summary", size=20)]
        documented = [e for e in entries if e.evidence_count > 0]
        if not documented:
            blocks.append(Paragraph("No evidence files have been attached to this assessment."))
            return Section("Evidence Summary", blocks, threshold=680)
        blocks.append(Paragraph(f"Total Evidence Files: {stats.evidence_files}"))
        blocks.append(Paragraph(f"Controls with Evidence: {stats.controls_with_evidence}"))
        blocks.append(TableBlock(
            columns=["Control", "Evidence"],
            rows=[
                [
                    f"{e.control_code} - {e.control_name}",
                    f"{e.evidence_count} file{'s' if e.evidence_count != 1 else ''}",
                ]
                for e in documented
            ],
            widths=[412, 100],
        ))
        return Section("Evidence Summary", blocks, threshold=680)

    def recommendations(
        self,
        entries: List[ControlAssessment],
        register: List[RiskRegisterEntry],
        stats: AssessmentStatistics,
    ) -> RecommendationList:
        open_risks = _open_risk_by_control(register)
        entities = [
            recommendations.RiskEntity(
                name=e.control_code,
                risk_score=open_risks[e.control_id].risk_score if e.control_id in open_risks else None,
                protections=e.evidence_count,
                effectively_protected=e.status in IMPLEMENTED_STATUSES,
                early_stage=e.status is ImplementationStatus.NOT_IMPLEMENTED,
            )
            for e in entries
        ]
        rule_input = recommendations.RuleInput(
            entities=entities,
            coverage=stats.evidence_coverage,
            pending=sum(1 for r in register if r.status is MitigationState.NOT_STARTED),
            in_progress=sum(1 for r in register if r.status is MitigationState.IN_PROGRESS),
        )
        items = recommendations.evaluate(
            rule_input, recommendations.CONTROL_VOCABULARY, THREAT_THRESHOLDS,
        )
        extras: List[Optional[Recommendation]] = [
            recommendations.critical_not_started([
                e.control_code for e in entries if e.status is ImplementationStatus.NOT_IMPLEMENTED
            ]),
            recommendations.in_progress_controls(sum(1 for e in entries if e.status in _IN_PROGRESS)),
            recommendations.undocumented_complete(sum(
                1 for e in entries
                if e.status is ImplementationStatus.FULLY_IMPLEMENTED and e.evidence_count == 0
            )),
            recommendations.remaining_controls(stats.total_controls - stats.assessed_controls),
        ]
        items.extend(rec for rec in extras if rec is not None)
        return RecommendationList(items=items, positive=recommendations.CONTROLS_ADDRESSED)


_IN_PROGRESS = frozenset({
    ImplementationStatus.PARTIALLY_IMPLEMENTED,
    ImplementationStatus.LARGELY_IMPLEMENTED,
})


def _risk_score(entry: Optional[RiskRegisterEntry]) -> int:
    if entry is None or entry.risk_score is None:
        return -1
    return entry.risk_score


def _open_risk_by_control(register: List[RiskRegisterEntry]) -> Dict[int, RiskRegisterEntry]:
    """Highest-scoring open register entry per control."""
    result: Dict[int, RiskRegisterEntry] = {}
    for entry in register:
        if entry.control_id is None or not entry.is_open:
            continue
        current = result.get(entry.control_id)
        if current is None or _risk_score(entry) > _risk_score(current):
            result[entry.control_id] = entry
    return result


def _control_finding(entry: ControlAssessment, risk: Optional[RiskRegisterEntry]) -> Finding:
    details: List[str] = []
    if entry.category_name:
        details.append(f"Category: {entry.category_name}")
    facts: List[str] = []
    if entry.maturity_level:
        facts.append(f"Maturity: {entry.maturity_level.value.replace('_', ' ').title()}")
    if entry.compliance_score is not None:
        facts.append(f"Score: {entry.compliance_score:g}")
    if entry.assessed_by:
        facts.append(f"Assessed by: {entry.assessed_by}")
    if facts:
        details.append(" | ".join(facts))
    if entry.notes:
        details.append(f"Comments: {entry.notes}")
    if entry.recommendations:
        details.append(f"Recommendations: {entry.recommendations}")
    if entry.evidence_count:
        plural = "s" if entry.evidence_count > 1 else ""
        details.append(f"{entry.evidence_count} evidence file{plural} attached")
    if risk is not None:
        level = risk.risk_level.label if risk.risk_level else "Unrated"
        details.append(f"Open risk {risk.risk_id}: score {risk.risk_score} ({level}), {risk.status.value}")
    return Finding(
        title=f"{entry.control_code} {entry.control_name}".strip(),
        badge=_status_label(entry.status).upper(),
        badge_color=STATUS_COLORS[entry.status],
        details=details,
    )
