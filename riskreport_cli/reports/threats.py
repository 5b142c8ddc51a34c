from __future__ import annotations

from typing import Dict, List

from riskreport_cli.exceptions import EmptyDataset
from riskreport_cli.models.reports import ReportKind
from riskreport_cli.models.scoring import THREAT_THRESHOLDS, RiskLevel
from riskreport_cli.models.statistics import ThreatModelStatistics
from riskreport_cli.models.threats import (
    EARLY_THREAT_STATUSES,
    EFFECTIVE_MITIGATION_STATUSES,
    STRIDE_ORDER,
    Asset,
    Mitigation,
    StrideCategory,
    Threat,
    ThreatModel,
)
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
    MatrixPoint,
    Paragraph,
    ProgressBars,
    ProgressRow,
    RecommendationList,
    RiskMatrix,
    SummaryCards,
    TableBlock,
)
from riskreport_cli.reports.layout import MUTED_COLOR
from riskreport_cli.statistics import summarize_threat_model

STRIDE_COLORS: Dict[StrideCategory, str] = {
    StrideCategory.SPOOFING: "#ef4444",
    StrideCategory.TAMPERING: "#f97316",
    StrideCategory.REPUDIATION: "#f59e0b",
    StrideCategory.INFORMATION_DISCLOSURE: "#8b5cf6",
    StrideCategory.DENIAL_OF_SERVICE: "#3b82f6",
    StrideCategory.ELEVATION_OF_PRIVILEGE: "#ec4899",
}

_FINDINGS_THRESHOLD = 600
_ASSETS_THRESHOLD = 680


def _title_case(value: str) -> str:
    return value.replace("_", " ").title() if value else "N/A"


def build_matrix(threats: List[Threat]) -> RiskMatrix:
    return RiskMatrix(points=[
        MatrixPoint(likelihood=t.likelihood.number, impact=t.impact.number, label=t.title)
        for t in threats
    ])


class ThreatReportGenerator(BaseReportGenerator):
    kind = ReportKind.THREAT_MODEL
    file_prefix = "threat-report"

    def build(self, subject_id: int, organization: str) -> ReportContent:
        model = self.repo.get_threat_model(subject_id)
        threats = self.repo.list_threats(subject_id)
        if not threats:
            raise EmptyDataset(
                f"Threat model {subject_id} has no threats. Identify at least one threat "
                "before generating a report."
            )
        mitigations = self.repo.list_model_mitigations(subject_id)
        assets = self.repo.list_assets(subject_id)
        now = self.now
        stats = summarize_threat_model(model, threats, mitigations, assets, now)

        content = ReportContent(
            kind=self.kind,
            subject_id=subject_id,
            title=f"Threat Model Report - {model.name}",
            subject_name=model.name,
            organization=organization,
            generated_by=self.generated_by,
            generated_at=now,
            statistics=stats,
            summary={
                "threat_model": model.name,
                "system": model.system_name,
                "organization": organization,
                "total_threats": stats.total_threats,
                "mitigation_coverage": stats.mitigation_coverage,
            },
        )
        content.sections = [
            self._title_section(model, organization, stats, content),
            self._summary_section(stats),
            Section("Risk Matrix", [
                Heading("Risk Matrix", size=20),
                Paragraph(
                    "Each marker is one threat, placed by likelihood and impact. Cells are "
                    "colored by the risk level of their score.",
                    color=MUTED_COLOR,
                ),
                build_matrix(threats),
            ]),
            self._findings_section(threats, mitigations),
            self._asset_section(assets, threats),
            Section("Recommendations", [
                Heading("Recommendations", size=20),
                self.recommendations(threats, mitigations, stats),
            ], threshold=620),
        ]
        return content

    def _title_section(
        self,
        model: ThreatModel,
        organization: str,
        stats: ThreatModelStatistics,
        content: ReportContent,
    ) -> Section:
        average = f"{stats.average_risk_score:.2f}" if stats.average_risk_score is not None else "N/A"
        return Section("Title", [
            Paragraph("STRIDE Threat Model", size=28, bold=True, align="center"),
            Paragraph("Threat Analysis Report", size=24, color=MUTED_COLOR, align="center"),
            KeyValueBox([
                ("Organization", organization),
                ("Threat Model", model.name),
                ("System", model.system_name or "N/A"),
                ("Report Date", format_date(content.generated_at)),
                ("Status", model.status.upper()),
                ("Average Risk", average),
            ]),
        ], decorated=False)

    def _summary_section(self, stats: ThreatModelStatistics) -> Section:
        total = stats.total_threats
        effectiveness = (
            f"{stats.effectiveness_average:.2f}" if stats.effectiveness_average is not None else "N/A"
        )
        blocks: List[Block] = [
            Heading("Executive Summary", size=20),
            SummaryCards([
                Card("Total Threats", str(total), "#3b82f6"),
                Card("Critical", str(stats.level_count(RiskLevel.CRITICAL.value)), LEVEL_COLORS[RiskLevel.CRITICAL]),
                Card("High", str(stats.level_count(RiskLevel.HIGH.value)), LEVEL_COLORS[RiskLevel.HIGH]),
                Card("Mitigated", f"{stats.mitigation_coverage}%", LEVEL_COLORS[RiskLevel.LOW]),
            ]),
            DistributionBar("Risk Distribution", [
                BarSegment(group.label, group.count, LEVEL_COLORS[RiskLevel(group.key)])
                for group in stats.level_breakdown
            ]),
            ProgressBars("Threats by STRIDE Category", [
                ProgressRow(
                    label=group.label,
                    percentage=round(group.count / total * 100) if total else 0,
                    caption=f"{group.count} threats, {group.high_risk} high risk",
                    color=STRIDE_COLORS[StrideCategory(group.key)],
                )
                for group in stats.stride_breakdown
            ]),
            Heading("Mitigation Status", size=14),
            Paragraph(
                f"{stats.total_mitigations} mitigations across {stats.threats_with_mitigations} threats. "
                f"{stats.pending_mitigations} proposed or approved, "
                f"{stats.in_progress_mitigations} in progress. "
                f"Average effectiveness: {effectiveness}."
            ),
            Paragraph(
                f"Overdue mitigations: {stats.mitigations_due.overdue}. "
                f"Due within 30 days: {stats.mitigations_due.due_soon}.",
                color=MUTED_COLOR,
            ),
        ]
        return Section("Executive Summary", blocks)

    def _findings_section(self, threats: List[Threat], mitigations: Dict[int, List[Mitigation]]) -> Section:
        blocks: List[Block] = [Heading("Threat Analysis", size=20)]
        for category in STRIDE_ORDER:
            members = [t for t in threats if t.stride_category == category]
            if not members:
                continue
            members.sort(key=lambda t: (t.risk_score, t.recency), reverse=True)
            blocks.append(FindingGroup(
                key=category.value,
                title=f"{category.label} ({category.value})",
                color=STRIDE_COLORS[category],
                subtitle=f"{len(members)} threat{'s' if len(members) != 1 else ''}",
                findings=[_threat_finding(t, mitigations.get(t.id, [])) for t in members],
            ))
        return Section("Threat Analysis", blocks, threshold=_FINDINGS_THRESHOLD)

    def _asset_section(self, assets: List[Asset], threats: List[Threat]) -> Section:
        blocks: List[Block] = [Heading("Asset Summary", size=20)]
        if not assets:
            blocks.append(Paragraph("No assets have been defined for this threat model."))
            return Section("Asset Summary", blocks, threshold=_ASSETS_THRESHOLD)
        counts: Dict[int, List[int]] = {a.id: [0, 0] for a in assets}
        for threat in threats:
            if threat.asset_id in counts:
                counts[threat.asset_id][0] += 1
                if threat.risk_score >= THREAT_THRESHOLDS.high_min:
                    counts[threat.asset_id][1] += 1
        ordered = sorted(assets, key=lambda a: counts[a.id][0], reverse=True)
        with_threats = sum(1 for a in assets if counts[a.id][0])
        blocks.append(Paragraph(f"Total Assets: {len(assets)}. Assets with threats: {with_threats}."))
        blocks.append(TableBlock(
            columns=["Asset", "Type", "Criticality", "Threats", "High Risk"],
            rows=[
                [a.name, _title_case(a.asset_type), _title_case(a.criticality),
                 str(counts[a.id][0]), str(counts[a.id][1])]
                for a in ordered
            ],
            widths=[180, 100, 92, 70, 70],
        ))
        return Section("Asset Summary", blocks, threshold=_ASSETS_THRESHOLD)

    def recommendations(
        self,
        threats: List[Threat],
        mitigations: Dict[int, List[Mitigation]],
        stats: ThreatModelStatistics,
    ) -> RecommendationList:
        entities = [
            recommendations.RiskEntity(
                name=t.title,
                risk_score=t.risk_score,
                protections=len(mitigations.get(t.id, [])),
                effectively_protected=any(
                    m.status in EFFECTIVE_MITIGATION_STATUSES for m in mitigations.get(t.id, [])
                ),
                early_stage=t.status in EARLY_THREAT_STATUSES,
            )
            for t in threats
        ]
        rule_input = recommendations.RuleInput(
            entities=entities,
            coverage=stats.mitigation_coverage,
            pending=stats.pending_mitigations,
            in_progress=stats.in_progress_mitigations,
        )
        items = recommendations.evaluate(rule_input, recommendations.THREAT_VOCABULARY, THREAT_THRESHOLDS)
        return RecommendationList(items=items, positive=recommendations.THREATS_ADDRESSED)


def _threat_finding(threat: Threat, mitigations: List[Mitigation]) -> Finding:
    level = THREAT_THRESHOLDS.level_for(threat.risk_score)
    details = [
        f"Likelihood: {threat.likelihood.label} | Impact: {threat.impact.label} | "
        f"Status: {_title_case(threat.status.value)}",
    ]
    if threat.asset_name:
        details.append(f"Asset: {threat.asset_name}")
    if threat.description:
        details.append(threat.description)
    if mitigations:
        details.append(f"Mitigations ({len(mitigations)}):")
        for m in mitigations:
            text = f"- {_title_case(m.strategy.value)}: {m.description}" if m.description else \
                f"- {_title_case(m.strategy.value)}"
            details.append(f"{text} [{_title_case(m.status.value)}, {m.priority.value} priority]")
    else:
        details.append("No mitigations defined.")
    return Finding(
        title=threat.title,
        badge=f"{level.label.upper()} ({threat.risk_score})",
        badge_color=LEVEL_COLORS[level],
        details=details,
    )
