from __future__ import annotations

import textwrap
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import yaml

from riskreport_cli.formatters.base import BaseFormatter, to_plain
from riskreport_cli.models.scoring import Rating
from riskreport_cli.reports.blocks import (
    Block,
    DistributionBar,
    FindingGroup,
    Heading,
    KeyValueBox,
    Paragraph,
    ProgressBars,
    RecommendationList,
    RiskMatrix,
    SummaryCards,
    TableBlock,
)

if TYPE_CHECKING:
    from riskreport_cli.reports.base import ReportContent, Section


def _cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")


class MarkdownFormatter(BaseFormatter):
    _MAX_LINE_LENGTH = 120

    def render(self, content: "ReportContent") -> bytes:
        frontmatter: Dict[str, Any] = {
            "kind": content.kind.value,
            "subject_id": content.subject_id,
            "organization": content.organization,
            "generated_by": content.generated_by,
            "generated_at": content.generated_at.isoformat(),
        }
        frontmatter.update(to_plain(content.summary))
        body = "\n\n".join(self._render_section(s) for s in content.sections)
        return self.render_text(content.title, body, frontmatter).encode("utf-8")

    def dump(self, data: Any) -> bytes:
        return self._render_data(data).encode("utf-8")

    def file_extension(self) -> str:
        return ".md"

    @classmethod
    def render_text(
        cls,
        title: str,
        body: str,
        frontmatter: Optional[Dict[str, Any]] = None,
    ) -> str:
        parts = []
        if frontmatter:
            fm_text = yaml.dump(
                frontmatter,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            ).rstrip("\n")
            parts.append(f"---\n{fm_text}\n---\n")
        if title:
            parts.append(f"# {title}\n")
        if body:
            wrapped_body = cls._wrap_body(body.rstrip("\n"))
            parts.append(wrapped_body + "\n")
        return "\n".join(parts)

    def _render_data(self, data: Any) -> str:
        if isinstance(data, str):
            return data

        payload = to_plain(data)
        if not isinstance(payload, dict):
            return str(data)

        title = str(payload.get("title", ""))
        body = str(payload.get("body", ""))

        frontmatter_value = payload.get("frontmatter", payload.get("metadata"))
        frontmatter: Optional[Dict[str, Any]]
        if isinstance(frontmatter_value, dict):
            frontmatter = frontmatter_value
        else:
            excluded = {"title", "body", "frontmatter", "metadata"}
            generated = {k: v for k, v in payload.items() if k not in excluded}
            frontmatter = generated or None

        return self.render_text(title=title, body=body, frontmatter=frontmatter)

    def _render_section(self, section: "Section") -> str:
        parts: List[str] = []
        if section.decorated:
            parts.append(f"## {section.title}")
        for block in section.blocks:
            if isinstance(block, Heading) and block.text == section.title:
                continue
            rendered = self._render_block(block)
            if rendered:
                parts.append(rendered)
        return "\n\n".join(parts)

    def _render_block(self, block: Block) -> str:
        if isinstance(block, Heading):
            return f"### {block.text}"
        if isinstance(block, Paragraph):
            return f"**{block.text}**" if block.bold else block.text
        if isinstance(block, KeyValueBox):
            return "\n".join(f"- **{key}:** {value}" for key, value in block.rows)
        if isinstance(block, SummaryCards):
            return "\n".join(f"- **{card.label}:** {card.value}" for card in block.cards)
        if isinstance(block, DistributionBar):
            lines = [f"**{block.title}**", ""]
            lines.extend(f"- {s.label}: {s.count}" for s in block.segments)
            return "\n".join(lines)
        if isinstance(block, ProgressBars):
            lines = [f"**{block.title}**", ""]
            lines.extend(f"- {r.label}: {r.percentage}% ({r.caption})" for r in block.rows)
            return "\n".join(lines)
        if isinstance(block, RiskMatrix):
            return self._render_matrix(block)
        if isinstance(block, FindingGroup):
            return self._render_group(block)
        if isinstance(block, TableBlock):
            return self._render_table(block.columns, block.rows)
        if isinstance(block, RecommendationList):
            if not block.items:
                return block.positive
            return "\n".join(
                f"{i}. **[{rec.priority} Priority] {rec.title}** - {rec.description}"
                for i, rec in enumerate(block.items, start=1)
            )
        return ""

    def _render_matrix(self, matrix: RiskMatrix) -> str:
        counts: Dict[tuple, int] = {}
        for marker in matrix.markers():
            key = (marker.likelihood, marker.impact)
            counts[key] = counts.get(key, 0) + 1
        columns = ["Impact \\ Likelihood"] + [Rating.from_number(n).label for n in range(1, 6)]
        rows: List[List[str]] = []
        for impact in range(5, 0, -1):
            row = [Rating.from_number(impact).label]
            for likelihood in range(1, 6):
                cell = matrix.cell(likelihood, impact)
                text = f"{cell.score} {cell.level.label}"
                hits = counts.get((likelihood, impact), 0)
                if hits:
                    text += f" ({hits})"
                row.append(text)
            rows.append(row)
        return self._render_table(columns, rows)

    def _render_group(self, group: FindingGroup) -> str:
        lines = [f"### {group.title}"]
        if group.subtitle:
            lines.extend(["", f"_{group.subtitle}_"])
        for finding in group.findings:
            lines.extend(["", f"#### {finding.title} `{finding.badge}`", ""])
            for detail in finding.details:
                lines.append(detail if detail.startswith("- ") else f"{detail}  ")
        return "\n".join(lines)

    @staticmethod
    def _render_table(columns: List[str], rows: List[List[str]]) -> str:
        lines = [
            "| " + " | ".join(_cell(c) for c in columns) + " |",
            "|" + "|".join(" --- " for _ in columns) + "|",
        ]
        lines.extend("| " + " | ".join(_cell(v) for v in row) + " |" for row in rows)
        return "\n".join(lines)

    @classmethod
    def _wrap_body(cls, body: str) -> str:
        wrapped_lines = []
        for line in body.splitlines():
            if cls._should_preserve_line(line):
                wrapped_lines.append(line)
                continue
            wrapped_lines.append(
                textwrap.fill(
                    line,
                    width=cls._MAX_LINE_LENGTH,
                    break_long_words=False,
                    break_on_hyphens=False,
                )
            )
        return "\n".join(wrapped_lines)

    @classmethod
    def _should_preserve_line(cls, line: str) -> bool:
        if not line:
            return True
        if len(line) <= cls._MAX_LINE_LENGTH:
            return True
        if line.startswith(("#", "- ", "* ", "> ", "| ", "```", "    ", "\t")):
            return True
        if "`" in line or "](" in line or "**" in line:
            return True
        return False
