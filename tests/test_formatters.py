from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path

import pytest
import yaml

from riskreport_cli.exceptions import InvalidInput
from riskreport_cli.formatters.base import to_plain
from riskreport_cli.formatters.json_formatter import JsonFormatter
from riskreport_cli.formatters.markdown_formatter import MarkdownFormatter
from riskreport_cli.formatters.pdf_formatter import PdfFormatter
from riskreport_cli.formatters.registry import formatter_for
from riskreport_cli.formatters.yaml_formatter import YamlFormatter
from riskreport_cli.models.reports import ReportFormat
from riskreport_cli.models.scoring import RiskLevel
from riskreport_cli.reports.base import ReportContent
from riskreport_cli.reports.blocks import MatrixPoint, RiskMatrix
from riskreport_cli.reports.threats import ThreatReportGenerator
from riskreport_cli.statistics import threat_model_statistics
from riskreport_cli.storage.memory import InMemoryRepository


@pytest.fixture
def content(repo: InMemoryRepository, now: datetime) -> ReportContent:
    return ThreatReportGenerator(repo, now=now).build(1, "Acme Corp")


class TestToPlain:
    def test_scalars(self) -> None:
        assert to_plain(RiskLevel.HIGH) == "high"
        assert to_plain(date(2024, 1, 2)) == "2024-01-02"
        assert to_plain({RiskLevel.LOW: (1, 2)}) == {"low": [1, 2]}

    def test_blocks_carry_type_and_matrix_cells(self) -> None:
        plain = to_plain(RiskMatrix([MatrixPoint(5, 5, "x")]))
        assert plain["type"] == "RiskMatrix"
        assert len(plain["cells"]) == 25
        assert plain["markers"][0]["x"] == 360


class TestJsonFormatter:
    def test_dump_trailing_newline_and_unicode(self) -> None:
        data = JsonFormatter().dump({"name": "Zürich"})
        assert data.endswith(b"\n")
        assert "Zürich" in data.decode("utf-8")

    def test_render(self, content: ReportContent) -> None:
        payload = json.loads(JsonFormatter().render(content))
        assert payload["kind"] == "threat_model"
        assert [s["title"] for s in payload["sections"]][:3] == ["Title", "Executive Summary", "Risk Matrix"]
        matrix = payload["sections"][2]["blocks"][-1]
        assert matrix["type"] == "RiskMatrix"

    def test_write(self, tmp_path: Path) -> None:
        path = tmp_path / "out.json"
        JsonFormatter().write({"a": 1}, path)
        assert json.loads(path.read_text(encoding="utf-8")) == {"a": 1}


class TestYamlFormatter:
    def test_dump_statistics(self, repo: InMemoryRepository, now: datetime) -> None:
        data = YamlFormatter().dump(threat_model_statistics(repo, 1, now))
        loaded = yaml.safe_load(data)
        assert loaded["total_threats"] == 3
        assert loaded["level_breakdown"][0] == {
            "key": "critical", "label": "Critical", "count": 1,
            "high_risk": None, "average_score": None,
        }

    def test_keeps_key_order(self) -> None:
        text = YamlFormatter().dump({"b": 1, "a": 2}).decode("utf-8")
        assert text.index("b:") < text.index("a:")


class TestMarkdownFormatter:
    def test_render_text_with_frontmatter(self) -> None:
        result = MarkdownFormatter.render_text(
            title="Test", body="Body text", frontmatter={"kind": "assessment"},
        )
        assert result.startswith("---\nkind: assessment\n---\n")
        assert "# Test\n" in result
        assert "Body text" in result

    def test_long_lines_are_wrapped(self) -> None:
        body = " ".join(["word"] * 60)
        result = MarkdownFormatter.render_text(title="", body=body)
        assert all(len(line) <= 120 for line in result.splitlines())

    def test_render_report(self, content: ReportContent) -> None:
        text = MarkdownFormatter().render(content).decode("utf-8")
        assert text.startswith("---\n")
        assert "# Threat Model Report - Payments API" in text
        assert "## Risk Matrix" in text
        assert "| Impact \\ Likelihood | Very Low | Low | Medium | High | Very High |" in text
        assert "| Very High | 5 Low | 10 Medium | 15 High | 20 Critical | 25 Critical (1) |" in text
        assert "#### Stolen operator credentials `CRITICAL (25)`" in text
        assert "1. **[Critical Priority] Address Critical Threats Immediately**" in text

    def test_dump_statistics_as_frontmatter(self, repo: InMemoryRepository, now: datetime) -> None:
        text = MarkdownFormatter().dump(threat_model_statistics(repo, 1, now)).decode("utf-8")
        front = yaml.safe_load(text.split("---\n")[1])
        assert front["total_threats"] == 3


class TestPdfFormatter:
    def test_render(self, content: ReportContent) -> None:
        data = PdfFormatter().render(content)
        assert data.startswith(b"%PDF")
        assert b"%%EOF" in data[-64:]

    def test_statistics_not_supported(self) -> None:
        with pytest.raises(InvalidInput):
            PdfFormatter().dump({"a": 1})


class TestRegistry:
    @pytest.mark.parametrize(
        "fmt,cls,ext",
        [
            ("pdf", PdfFormatter, ".pdf"),
            ("markdown", MarkdownFormatter, ".md"),
            (ReportFormat.JSON, JsonFormatter, ".json"),
            ("yaml", YamlFormatter, ".yaml"),
        ],
    )
    def test_lookup(self, fmt: str, cls: type, ext: str) -> None:
        formatter = formatter_for(fmt)
        assert isinstance(formatter, cls)
        assert formatter.file_extension() == ext

    def test_unknown(self) -> None:
        with pytest.raises(InvalidInput, match="Unsupported format"):
            formatter_for("docx")
