from __future__ import annotations

from typing import Dict, Type, Union

from riskreport_cli.exceptions import InvalidInput
from riskreport_cli.formatters.base import BaseFormatter
from riskreport_cli.formatters.json_formatter import JsonFormatter
from riskreport_cli.formatters.markdown_formatter import MarkdownFormatter
from riskreport_cli.formatters.pdf_formatter import PdfFormatter
from riskreport_cli.formatters.yaml_formatter import YamlFormatter
from riskreport_cli.models.reports import ReportFormat

FORMATTERS: Dict[ReportFormat, Type[BaseFormatter]] = {
    ReportFormat.PDF: PdfFormatter,
    ReportFormat.MARKDOWN: MarkdownFormatter,
    ReportFormat.JSON: JsonFormatter,
    ReportFormat.YAML: YamlFormatter,
}


def formatter_for(fmt: Union[str, ReportFormat]) -> BaseFormatter:
    try:
        report_format = ReportFormat(fmt)
    except ValueError as exc:
        raise InvalidInput(f"Unsupported format '{fmt}'. Use pdf, markdown, json or yaml.") from exc
    return FORMATTERS[report_format]()
