from __future__ import annotations

from typing import TYPE_CHECKING, Any

import yaml

from riskreport_cli.formatters.base import BaseFormatter, report_payload, to_plain

if TYPE_CHECKING:
    from riskreport_cli.reports.base import ReportContent


class YamlFormatter(BaseFormatter):
    def render(self, content: "ReportContent") -> bytes:
        return self.dump(report_payload(content))

    def dump(self, data: Any) -> bytes:
        text = yaml.dump(
            to_plain(data),
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
        )
        return text.encode("utf-8")

    def file_extension(self) -> str:
        return ".yaml"
