from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from riskreport_cli.formatters.base import BaseFormatter, report_payload, to_plain

if TYPE_CHECKING:
    from riskreport_cli.reports.base import ReportContent


class JsonFormatter(BaseFormatter):
    def render(self, content: "ReportContent") -> bytes:
        return self.dump(report_payload(content))

    def dump(self, data: Any) -> bytes:
        text = json.dumps(to_plain(data), indent=2, ensure_ascii=False)
        return (text + "\n").encode("utf-8")

    def file_extension(self) -> str:
        return ".json"
