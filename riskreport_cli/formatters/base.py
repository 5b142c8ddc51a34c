from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict

from riskreport_cli.reports.blocks import Block, RiskMatrix

if TYPE_CHECKING:
    from riskreport_cli.reports.base import ReportContent


def to_plain(value: Any) -> Any:
    """Convert dataclasses, enums and dates into JSON/YAML friendly values.

    Blocks carry a ``type`` key naming the block; risk matrices also list
    their computed cells and markers.
    """
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        plain: Dict[str, Any] = {}
        if isinstance(value, Block):
            plain["type"] = type(value).__name__
        for f in fields(value):
            if f.name.startswith("_"):
                continue
            plain[f.name] = to_plain(getattr(value, f.name))
        if isinstance(value, RiskMatrix):
            plain["cells"] = to_plain(value.cells())
            plain["markers"] = to_plain(value.markers())
        return plain
    if isinstance(value, dict):
        return {str(to_plain(k)): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_plain(v) for v in value]
    return value


def report_payload(content: "ReportContent") -> Dict[str, Any]:
    return {
        "title": content.title,
        "kind": content.kind.value,
        "subject_id": content.subject_id,
        "subject_name": content.subject_name,
        "organization": content.organization,
        "generated_by": content.generated_by,
        "generated_at": content.generated_at.isoformat(),
        "summary": to_plain(content.summary),
        "statistics": to_plain(content.statistics),
        "sections": [
            {"title": section.title, "blocks": to_plain(section.blocks)}
            for section in content.sections
        ],
    }


class BaseFormatter(ABC):
    @abstractmethod
    def render(self, content: "ReportContent") -> bytes:
        ...

    @abstractmethod
    def dump(self, data: Any) -> bytes:
        """Serialize arbitrary data such as statistics."""
        ...

    @abstractmethod
    def file_extension(self) -> str:
        ...

    def write(self, data: Any, output_path: Path) -> None:
        payload = data if isinstance(data, bytes) else self.dump(data)
        with open(output_path, "wb") as f:
            f.write(payload)
