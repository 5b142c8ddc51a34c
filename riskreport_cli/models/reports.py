from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ReportKind(str, Enum):
    ASSESSMENT = "assessment"
    THREAT_MODEL = "threat_model"


class ReportFormat(str, Enum):
    PDF = "pdf"
    MARKDOWN = "markdown"
    JSON = "json"
    YAML = "yaml"


@dataclass(frozen=True)
class Recommendation:
    priority: str
    title: str
    description: str


@dataclass(frozen=True)
class ReportMetadata:
    subject_id: int
    kind: ReportKind
    format: ReportFormat
    title: str
    generated_by: str
    generated_at: datetime
    size: int
    page_count: int
    file_name: str


@dataclass(frozen=True)
class ReportDocument:
    """A generated report. Regenerating produces a new document."""

    content: bytes
    metadata: ReportMetadata
