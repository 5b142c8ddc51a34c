from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from riskreport_cli.exceptions import InvalidInput
from riskreport_cli.formatters.registry import formatter_for
from riskreport_cli.models.reports import ReportDocument, ReportFormat, ReportKind, ReportMetadata
from riskreport_cli.models.statistics import AssessmentStatistics, ThreatModelStatistics
from riskreport_cli.reports.blocks import Block
from riskreport_cli.reports.layout import BLOCK_SPACING, CONTENT_THRESHOLD, MARGIN, Page, PageLayout
from riskreport_cli.storage.base import Repository

logger = logging.getLogger(__name__)

_UNIT_SPACING = 6


@dataclass
class Section:
    title: str
    blocks: List[Block]
    decorated: bool = True
    threshold: float = CONTENT_THRESHOLD


@dataclass
class ReportContent:
    """Everything a formatter needs: ordered sections plus headline facts."""

    kind: ReportKind
    subject_id: int
    title: str
    subject_name: str
    organization: str
    generated_by: str
    generated_at: datetime
    statistics: Union[AssessmentStatistics, ThreatModelStatistics]
    sections: List[Section] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    _pages: Optional[List[Page]] = field(default=None, repr=False)

    def pages(self) -> List[Page]:
        if self._pages is None:
            self._pages = paginate(self.sections)
        return self._pages


def paginate(sections: List[Section]) -> List[Page]:
    """Lay sections out on pages, one new page per section.

    Room is checked before every unit, so grouped findings break per finding
    and tables per row.
    """
    layout = PageLayout()
    for section in sections:
        layout.threshold = section.threshold
        layout.new_page(section.title, decorated=section.decorated)
        for block in section.blocks:
            units = block.units()
            for index, unit in enumerate(units):
                height = unit.height()
                layout.ensure_room(height)
                last = index == len(units) - 1
                layout.add(unit.render(MARGIN, layout.y), height,
                           spacing=_spacing(last, len(units)))
    return layout.pages


def _spacing(last: bool, count: int) -> float:
    if count > 1 and not last:
        return _UNIT_SPACING
    return BLOCK_SPACING


def format_date(moment: datetime) -> str:
    return f"{moment:%B} {moment.day}, {moment.year}"


class BaseReportGenerator(ABC):
    kind: ReportKind
    file_prefix: str

    def __init__(
        self,
        repo: Repository,
        *,
        generated_by: str = "riskreport-cli",
        now: Optional[datetime] = None,
    ) -> None:
        self.repo = repo
        self.generated_by = generated_by
        self._now = now

    @property
    def now(self) -> datetime:
        return self._now or datetime.now(timezone.utc)

    @abstractmethod
    def build(self, subject_id: int, organization: str) -> ReportContent:
        """Load data and assemble the report sections."""
        ...

    def generate(
        self,
        subject_id: int,
        organization: str,
        fmt: Union[str, ReportFormat] = ReportFormat.PDF,
    ) -> ReportDocument:
        try:
            report_format = ReportFormat(fmt)
        except ValueError as exc:
            raise InvalidInput(
                f"Unsupported report format '{fmt}'. Use pdf, markdown, json or yaml."
            ) from exc
        content = self.build(subject_id, organization)
        formatter = formatter_for(report_format)
        data = formatter.render(content)
        stamp = content.generated_at.strftime("%Y%m%d-%H%M%S")
        metadata = ReportMetadata(
            subject_id=subject_id,
            kind=self.kind,
            format=report_format,
            title=content.title,
            generated_by=content.generated_by,
            generated_at=content.generated_at,
            size=len(data),
            page_count=len(content.pages()),
            file_name=f"{self.file_prefix}-{subject_id}-{stamp}{formatter.file_extension()}",
        )
        logger.info(
            "Generated %s report for %s %s (%d bytes, %d pages)",
            report_format.value, self.kind.value, subject_id, metadata.size, metadata.page_count,
        )
        return ReportDocument(content=data, metadata=metadata)
