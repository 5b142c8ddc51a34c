"""Document blocks.

A block knows its own height and how to draw itself at a position. Blocks
that may span pages split into ``units``; the layout pass checks for room
before each unit, so a long findings group or table continues on the next
page one finding or row at a time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from riskreport_cli.models.reports import Recommendation
from riskreport_cli.models.scoring import THREAT_THRESHOLDS, Rating, RiskLevel, ThresholdTable
from riskreport_cli.reports.layout import (
    CONTENT_WIDTH,
    MUTED_COLOR,
    RULE_COLOR,
    TEXT_COLOR,
    CircleElement,
    Element,
    LineElement,
    RectElement,
    TextElement,
    line_height,
    wrap_text,
)

LEVEL_COLORS: Dict[RiskLevel, str] = {
    RiskLevel.CRITICAL: "#7f1d1d",
    RiskLevel.HIGH: "#ef4444",
    RiskLevel.MEDIUM: "#f59e0b",
    RiskLevel.LOW: "#10b981",
}

PRIORITY_COLORS: Dict[str, str] = {
    "Critical": "#7f1d1d",
    "High": "#ef4444",
    "Medium": "#f59e0b",
    "Low": "#3b82f6",
}

WHITE = "#ffffff"


class Block:
    def units(self) -> List["Block"]:
        return [self]

    def height(self) -> float:
        raise NotImplementedError

    def render(self, x: float, y: float) -> List[Element]:
        raise NotImplementedError


@dataclass
class Heading(Block):
    text: str
    size: float = 16
    color: str = TEXT_COLOR

    def height(self) -> float:
        return line_height(self.size)

    def render(self, x: float, y: float) -> List[Element]:
        return [TextElement(x, y, self.text, size=self.size, color=self.color, bold=True)]


@dataclass
class Paragraph(Block):
    text: str
    size: float = 10
    color: str = TEXT_COLOR
    indent: float = 0
    bold: bool = False
    align: str = "left"

    def lines(self) -> List[str]:
        return wrap_text(self.text, self.size, CONTENT_WIDTH - self.indent, self.bold)

    def height(self) -> float:
        return len(self.lines()) * line_height(self.size)

    def render(self, x: float, y: float) -> List[Element]:
        step = line_height(self.size)
        if self.align == "center":
            x = x + CONTENT_WIDTH / 2
        return [
            TextElement(x + self.indent, y + i * step, line, size=self.size,
                        color=self.color, bold=self.bold, align=self.align)
            for i, line in enumerate(self.lines())
        ]


@dataclass
class KeyValueBox(Block):
    rows: List[Tuple[str, str]]
    width: float = 412
    offset: float = 50
    row_height: float = 30

    def height(self) -> float:
        return self.row_height * (len(self.rows) + 1)

    def render(self, x: float, y: float) -> List[Element]:
        left = x + self.offset
        elements: List[Element] = [
            RectElement(left, y, self.width, self.height(), fill="#f9fafb", stroke=RULE_COLOR),
        ]
        for i, (key, value) in enumerate(self.rows):
            row_y = y + self.row_height * (i + 0.5) + 6
            elements.append(TextElement(left + 20, row_y, f"{key}:", size=11, color=MUTED_COLOR, bold=True))
            elements.append(TextElement(left + 150, row_y, value, size=11))
        return elements


@dataclass
class Card:
    label: str
    value: str
    color: str


@dataclass
class SummaryCards(Block):
    cards: List[Card]
    card_width: float = 120
    card_height: float = 70
    gap: float = 10

    @property
    def per_row(self) -> int:
        return max(1, int((CONTENT_WIDTH + self.gap) // (self.card_width + self.gap)))

    def height(self) -> float:
        rows = max(1, -(-len(self.cards) // self.per_row))
        return rows * self.card_height + (rows - 1) * self.gap

    def render(self, x: float, y: float) -> List[Element]:
        elements: List[Element] = []
        for index, card in enumerate(self.cards):
            row, column = divmod(index, self.per_row)
            left = x + column * (self.card_width + self.gap)
            top = y + row * (self.card_height + self.gap)
            center = left + self.card_width / 2
            elements.append(RectElement(left, top, self.card_width, self.card_height, fill=card.color))
            elements.append(TextElement(center, top + 15, card.value, size=24, color=WHITE,
                                        bold=True, align="center"))
            elements.append(TextElement(center, top + 50, card.label, size=9, color=WHITE, align="center"))
        return elements


@dataclass
class BarSegment:
    label: str
    count: int
    color: str


@dataclass
class DistributionBar(Block):
    """Proportional bar; a segment's width is ``count / total * width``."""

    title: str
    segments: List[BarSegment]
    width: float = 500
    bar_height: float = 30

    def widths(self) -> List[Tuple[BarSegment, float]]:
        total = sum(s.count for s in self.segments)
        if total <= 0:
            return []
        return [(s, s.count / total * self.width) for s in self.segments if s.count > 0]

    def height(self) -> float:
        return line_height(12) + self.bar_height + 24

    def render(self, x: float, y: float) -> List[Element]:
        elements: List[Element] = [TextElement(x, y, self.title, size=12, bold=True)]
        bar_y = y + line_height(12)
        cursor = x
        for segment, width in self.widths():
            elements.append(RectElement(cursor, bar_y, width, self.bar_height, fill=segment.color))
            if width >= 24:
                elements.append(TextElement(cursor + width / 2, bar_y + 10, str(segment.count),
                                            size=9, color=WHITE, bold=True, align="center"))
            cursor += width
        legend_y = bar_y + self.bar_height + 8
        legend_x = x
        for segment in self.segments:
            elements.append(RectElement(legend_x, legend_y, 10, 10, fill=segment.color))
            elements.append(TextElement(legend_x + 14, legend_y + 1,
                                        f"{segment.label} ({segment.count})", size=9))
            legend_x += 110
        return elements


@dataclass
class ProgressRow:
    label: str
    percentage: int
    caption: str
    color: str


@dataclass
class ProgressBars(Block):
    title: str
    rows: List[ProgressRow]
    bar_width: float = 300
    row_height: float = 40

    def height(self) -> float:
        return line_height(12) + self.row_height * len(self.rows)

    def render(self, x: float, y: float) -> List[Element]:
        elements: List[Element] = [TextElement(x, y, self.title, size=12, bold=True)]
        top = y + line_height(12)
        for i, row in enumerate(self.rows):
            row_y = top + i * self.row_height
            fill = self.bar_width * max(0, min(row.percentage, 100)) / 100
            elements.append(TextElement(x, row_y, row.label, size=10, bold=True))
            elements.append(RectElement(x + 150, row_y + 14, self.bar_width, 14, fill="#f3f4f6"))
            if fill > 0:
                elements.append(RectElement(x + 150, row_y + 14, fill, 14, fill=row.color))
            elements.append(TextElement(x, row_y + 16, f"{row.percentage}%", size=10, color=MUTED_COLOR))
            elements.append(TextElement(x + 160 + self.bar_width, row_y + 16, row.caption,
                                        size=9, color=MUTED_COLOR))
        return elements


@dataclass
class MatrixPoint:
    likelihood: int
    impact: int
    label: str = ""


@dataclass
class MatrixCell:
    likelihood: int
    impact: int
    score: int
    level: RiskLevel
    color: str
    x: float
    y: float


@dataclass
class MatrixMarker:
    likelihood: int
    impact: int
    x: float
    y: float
    label: str = ""


@dataclass
class RiskMatrix(Block):
    """5x5 likelihood (x axis) by impact (y axis, 5 at the top) grid.

    Cell geometry is relative to the grid origin. Markers sharing a cell are
    drawn at the same point.
    """

    points: List[MatrixPoint]
    thresholds: ThresholdTable = THREAT_THRESHOLDS
    size: float = 400
    start_x: float = 50

    @property
    def cell_size(self) -> float:
        return self.size / 5

    def cells(self) -> List[MatrixCell]:
        cells: List[MatrixCell] = []
        for impact in range(5, 0, -1):
            for likelihood in range(1, 6):
                score = likelihood * impact
                level = self.thresholds.level_for(score)
                cells.append(MatrixCell(
                    likelihood=likelihood,
                    impact=impact,
                    score=score,
                    level=level,
                    color=LEVEL_COLORS[level],
                    x=(likelihood - 1) * self.cell_size,
                    y=(5 - impact) * self.cell_size,
                ))
        return cells

    def cell(self, likelihood: int, impact: int) -> MatrixCell:
        for candidate in self.cells():
            if candidate.likelihood == likelihood and candidate.impact == impact:
                return candidate
        raise KeyError((likelihood, impact))

    def markers(self) -> List[MatrixMarker]:
        half = self.cell_size / 2
        return [
            MatrixMarker(
                likelihood=p.likelihood,
                impact=p.impact,
                x=(p.likelihood - 1) * self.cell_size + half,
                y=(5 - p.impact) * self.cell_size + half,
                label=p.label,
            )
            for p in self.points
        ]

    def height(self) -> float:
        return self.size + 50

    def render(self, x: float, y: float) -> List[Element]:
        left = x + self.start_x
        elements: List[Element] = []
        for cell in self.cells():
            elements.append(RectElement(left + cell.x + 1, y + cell.y + 1,
                                        self.cell_size - 2, self.cell_size - 2, fill=cell.color))
            elements.append(TextElement(left + cell.x + self.cell_size / 2, y + cell.y + 5,
                                        str(cell.score), size=10, color=WHITE, align="center"))
        for marker in self.markers():
            elements.append(CircleElement(left + marker.x, y + marker.y, 6, fill="#000000"))
        labels = [Rating.from_number(n).label for n in range(1, 6)]
        for i, label in enumerate(labels):
            elements.append(TextElement(left + i * self.cell_size + self.cell_size / 2,
                                        y + self.size + 8, label, size=9, color=MUTED_COLOR,
                                        align="center"))
            elements.append(TextElement(left - 8, y + (4 - i) * self.cell_size + self.cell_size / 2,
                                        label, size=9, color=MUTED_COLOR, align="right"))
        elements.append(TextElement(left + self.size / 2, y + self.size + 24, "Likelihood",
                                    size=12, bold=True, align="center"))
        elements.append(TextElement(left - 8, y - 14, "Impact", size=12, bold=True, align="right"))
        return elements


@dataclass
class GroupHeader(Block):
    title: str
    color: str
    subtitle: str = ""

    def height(self) -> float:
        return line_height(14) + (line_height(9) if self.subtitle else 0)

    def render(self, x: float, y: float) -> List[Element]:
        elements: List[Element] = [
            RectElement(x, y - 2, 6, line_height(14), fill=self.color),
            TextElement(x + 12, y, self.title, size=14, color=self.color, bold=True),
        ]
        if self.subtitle:
            elements.append(TextElement(x + 12, y + line_height(14), self.subtitle,
                                        size=9, color=MUTED_COLOR))
        return elements


@dataclass
class Finding(Block):
    title: str
    badge: str
    badge_color: str
    details: List[str] = field(default_factory=list)

    _TITLE_WIDTH = CONTENT_WIDTH - 110

    def _title_lines(self) -> List[str]:
        return wrap_text(self.title, 11, self._TITLE_WIDTH, bold=True)

    def _detail_lines(self) -> List[str]:
        lines: List[str] = []
        for detail in self.details:
            lines.extend(wrap_text(detail, 9, CONTENT_WIDTH - 20))
        return lines

    def height(self) -> float:
        return len(self._title_lines()) * line_height(11) + len(self._detail_lines()) * line_height(9) + 4

    def render(self, x: float, y: float) -> List[Element]:
        elements: List[Element] = [
            RectElement(x + CONTENT_WIDTH - 95, y - 2, 95, 16, fill=self.badge_color),
            TextElement(x + CONTENT_WIDTH - 47.5, y + 1, self.badge, size=8, color=WHITE,
                        bold=True, align="center"),
        ]
        cursor = y
        for line in self._title_lines():
            elements.append(TextElement(x + 10, cursor, line, size=11, bold=True))
            cursor += line_height(11)
        for line in self._detail_lines():
            elements.append(TextElement(x + 20, cursor, line, size=9, color=MUTED_COLOR))
            cursor += line_height(9)
        elements.append(LineElement(x + 10, cursor + 2, x + CONTENT_WIDTH, cursor + 2))
        return elements


@dataclass
class FindingGroup(Block):
    key: str
    title: str
    color: str
    findings: List[Finding]
    subtitle: str = ""

    def units(self) -> List[Block]:
        header: List[Block] = [GroupHeader(self.title, self.color, self.subtitle)]
        return header + list(self.findings)


@dataclass
class TableRow(Block):
    cells: List[str]
    widths: List[float]
    header: bool = False
    size: float = 8

    def _wrapped(self) -> List[List[str]]:
        return [wrap_text(c, self.size, w - 6, bold=self.header) for c, w in zip(self.cells, self.widths)]

    def height(self) -> float:
        return max(len(lines) for lines in self._wrapped()) * line_height(self.size) + 6

    def render(self, x: float, y: float) -> List[Element]:
        elements: List[Element] = []
        if self.header:
            elements.append(RectElement(x, y - 3, sum(self.widths), self.height(), fill="#f3f4f6"))
        left = x
        for lines, width in zip(self._wrapped(), self.widths):
            for i, line in enumerate(lines):
                elements.append(TextElement(left + 3, y + i * line_height(self.size), line,
                                            size=self.size, bold=self.header))
            left += width
        elements.append(LineElement(x, y + self.height() - 3, x + sum(self.widths), y + self.height() - 3))
        return elements


@dataclass
class TableBlock(Block):
    columns: List[str]
    rows: List[List[str]]
    widths: Optional[List[float]] = None

    def column_widths(self) -> List[float]:
        if self.widths:
            return self.widths
        return [CONTENT_WIDTH / len(self.columns)] * len(self.columns)

    def units(self) -> List[Block]:
        widths = self.column_widths()
        units: List[Block] = [TableRow(self.columns, widths, header=True)]
        units.extend(TableRow(row, widths) for row in self.rows)
        return units


@dataclass
class RecommendationItem(Block):
    index: int
    recommendation: Recommendation

    def _lines(self) -> List[str]:
        return wrap_text(self.recommendation.description, 10, CONTENT_WIDTH - 20)

    def height(self) -> float:
        return line_height(11) + len(self._lines()) * line_height(10)

    def render(self, x: float, y: float) -> List[Element]:
        rec = self.recommendation
        color = PRIORITY_COLORS.get(rec.priority, TEXT_COLOR)
        elements: List[Element] = [
            TextElement(x, y, f"{self.index}. [{rec.priority} Priority]", size=11, color=color, bold=True),
            TextElement(x + 130, y, rec.title, size=11, bold=True),
        ]
        for i, line in enumerate(self._lines()):
            elements.append(TextElement(x + 20, y + line_height(11) + i * line_height(10), line, size=10))
        return elements


@dataclass
class RecommendationList(Block):
    items: List[Recommendation]
    positive: str

    def units(self) -> List[Block]:
        if not self.items:
            return [Paragraph(self.positive, size=11, color=LEVEL_COLORS[RiskLevel.LOW])]
        return [RecommendationItem(i, rec) for i, rec in enumerate(self.items, start=1)]
