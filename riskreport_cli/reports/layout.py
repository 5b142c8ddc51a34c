"""Page layout for report documents.

Coordinates are in points with the origin at the top-left corner of a US
letter page; the PDF formatter flips them for reportlab.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union

from reportlab.lib.utils import simpleSplit

PAGE_WIDTH = 612
PAGE_HEIGHT = 792
MARGIN = 50
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN
CONTENT_TOP = 80
CONTENT_THRESHOLD = 650
CONTENT_BOTTOM = PAGE_HEIGHT - 60
BLOCK_SPACING = 12

TEXT_COLOR = "#1f2937"
MUTED_COLOR = "#6b7280"
RULE_COLOR = "#e5e7eb"

FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"


@dataclass
class TextElement:
    x: float
    y: float
    text: str
    size: float = 10
    color: str = TEXT_COLOR
    bold: bool = False
    align: str = "left"

    @property
    def font(self) -> str:
        return BOLD_FONT if self.bold else FONT


@dataclass
class RectElement:
    x: float
    y: float
    width: float
    height: float
    fill: Optional[str] = None
    stroke: Optional[str] = None


@dataclass
class CircleElement:
    x: float
    y: float
    radius: float
    fill: str
    stroke: Optional[str] = "#ffffff"


@dataclass
class LineElement:
    x1: float
    y1: float
    x2: float
    y2: float
    color: str = RULE_COLOR
    width: float = 1


Element = Union[TextElement, RectElement, CircleElement, LineElement]


@dataclass
class Page:
    number: int
    title: str
    elements: List[Element] = field(default_factory=list)


def wrap_text(text: str, size: float, width: float, bold: bool = False) -> List[str]:
    lines: List[str] = []
    for paragraph in (text or "").splitlines() or [""]:
        lines.extend(simpleSplit(paragraph, BOLD_FONT if bold else FONT, size, width) or [""])
    return lines


def line_height(size: float) -> float:
    return size * 1.4


class PageLayout:
    """Running vertical cursor over a growing list of pages.

    Callers check ``ensure_room`` before each unit (one finding, one table
    row); a unit is never split across pages, a section may be.
    """

    def __init__(self, threshold: float = CONTENT_THRESHOLD) -> None:
        self.pages: List[Page] = []
        self.threshold = threshold
        self.y: float = CONTENT_TOP

    @property
    def page(self) -> Page:
        return self.pages[-1]

    def new_page(self, title: str, decorated: bool = True) -> Page:
        page = Page(number=len(self.pages) + 1, title=title)
        self.pages.append(page)
        self.y = CONTENT_TOP
        if decorated:
            self._decorate(page)
        return page

    def _decorate(self, page: Page) -> None:
        page.elements.extend([
            TextElement(MARGIN, 30, page.title, size=9, color=MUTED_COLOR),
            LineElement(MARGIN, 45, PAGE_WIDTH - MARGIN, 45),
            TextElement(PAGE_WIDTH / 2, PAGE_HEIGHT - 40, f"Page {page.number}",
                        size=9, color=MUTED_COLOR, align="center"),
        ])

    def ensure_room(self, height: float) -> None:
        if not self.pages:
            raise RuntimeError("ensure_room called before the first page was started")
        if self.y > self.threshold or self.y + height > CONTENT_BOTTOM:
            if self.y > CONTENT_TOP:
                self.new_page(self.page.title)

    def add(self, elements: List[Element], height: float, spacing: float = BLOCK_SPACING) -> None:
        self.page.elements.extend(elements)
        self.y += height + spacing
