"""PDF output drawn directly from laid-out pages.

Layout coordinates have a top-left origin; reportlab's canvas has a
bottom-left one, so every y is flipped against the page height.
"""

from __future__ import annotations

from io import BytesIO
from typing import TYPE_CHECKING, Any

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen.canvas import Canvas

from riskreport_cli.exceptions import InvalidInput
from riskreport_cli.formatters.base import BaseFormatter
from riskreport_cli.reports.layout import (
    PAGE_HEIGHT,
    CircleElement,
    Element,
    LineElement,
    RectElement,
    TextElement,
)

if TYPE_CHECKING:
    from riskreport_cli.reports.base import ReportContent


class PdfFormatter(BaseFormatter):
    def render(self, content: "ReportContent") -> bytes:
        buffer = BytesIO()
        canvas = Canvas(buffer, pagesize=letter)
        canvas.setTitle(content.title)
        canvas.setAuthor(content.generated_by)
        canvas.setSubject(f"{content.organization} - {content.subject_name}")
        for page in content.pages():
            for element in page.elements:
                self._draw(canvas, element)
            canvas.showPage()
        canvas.save()
        return buffer.getvalue()

    def dump(self, data: Any) -> bytes:
        raise InvalidInput("PDF output is only available for reports. Use json, yaml or markdown.")

    def file_extension(self) -> str:
        return ".pdf"

    def _draw(self, canvas: Canvas, element: Element) -> None:
        if isinstance(element, TextElement):
            self._draw_text(canvas, element)
        elif isinstance(element, RectElement):
            if element.fill:
                canvas.setFillColor(HexColor(element.fill))
            if element.stroke:
                canvas.setStrokeColor(HexColor(element.stroke))
            canvas.rect(
                element.x,
                PAGE_HEIGHT - element.y - element.height,
                element.width,
                element.height,
                stroke=1 if element.stroke else 0,
                fill=1 if element.fill else 0,
            )
        elif isinstance(element, CircleElement):
            canvas.setFillColor(HexColor(element.fill))
            if element.stroke:
                canvas.setStrokeColor(HexColor(element.stroke))
            canvas.circle(element.x, PAGE_HEIGHT - element.y, element.radius,
                          stroke=1 if element.stroke else 0, fill=1)
        elif isinstance(element, LineElement):
            canvas.setStrokeColor(HexColor(element.color))
            canvas.setLineWidth(element.width)
            canvas.line(element.x1, PAGE_HEIGHT - element.y1, element.x2, PAGE_HEIGHT - element.y2)

    @staticmethod
    def _draw_text(canvas: Canvas, element: TextElement) -> None:
        canvas.setFont(element.font, element.size)
        canvas.setFillColor(HexColor(element.color))
        baseline = PAGE_HEIGHT - (element.y + element.size)
        if element.align == "center":
            canvas.drawCentredString(element.x, baseline, element.text)
        elif element.align == "right":
            canvas.drawRightString(element.x, baseline, element.text)
        else:
            canvas.drawString(element.x, baseline, element.text)
