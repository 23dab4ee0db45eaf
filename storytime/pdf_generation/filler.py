"""
Blank parchment pages used to pad a document up to the printer's minimum.
"""

from __future__ import annotations

from io import BytesIO

from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas

FILLER_PAGE_SIZE = (8 * inch, 11 * inch)
PARCHMENT = colors.Color(1.0, 0.996, 0.961)


def build_filler_pages(count: int, *, page_size: tuple[float, float] = FILLER_PAGE_SIZE) -> bytes:
    """Return a PDF holding ``count`` blank parchment-coloured pages."""
    if count < 1:
        raise ValueError("Filler page count must be at least 1.")

    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=page_size)
    width, height = page_size
    for _ in range(count):
        pdf.setFillColor(PARCHMENT)
        pdf.rect(0, 0, width, height, stroke=0, fill=1)
        pdf.showPage()
    pdf.save()
    return buffer.getvalue()
