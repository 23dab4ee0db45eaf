"""
Print document assembly.
"""

from .assembler import AssemblyError, PdfAssembler
from .filler import build_filler_pages
from .renderer import PageRenderer, PlaywrightPageRenderer
from .template import render_print_html

__all__ = [
    "AssemblyError",
    "PageRenderer",
    "PdfAssembler",
    "PlaywrightPageRenderer",
    "build_filler_pages",
    "render_print_html",
]
