"""
Generation orchestration, status reads and the service facade.
"""

from .orchestrator import GenerationOrchestrator, PhaseSummary
from .service import StorybookService
from .status import BookStatusReader, BookStatusView, PageView

__all__ = [
    "BookStatusReader",
    "BookStatusView",
    "GenerationOrchestrator",
    "PageView",
    "PhaseSummary",
    "StorybookService",
]
