"""DOM summarization and page observation package."""

from .dom_processor import DOMProcessor, DOMSummary
from .observer import PageObserver, PageState

__all__ = [
    "DOMProcessor",
    "DOMSummary",
    "PageObserver",
    "PageState",
]
