"""Browser automation package."""

from .surface import AutomationSurface
from .controller import BrowserController, create_browser
from .locators import CandidateTable, LocatorResolver

__all__ = [
    "AutomationSurface",
    "BrowserController",
    "create_browser",
    "CandidateTable",
    "LocatorResolver",
]
