"""
Automation Surface - the page operations the self-healing engine relies on.
BrowserController implements it with Playwright; tests use an in-memory fake.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class AutomationSurface(ABC):
    """
    Abstract page driven by the engine.

    Descriptors are Playwright-style selector strings (CSS, ``:has-text()``, ``text=...``).
    Action methods raise on failure; ``wait_for_visible`` reports a miss as ``False``.
    """

    @abstractmethod
    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        """Go to a URL."""

    @abstractmethod
    async def fill(self, descriptor: str, text: str) -> None:
        """Fill an input field."""

    @abstractmethod
    async def click(self, descriptor: str) -> None:
        """Click an element."""

    @abstractmethod
    async def wait_for_visible(self, descriptor: str, timeout_ms: int) -> bool:
        """Wait until an element is visible. Never raises on a miss."""

    @abstractmethod
    async def wait_for_load_signal(self, kind: str = "domcontentloaded", timeout_ms: Optional[int] = None) -> None:
        """Wait for a page load state (``load``, ``domcontentloaded``, ``networkidle``)."""

    @abstractmethod
    async def reload(self, wait_until: str = "networkidle", timeout_ms: Optional[int] = None) -> None:
        """Reload the current page."""

    @abstractmethod
    async def screenshot(self, full_page: bool = True) -> bytes:
        """Capture the page as PNG bytes."""

    @abstractmethod
    async def evaluate(self, script: str) -> Any:
        """Run JavaScript in the page."""

    @abstractmethod
    async def wait(self, ms: int) -> None:
        """Fixed delay."""

    @abstractmethod
    async def text_content(self, descriptor: str) -> Optional[str]:
        """Text of the first matching element, or None."""

    @abstractmethod
    async def count(self, descriptor: str) -> int:
        """Number of elements matching a descriptor."""

    @abstractmethod
    async def current_url(self) -> str:
        ...

    @abstractmethod
    async def current_title(self) -> str:
        ...

    @abstractmethod
    async def current_content(self) -> str:
        """Full page HTML."""
