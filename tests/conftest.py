"""
Pytest configuration and fixtures.
"""

import os

# Keep test runs from creating log files; must be set before settings are loaded
os.environ.setdefault("LOG_LOG_TO_FILE", "false")

import pytest
from typing import Any, Optional

from config.settings import RecoverySettings
from healing_navigator.browser.locators import CandidateTable
from healing_navigator.browser.surface import AutomationSurface
from healing_navigator.utils.state import SessionState


class FakeSurface(AutomationSurface):
    """In-memory automation surface that records every call."""

    def __init__(
        self,
        visible: Optional[set[str]] = None,
        url: str = "https://example.test/",
        title: str = "Example",
        html: str = "<html><body><p>hello</p></body></html>",
        texts: Optional[dict[str, str]] = None,
        counts: Optional[dict[str, int]] = None
    ):
        self.visible = set(visible or ())
        self.url = url
        self.title = title
        self.html = html
        self.texts = dict(texts or {})
        self.counts = dict(counts or {})
        self.calls: list[tuple] = []
        self.lookups: list[tuple[str, int]] = []
        self.reload_error: Optional[Exception] = None
        self.content_error: Optional[Exception] = None
        self.click_errors: dict[str, Exception] = {}

    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        self.calls.append(("navigate", url))
        self.url = url

    async def fill(self, descriptor: str, text: str) -> None:
        self.calls.append(("fill", descriptor, text))

    async def click(self, descriptor: str) -> None:
        self.calls.append(("click", descriptor))
        if descriptor in self.click_errors:
            raise self.click_errors[descriptor]

    async def wait_for_visible(self, descriptor: str, timeout_ms: int) -> bool:
        self.lookups.append((descriptor, timeout_ms))
        return descriptor in self.visible

    async def wait_for_load_signal(self, kind: str = "domcontentloaded", timeout_ms: Optional[int] = None) -> None:
        self.calls.append(("wait_for_load_signal", kind, timeout_ms))

    async def reload(self, wait_until: str = "networkidle", timeout_ms: Optional[int] = None) -> None:
        self.calls.append(("reload", wait_until, timeout_ms))
        if self.reload_error:
            raise self.reload_error

    async def screenshot(self, full_page: bool = True) -> bytes:
        self.calls.append(("screenshot", full_page))
        return b"\x89PNG fake"

    async def evaluate(self, script: str) -> Any:
        self.calls.append(("evaluate", script))
        return None

    async def wait(self, ms: int) -> None:
        self.calls.append(("wait", ms))

    async def text_content(self, descriptor: str) -> Optional[str]:
        return self.texts.get(descriptor)

    async def count(self, descriptor: str) -> int:
        if descriptor in self.counts:
            return self.counts[descriptor]
        return 1 if descriptor in self.visible else 0

    async def current_url(self) -> str:
        return self.url

    async def current_title(self) -> str:
        return self.title

    async def current_content(self) -> str:
        if self.content_error:
            raise self.content_error
        return self.html

    def called(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


class StubOracle:
    """Oracle replacement returning canned replies or raising."""

    def __init__(self, replies: Optional[list[str]] = None, error: Optional[Exception] = None):
        self.replies = list(replies or [])
        self.error = error
        self.prompts: list[str] = []

    async def chat(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.replies.pop(0) if self.replies else ""


@pytest.fixture
def surface():
    return FakeSurface()


@pytest.fixture
def session():
    state = SessionState()
    state.start_session("test")
    return state


@pytest.fixture
def candidates():
    return CandidateTable({
        "login_password": ["#passwordField", '[type="password"]'],
        "login": ["#usernameField", '[name="email"]', '[type="email"]', "#emailField"],
        "job": [".jobTuple", ".job-card", ".job-listing", ".title"],
        "apply": ['button:has-text("Apply")', ".apply-btn", 'a:has-text("Apply")'],
    })


@pytest.fixture
def fast_recovery(tmp_path):
    """Recovery settings with every delay zeroed."""
    return RecoverySettings(
        timeout_retry_delay_ms=0,
        locator_retry_delay_ms=0,
        unknown_retry_delay_ms=0,
        extra_delay_ms=0,
        network_wait_ms=0,
        artifacts_dir=tmp_path / "artifacts",
    )
