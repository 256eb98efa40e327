"""
Fix strategies for the self-healing engine.
Dispatches a classified failure to a repair handler and reports what happened.
"""

import asyncio
import re
from datetime import datetime
from pathlib import Path
from typing import Optional, Callable, Awaitable

from config.settings import settings, RecoverySettings
from healing_navigator.agent.oracle import Oracle, build_ui_change_prompt
from healing_navigator.agent.state import Classification, ErrorKind, FixAttempt
from healing_navigator.browser.locators import CandidateTable, LocatorResolver
from healing_navigator.browser.surface import AutomationSurface
from healing_navigator.utils.logger import agent_logger as logger
from healing_navigator.utils.state import SessionState


# Selector-shaped tokens in free text: tag:pseudo(...), tag[attr], #id / .class.
# A bare #id / .class must start a token, which keeps "e.g." and "Node.js" out
SELECTOR_PATTERN = re.compile(r"\w+:[\w\-]+\([^)]*\)|\w+\[[^\]]+\]|(?<![\w.#])[#.][A-Za-z_][\w\-]*")


def extract_selectors_from_text(text: str, limit: int = None) -> list[str]:
    """Pull selector-like tokens out of an oracle reply, deduplicated, first occurrence first."""
    selectors = []
    for match in SELECTOR_PATTERN.finditer(text or ""):
        token = match.group(0)
        if token not in selectors:
            selectors.append(token)
    if limit is not None:
        selectors = selectors[:limit]
    return selectors


class ResumeGate:
    """
    Pause point for human-verification challenges.

    The session task awaits ``wait()``; any other task calls ``resume()``.
    A resume issued while nobody is waiting is discarded.
    """

    def __init__(self):
        self._resumed = asyncio.Event()
        self._paused = asyncio.Event()
        self._running = asyncio.Event()
        self._running.set()
        self.reason: Optional[str] = None

    @property
    def is_paused(self) -> bool:
        return self._paused.is_set()

    async def wait(self, reason: str = "verification challenge"):
        """Block until resumed. Cancellation propagates."""
        self.reason = reason
        self._resumed.clear()
        self._running.clear()
        self._paused.set()
        try:
            await self._resumed.wait()
        finally:
            self._paused.clear()
            self._running.set()
            self.reason = None

    def resume(self) -> bool:
        """Release a waiting session. Returns False if nothing was paused."""
        if not self._paused.is_set():
            logger.debug("Resume ignored: session is not paused")
            return False
        self._resumed.set()
        return True

    async def wait_until_paused(self):
        """Block until a session pauses on this gate."""
        await self._paused.wait()

    async def wait_until_resumed(self):
        """Block until no session is paused on this gate."""
        await self._running.wait()


FixHandler = Callable[[str, Classification, str], Awaitable[FixAttempt]]


class FixDispatcher:
    """
    Routes a classification to the repair handler for its kind.

    Suggested fixes are tried in order until one succeeds; a handler that raises
    counts as a failed suggestion.
    """

    def __init__(
        self,
        surface: AutomationSurface,
        session: SessionState,
        candidates: Optional[CandidateTable] = None,
        oracle: Optional[Oracle] = None,
        gate: Optional[ResumeGate] = None,
        recovery_settings: Optional[RecoverySettings] = None
    ):
        self.surface = surface
        self.session = session
        self.candidates = candidates or CandidateTable()
        self.oracle = oracle
        self.gate = gate or ResumeGate()
        self.config = recovery_settings or settings.recovery
        self.resolver = LocatorResolver(surface, session)

        self._handlers: dict[ErrorKind, FixHandler] = {
            ErrorKind.TIMEOUT: self._fix_timeout,
            ErrorKind.LOCATOR: self._fix_locator,
            ErrorKind.UI_CHANGE: self._fix_ui_change,
            ErrorKind.NETWORK: self._fix_network,
            ErrorKind.CAPTCHA: self._fix_captcha,
        }

    def handler_for(self, kind: ErrorKind) -> FixHandler:
        return self._handlers.get(kind, self._fix_unknown)

    async def attempt_fix(
        self,
        error: BaseException,
        classification: Classification,
        context: str
    ) -> FixAttempt:
        """
        Try each suggested fix until one works.

        Args:
            error: The failure being repaired
            classification: Verdict from the classifier
            context: Operation context label

        Returns:
            The first successful FixAttempt, or a failed one if nothing worked
        """
        handler = self.handler_for(classification.kind)
        logger.debug(f"Repairing '{context}' ({classification.kind.value}): {error}")

        for suggestion in classification.suggested_fixes:
            try:
                attempt = await handler(suggestion, classification, context)
            except Exception as e:
                logger.warning(f"Fix '{suggestion}' raised {type(e).__name__}: {e}")
                continue

            if attempt.success:
                return attempt
            logger.debug(f"Fix '{suggestion}' did not help: {attempt.notes}")

        return FixAttempt(
            strategy="All fixes failed",
            success=False,
            notes="Manual intervention required",
        )

    async def _fix_timeout(self, suggestion: str, classification: Classification, context: str) -> FixAttempt:
        fix = suggestion.lower()

        if "increase timeout" in fix or "delay" in fix or "wait longer" in fix:
            await self.surface.wait(self.config.extra_delay_ms)
            return FixAttempt(strategy=suggestion, success=True, notes=f"Waited {self.config.extra_delay_ms}ms")

        if "navigation" in fix or "reload" in fix or "refresh" in fix:
            await self.surface.reload("networkidle", self.config.load_timeout_ms)
            return FixAttempt(strategy=suggestion, success=True, notes="Page reloaded")

        if "load" in fix:
            await self.surface.wait_for_load_signal("domcontentloaded", self.config.load_timeout_ms)
            return FixAttempt(strategy=suggestion, success=True, notes="Page reached domcontentloaded")

        return FixAttempt(strategy=suggestion, success=False, notes="Timeout fix not implemented")

    async def _fix_locator(self, suggestion: str, classification: Classification, context: str) -> FixAttempt:
        preferred = list(classification.alternative_locators)
        cached = self.session.cached_locator(context)
        if cached:
            preferred = [cached] + [c for c in preferred if c != cached]

        found = await self.resolver.resolve(preferred, self.config.alternative_lookup_timeout_ms)
        if found:
            return FixAttempt(
                strategy=suggestion,
                success=True,
                discovered_locator=found,
                notes="Alternative locator is visible",
            )

        defaults = [c for c in self.candidates.for_context(context) if c not in preferred]
        found = await self.resolver.resolve(defaults, self.config.default_lookup_timeout_ms)
        if found:
            return FixAttempt(
                strategy=suggestion,
                success=True,
                discovered_locator=found,
                notes="Default candidate locator is visible",
            )

        return FixAttempt(strategy=suggestion, success=False, notes="No candidate locator is visible")

    async def _fix_ui_change(self, suggestion: str, classification: Classification, context: str) -> FixAttempt:
        screenshot_path = await self._save_screenshot(context)
        logger.observation(f"UI change suspected, screenshot saved to {screenshot_path}")

        if self.oracle is None:
            return FixAttempt(strategy=suggestion, success=False, notes="No oracle available for UI analysis")

        known = self.candidates.for_context(context) or self.candidates.all_candidates()
        known = known + [c for c in classification.alternative_locators if c not in known]
        cached = self.session.cached_locator(context)
        if cached and cached not in known:
            known = [cached] + known

        prompt = build_ui_change_prompt(
            context=context,
            known_selectors=known,
            url=await self.surface.current_url(),
            title=await self.surface.current_title(),
        )
        reply = await self.oracle.chat(prompt)
        selectors = extract_selectors_from_text(reply, limit=self.config.max_ui_selectors)
        logger.debug(f"UI change candidates: {selectors}")

        found = await self.resolver.resolve(selectors, self.config.ui_change_lookup_timeout_ms)
        if found:
            return FixAttempt(
                strategy=suggestion,
                success=True,
                discovered_locator=found,
                notes=f"Oracle suggested selector is visible (screenshot: {screenshot_path})",
            )
        return FixAttempt(strategy=suggestion, success=False, notes="No suggested selector is visible")

    async def _fix_network(self, suggestion: str, classification: Classification, context: str) -> FixAttempt:
        await self.surface.wait(self.config.network_wait_ms)
        await self.surface.reload("networkidle", self.config.load_timeout_ms)
        return FixAttempt(strategy=suggestion, success=True, notes="Page reloaded after network error")

    async def _fix_captcha(self, suggestion: str, classification: Classification, context: str) -> FixAttempt:
        logger.banner("Human verification required")
        logger.warning(f"Solve the challenge in the browser window, then resume ('{context}')")
        await self.gate.wait(f"verification challenge during '{context}'")
        logger.success("Session resumed")
        return FixAttempt(strategy="Manual CAPTCHA resolution", success=True, notes="Resumed by operator")

    async def _fix_unknown(self, suggestion: str, classification: Classification, context: str) -> FixAttempt:
        return FixAttempt(strategy=suggestion, success=False, notes="Unknown error type")

    async def _save_screenshot(self, context: str) -> Optional[Path]:
        """Write a full-page screenshot to the artifacts directory."""
        data = await self.surface.screenshot(full_page=True)
        directory = Path(self.config.artifacts_dir)
        directory.mkdir(parents=True, exist_ok=True)
        safe_context = re.sub(r"[^\w\-]+", "_", context)[:60]
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        path = directory / f"ui_change_{safe_context}_{timestamp}.png"
        path.write_bytes(data)
        return path
