"""
Locator candidates and resolution.
One ordered candidate table feeds the resolver, the keyword fallback and the locator fix.
"""

from typing import Optional

from config.settings import settings
from healing_navigator.browser.surface import AutomationSurface
from healing_navigator.utils.logger import agent_logger as logger
from healing_navigator.utils.state import SessionState


class CandidateTable:
    """
    Context category -> ordered candidate descriptors.

    Categories are matched against an operation context by substring, in table
    order, so a context like ``"login_job_search"`` only ever gets the login list.
    """

    def __init__(self, candidates: Optional[dict[str, list[str]]] = None):
        source = candidates if candidates is not None else settings.locators.candidates
        self._table: dict[str, list[str]] = {k: list(v) for k, v in source.items()}

    @property
    def categories(self) -> list[str]:
        return list(self._table)

    def category_for(self, context: str) -> Optional[str]:
        """First category whose name appears in the context."""
        lowered = context.lower()
        for category in self._table:
            if category.lower() in lowered:
                return category
        return None

    def for_context(self, context: str) -> list[str]:
        """Candidates for a context; empty when no category applies."""
        category = self.category_for(context)
        if category is None:
            return []
        return list(self._table[category])

    def get(self, category: str) -> list[str]:
        """Candidates for an exact category name."""
        return list(self._table.get(category, []))

    def all_candidates(self) -> list[str]:
        """Every known descriptor, table order, no duplicates."""
        seen = []
        for candidates in self._table.values():
            for candidate in candidates:
                if candidate not in seen:
                    seen.append(candidate)
        return seen


class LocatorResolver:
    """Finds the first visible descriptor among ordered candidates."""

    def __init__(self, surface: AutomationSurface, session: Optional[SessionState] = None):
        self.surface = surface
        self.session = session

    async def resolve(self, candidates: list[str], timeout_ms: int) -> Optional[str]:
        """
        Try candidates one after another.

        Args:
            candidates: Descriptors in priority order
            timeout_ms: Per-candidate visibility timeout

        Returns:
            The first candidate that became visible, or None
        """
        for candidate in candidates:
            if await self.surface.wait_for_visible(candidate, timeout_ms):
                logger.debug(f"Resolved locator: {candidate}")
                return candidate
        return None

    async def resolve_for_context(
        self,
        context: str,
        candidates: list[str],
        timeout_ms: int
    ) -> Optional[str]:
        """Like resolve(), trying the cached fix for this context first."""
        ordered = list(candidates)
        if self.session:
            cached = self.session.cached_locator(context)
            if cached:
                ordered = [cached] + [c for c in ordered if c != cached]
        return await self.resolve(ordered, timeout_ms)
