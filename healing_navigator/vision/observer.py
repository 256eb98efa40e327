"""
Page Observer for the Self-Healing Navigator.
Builds the page snapshot handed to the classifier when an operation fails.
"""

from typing import Optional
from pydantic import BaseModel, Field

from healing_navigator.browser.surface import AutomationSurface
from healing_navigator.vision.dom_processor import DOMProcessor
from healing_navigator.utils.logger import agent_logger as logger


class PageState(BaseModel):
    """Snapshot of the page at the moment an operation failed."""
    url: str = ""
    title: str = ""
    visible_elements: list[str] = Field(default_factory=list)
    has_login_form: bool = False
    has_listing_markers: bool = False
    has_verification_challenge: bool = False
    prior_errors: dict[str, int] = Field(default_factory=dict)


class PageObserver:
    """
    Captures URL, title and a DOM summary from the automation surface.
    Observation never raises: whatever cannot be read is left empty.
    """

    def __init__(
        self,
        surface: AutomationSurface,
        dom_processor: Optional[DOMProcessor] = None
    ):
        self.surface = surface
        self.dom_processor = dom_processor or DOMProcessor()
        self._last_state: Optional[PageState] = None

    async def observe(self, prior_errors: Optional[dict[str, int]] = None) -> PageState:
        """
        Capture the current page state.

        Args:
            prior_errors: Error message -> count already seen for the failing operation

        Returns:
            PageState, possibly partially empty if the page could not be read
        """
        url, title, html = "", "", ""

        try:
            url = await self.surface.current_url()
        except Exception as e:
            logger.debug(f"Could not read page URL: {e}")

        try:
            title = await self.surface.current_title()
        except Exception as e:
            logger.debug(f"Could not read page title: {e}")

        try:
            html = await self.surface.current_content()
        except Exception as e:
            logger.warning(f"Failed to get page content: {e}")

        try:
            summary = self.dom_processor.summarize(html, title)
            state = PageState(
                url=url,
                title=summary.title if html else title,
                visible_elements=summary.visible_elements,
                has_login_form=summary.has_login_form,
                has_listing_markers=summary.has_listing_markers,
                has_verification_challenge=summary.has_verification_challenge,
                prior_errors=dict(prior_errors or {}),
            )
        except Exception as e:
            logger.warning(f"Failed to process DOM: {e}")
            state = PageState(url=url, title=title, prior_errors=dict(prior_errors or {}))

        logger.debug(
            f"[OBSERVE] {state.url} | {state.title[:50]} | elements={len(state.visible_elements)} "
            f"login={state.has_login_form} listings={state.has_listing_markers} "
            f"challenge={state.has_verification_challenge}"
        )
        self._last_state = state
        return state

    @property
    def last_state(self) -> Optional[PageState]:
        """Get the most recent observation."""
        return self._last_state
