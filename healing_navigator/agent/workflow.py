"""
Declarative workflows and the step runner.
A workflow is a JSON list of browser steps; each step resolves its element
through the candidate table before acting on it.
"""

import json
import os
from enum import Enum
from pathlib import Path
from typing import Any, Optional
from pydantic import BaseModel, Field, model_validator

from config.settings import settings
from healing_navigator.browser.locators import CandidateTable, LocatorResolver
from healing_navigator.browser.surface import AutomationSurface
from healing_navigator.exceptions import LocatorNotFoundError
from healing_navigator.utils.logger import agent_logger as logger


class StepAction(str, Enum):
    """Available workflow actions."""
    NAVIGATE = "navigate"
    FILL = "fill"
    CLICK = "click"
    WAIT = "wait"
    EXTRACT = "extract"
    EXTRACT_ALL = "extract_all"
    VERIFY = "verify"
    DISMISS_POPUPS = "dismiss_popups"


class WorkflowStep(BaseModel):
    """One step of a workflow. ``name`` doubles as the operation context."""
    name: str
    action: StepAction
    url: Optional[str] = None
    value: Optional[str] = None
    candidates: list[str] = Field(default_factory=list)
    candidate_key: Optional[str] = None
    fields: dict[str, str] = Field(default_factory=dict)
    wait_ms: int = Field(default=1000, ge=0)
    timeout_ms: Optional[int] = Field(default=None, ge=0)
    optional: bool = False
    max_retries: Optional[int] = Field(default=None, ge=0)

    # Run dismiss_popups before the step itself
    dismiss_popups: bool = False

    # extract_all: records per page, pages to walk and the "next page" control
    limit: Optional[int] = Field(default=None, ge=1)
    max_pages: int = Field(default=1, ge=1)
    next_candidates: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_required_params(self) -> "WorkflowStep":
        if self.action == StepAction.NAVIGATE and not self.url:
            raise ValueError(f"Step '{self.name}': navigate requires 'url'")
        if self.action == StepAction.FILL and self.value is None:
            raise ValueError(f"Step '{self.name}': fill requires 'value'")
        if self.action in (StepAction.EXTRACT, StepAction.EXTRACT_ALL) and not self.fields:
            raise ValueError(f"Step '{self.name}': {self.action.value} requires 'fields'")
        return self


class Workflow(BaseModel):
    """Named, ordered list of steps."""
    name: str
    start_url: Optional[str] = None
    steps: list[WorkflowStep] = Field(default_factory=list)


def load_workflow(path: Path) -> Workflow:
    """Read and validate a workflow JSON file."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return Workflow.model_validate(data)


def nth_descriptor(container: str, index: int, descriptor: str) -> str:
    """Descriptor scoped to the index-th match of a container."""
    return f"{container} >> nth={index} >> {descriptor}"


class StepRunner:
    """
    Performs workflow steps on the automation surface.
    Missing required elements raise LocatorNotFoundError; missing optional ones skip the step.

    Every step that ran returns something other than None, so the executor's
    soft-failure None can be told apart from a finished step.
    """

    def __init__(
        self,
        surface: AutomationSurface,
        resolver: LocatorResolver,
        candidates: Optional[CandidateTable] = None
    ):
        self.surface = surface
        self.resolver = resolver
        self.candidates = candidates or CandidateTable()

    def candidates_for(self, step: WorkflowStep) -> list[str]:
        """Explicit candidates, then a named category, then the context lookup."""
        if step.candidates:
            return list(step.candidates)
        if step.candidate_key:
            return self.candidates.get(step.candidate_key)
        return self.candidates.for_context(step.name)

    def _timeout(self, step: WorkflowStep) -> int:
        return step.timeout_ms if step.timeout_ms is not None else settings.browser.element_timeout_ms

    async def _locate(self, step: WorkflowStep) -> Optional[str]:
        candidates = self.candidates_for(step)
        found = await self.resolver.resolve_for_context(step.name, candidates, self._timeout(step))
        if found is None and not step.optional:
            raise LocatorNotFoundError(step.name, candidates)
        return found

    async def open(self, url: str) -> bool:
        """Navigate to a URL, expanding ``${ENV}`` references."""
        await self.surface.navigate(os.path.expandvars(url))
        return True

    async def run(self, step: WorkflowStep) -> Any:
        """
        Execute a single step.

        Returns:
            Extracted record for extract steps, ``(container, count)`` for extract_all,
            the matched descriptor for element steps, the number of dismissed popups
            for dismiss_popups, True for navigate and wait, None for skipped optional steps
        """
        logger.debug(f"Running step '{step.name}' ({step.action.value})")

        if step.dismiss_popups and step.action != StepAction.DISMISS_POPUPS:
            await self.dismiss_popups()

        if step.action == StepAction.NAVIGATE:
            return await self.open(step.url)

        if step.action == StepAction.WAIT:
            await self.surface.wait(step.wait_ms)
            return True

        if step.action == StepAction.DISMISS_POPUPS:
            return await self.dismiss_popups(step.candidates or None)

        if step.action == StepAction.EXTRACT:
            return await self._extract(step)

        if step.action == StepAction.EXTRACT_ALL:
            return await self.listing(step)

        descriptor = await self._locate(step)
        if descriptor is None:
            logger.info(f"Optional step '{step.name}' skipped: element not present")
            return None

        if step.action == StepAction.FILL:
            await self.surface.fill(descriptor, os.path.expandvars(step.value))
        elif step.action == StepAction.CLICK:
            await self.surface.click(descriptor)
        return descriptor

    async def dismiss_popups(self, selectors: Optional[list[str]] = None) -> int:
        """
        Click away every visible overlay or close button.
        Best effort: a popup that cannot be clicked is left alone.

        Returns:
            Number of popups clicked
        """
        selectors = selectors or settings.locators.popup_selectors
        dismissed = 0
        for selector in selectors:
            if not await self.surface.wait_for_visible(selector, settings.locators.popup_lookup_timeout_ms):
                continue
            try:
                await self.surface.click(selector)
            except Exception as e:
                logger.debug(f"Could not dismiss popup {selector}: {e}")
                continue
            dismissed += 1
            await self.surface.wait(settings.browser.popup_settle_ms)

        if dismissed:
            logger.observation(f"Dismissed {dismissed} popup(s)")
        return dismissed

    async def _extract(self, step: WorkflowStep) -> Optional[dict[str, Optional[str]]]:
        if self.candidates_for(step):
            container = await self._locate(step)
            if container is None:
                return None

        record = {}
        for field_name, descriptor in step.fields.items():
            record[field_name] = await self.surface.text_content(descriptor)

        if all(value is None for value in record.values()):
            if step.optional:
                return None
            raise LocatorNotFoundError(step.name, list(step.fields.values()))
        return record

    async def listing(self, step: WorkflowStep) -> Optional[tuple[str, int]]:
        """
        Resolve the record container of an extract_all step.

        Returns:
            (container descriptor, number of records to read), or None when an
            optional listing is absent
        """
        container = await self._locate(step)
        if container is None:
            return None

        total = await self.surface.count(container)
        if step.limit is not None:
            total = min(total, step.limit)
        logger.debug(f"Listing '{step.name}': {total} record(s) under {container}")
        return container, total

    async def extract_record(self, step: WorkflowStep, container: str, index: int) -> dict[str, Optional[str]]:
        """Read the step's fields inside the index-th container match."""
        record = {}
        for field_name, descriptor in step.fields.items():
            record[field_name] = await self.surface.text_content(nth_descriptor(container, index, descriptor))

        if all(value is None for value in record.values()):
            raise LocatorNotFoundError(
                f"{step.name}_{index + 1}",
                [nth_descriptor(container, index, d) for d in step.fields.values()],
            )
        return record

    async def next_page(self, step: WorkflowStep) -> Optional[str]:
        """
        Click the "next page" control of a listing.

        Returns:
            The clicked descriptor, or None when there is no further page
        """
        candidates = step.next_candidates or self.candidates.get("next_page")
        found = await self.resolver.resolve_for_context(
            f"{step.name}_next_page", candidates, settings.locators.next_page_lookup_timeout_ms
        )
        if found is None:
            logger.info(f"Listing '{step.name}': no further pages")
            return None

        await self.surface.click(found)
        await self.surface.wait_for_load_signal("domcontentloaded")
        return found
