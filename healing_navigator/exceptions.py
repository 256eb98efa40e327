"""
Exception hierarchy for the Self-Healing Navigator.
"""

from typing import Optional


class NavigatorError(Exception):
    """Base class for errors raised by the navigator itself."""


class LocatorNotFoundError(NavigatorError):
    """No candidate locator became visible for a required element."""

    def __init__(self, context: str, candidates: Optional[list[str]] = None):
        self.context = context
        self.candidates = list(candidates or [])
        super().__init__(
            f"locator not found for '{context}' (tried {len(self.candidates)} candidates)"
        )


class RetriesExhaustedError(NavigatorError):
    """The executor ran out of attempts without a result or a decision."""

    def __init__(self, context: str, max_retries: int):
        self.context = context
        self.max_retries = max_retries
        super().__init__(f"Max retries ({max_retries}) exceeded for operation: {context}")


class OracleUnavailableError(NavigatorError):
    """The classification oracle could not be reached or returned nothing."""


class WorkflowAbortedError(NavigatorError):
    """A workflow step failed with an unrecoverable error."""

    def __init__(self, step: str, cause: BaseException):
        self.step = step
        self.cause = cause
        super().__init__(f"Workflow aborted at step '{step}': {cause}")
