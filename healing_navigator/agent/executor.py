"""
Recovery Executor - runs operations under classification and repair.
Every script-layer operation goes through execute_with_recovery.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from config.settings import settings
from healing_navigator.agent.classifier import Classifier
from healing_navigator.agent.recovery import FixDispatcher
from healing_navigator.agent.state import Severity
from healing_navigator.exceptions import RetriesExhaustedError
from healing_navigator.vision.observer import PageObserver
from healing_navigator.utils.logger import agent_logger as logger
from healing_navigator.utils.state import SessionState


T = TypeVar("T")


class RecoveryExecutor:
    """
    Retry loop around a single operation.

    On each failure the error is recorded, the page observed, the failure classified
    and, while attempts remain, a fix dispatched before the next attempt.
    """

    def __init__(
        self,
        observer: PageObserver,
        classifier: Classifier,
        dispatcher: FixDispatcher,
        session: SessionState,
        max_retries: int = None
    ):
        self.observer = observer
        self.classifier = classifier
        self.dispatcher = dispatcher
        self.session = session
        self.max_retries = max_retries if max_retries is not None else settings.recovery.max_retries

    async def execute_with_recovery(
        self,
        operation: Callable[[], Awaitable[T]],
        context: str,
        max_retries: Optional[int] = None
    ) -> Optional[T]:
        """
        Run an operation, repairing and retrying on failure.

        Args:
            operation: Zero-argument callable returning an awaitable
            context: Stable label for the operation (fix cache key)
            max_retries: Attempts allowed; defaults to the configured value

        Returns:
            The operation's result, or None when a non-high-severity failure is given up on

        Raises:
            The original error when retries stop on a high-severity failure
            RetriesExhaustedError: the loop ended without a result or a decision
        """
        retries = max_retries if max_retries is not None else self.max_retries

        for attempt in range(1, retries + 1):
            try:
                return await operation()
            except Exception as error:
                message = str(error) or type(error).__name__
                self.session.record_error(context, message)
                logger.warning(f"'{context}' failed (attempt {attempt}/{retries}): {message[:200]}")

                page_state = await self.observer.observe(self.session.prior_errors(context))
                classification = await self.classifier.classify(error, context, page_state)
                self.session.record_kind(classification.kind.value)
                logger.classification(context, attempt, classification)

                if attempt < retries and classification.should_retry:
                    fix = await self.dispatcher.attempt_fix(error, classification, context)
                    logger.fix_attempt(context, fix)
                    if fix.success:
                        self.session.record_fix(context, fix.discovered_locator)
                    await asyncio.sleep(classification.retry_delay_ms / 1000)
                    continue

                if classification.severity == Severity.HIGH:
                    logger.error(f"Giving up on '{context}' after {attempt} attempt(s)", exception=error)
                    raise

                logger.warning(f"Giving up on '{context}' after {attempt} attempt(s); continuing without a result")
                return None

        raise RetriesExhaustedError(context, retries)
