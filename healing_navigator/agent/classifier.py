"""
Error classification for the self-healing engine.
Oracle-backed classification with a deterministic keyword fallback.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError

from config.settings import settings, RecoverySettings
from healing_navigator.agent.oracle import Oracle, build_classification_prompt
from healing_navigator.agent.state import Classification, ErrorKind, Severity
from healing_navigator.browser.locators import CandidateTable
from healing_navigator.vision.observer import PageState
from healing_navigator.utils.logger import agent_logger as logger


class Classifier(ABC):
    """Maps a failure to a Classification. Implementations must never raise."""

    @abstractmethod
    async def classify(
        self,
        error: BaseException,
        context: str,
        page_state: PageState
    ) -> Classification:
        ...


class FallbackClassifier(Classifier):
    """
    Keyword rules over the error message, case-insensitive, first match wins:

    - "timeout"              -> timeout, medium
    - "locator" / "selector" -> locator, high, with candidate locators for the context
    - anything else          -> unknown, medium
    """

    TIMEOUT_FIXES = ["increase timeout", "wait for load", "retry navigation"]
    LOCATOR_FIXES = ["try alternative locators", "update selectors", "wait for element"]
    UNKNOWN_FIXES = ["retry operation", "wait and retry"]

    def __init__(
        self,
        candidates: Optional[CandidateTable] = None,
        recovery_settings: Optional[RecoverySettings] = None
    ):
        self.candidates = candidates or CandidateTable()
        self.config = recovery_settings or settings.recovery

    def classify_message(self, message: str, context: str) -> Classification:
        """Synchronous core of the keyword rules."""
        lowered = (message or "").lower()

        if "timeout" in lowered:
            return Classification(
                kind=ErrorKind.TIMEOUT,
                severity=Severity.MEDIUM,
                suggested_fixes=list(self.TIMEOUT_FIXES),
                alternative_locators=[],
                should_retry=True,
                retry_delay_ms=self.config.timeout_retry_delay_ms,
            )

        if "locator" in lowered or "selector" in lowered:
            return Classification(
                kind=ErrorKind.LOCATOR,
                severity=Severity.HIGH,
                suggested_fixes=list(self.LOCATOR_FIXES),
                alternative_locators=self.candidates.for_context(context),
                should_retry=True,
                retry_delay_ms=self.config.locator_retry_delay_ms,
            )

        return Classification(
            kind=ErrorKind.UNKNOWN,
            severity=Severity.MEDIUM,
            suggested_fixes=list(self.UNKNOWN_FIXES),
            alternative_locators=[],
            should_retry=True,
            retry_delay_ms=self.config.unknown_retry_delay_ms,
        )

    async def classify(
        self,
        error: BaseException,
        context: str,
        page_state: PageState
    ) -> Classification:
        return self.classify_message(str(error), context)


def extract_json_block(text: str) -> Optional[str]:
    """
    Return the first balanced ``{...}`` block in text.

    Braces inside JSON strings (including escaped quotes) are not counted.
    Returns None when no complete block exists.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue

            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]

        start = text.find("{", start + 1)
    return None


def parse_classification(text: str) -> Classification:
    """
    Strictly validate an oracle reply.

    Raises:
        ValueError: no JSON object in the reply
        ValidationError: missing fields, wrong JSON types or values outside the taxonomy
    """
    block = extract_json_block(text or "")
    if block is None:
        raise ValueError("No JSON object found in oracle response")
    return Classification.model_validate_json(block, strict=True)


class OracleClassifier(Classifier):
    """Asks the oracle first; any failure along the way falls back to keyword rules."""

    def __init__(self, oracle: Oracle, fallback: Optional[FallbackClassifier] = None):
        self.oracle = oracle
        self.fallback = fallback or FallbackClassifier()

    async def classify(
        self,
        error: BaseException,
        context: str,
        page_state: PageState
    ) -> Classification:
        try:
            prompt = build_classification_prompt(error, context, page_state)
            reply = await self.oracle.chat(prompt)
            classification = parse_classification(reply)
            logger.debug(f"Oracle classified '{context}' as {classification.kind.value}")
            return classification
        except (ValueError, ValidationError) as e:
            logger.warning(f"Oracle reply rejected, using fallback rules: {e}")
        except Exception as e:
            logger.warning(f"Oracle unavailable, using fallback rules: {type(e).__name__}: {e}")

        return await self.fallback.classify(error, context, page_state)
