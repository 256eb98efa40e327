"""
Data model for the self-healing engine.
Classifications and fix attempts that flow between executor, classifier and dispatcher.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ErrorKind(str, Enum):
    """Closed taxonomy of failure types."""
    TIMEOUT = "timeout"
    LOCATOR = "locator"
    NETWORK = "network"
    CAPTCHA = "captcha"
    UI_CHANGE = "ui_change"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    """How bad a failure is; high severity propagates once retries stop."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Classification(BaseModel):
    """
    Verdict on a single failure.
    The oracle answers in camelCase, so every field carries its JSON alias.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: ErrorKind = Field(alias="errorType")
    severity: Severity
    suggested_fixes: list[str] = Field(alias="suggestedFixes")
    alternative_locators: list[str] = Field(alias="alternativeLocators")
    should_retry: bool = Field(alias="shouldRetry")
    retry_delay_ms: int = Field(alias="retryDelay", ge=0)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class FixAttempt(BaseModel):
    """Outcome of trying to repair a failure."""
    model_config = ConfigDict(frozen=True)

    strategy: str
    success: bool
    discovered_locator: Optional[str] = None
    notes: str = ""

