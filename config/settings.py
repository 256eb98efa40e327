"""
Configuration settings for the Self-Healing Navigator.
Uses Pydantic Settings for environment variable management.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Literal, Optional
from pathlib import Path


class BrowserSettings(BaseSettings):
    """Browser-specific configuration."""

    headless: bool = Field(default=False, description="Run browser in headless mode")
    viewport_width: int = Field(default=1280, description="Browser viewport width")
    viewport_height: int = Field(default=720, description="Browser viewport height")
    timeout_ms: int = Field(default=90000, description="Default navigation/action timeout in milliseconds")
    element_timeout_ms: int = Field(default=30000, description="Default element wait timeout in milliseconds")
    slow_mo: int = Field(default=100, description="Slow down operations by this amount (ms)")
    action_delay_ms: int = Field(default=3000, description="Pause between workflow steps")
    popup_settle_ms: int = Field(default=1000, description="Pause after dismissing a popup")
    user_agent: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        description="Custom user agent string"
    )

    model_config = SettingsConfigDict(env_prefix="BROWSER_")


class LLMSettings(BaseSettings):
    """LLM configuration for the Gemini classification oracle."""

    enabled: bool = Field(default=True, description="Consult the oracle before the keyword fallback")
    google_api_key: str = Field(default="", description="Google Generative AI API key")
    model_name: str = Field(default="gemini-1.5-pro", description="Model to use")
    temperature: float = Field(default=0.1, description="Sampling temperature")
    max_output_tokens: int = Field(default=1024, description="Maximum output tokens")
    top_p: float = Field(default=0.95, description="Top-p sampling")

    model_config = SettingsConfigDict(env_prefix="LLM_")


class RecoverySettings(BaseSettings):
    """Retry, classification and fix-strategy tuning."""

    max_retries: int = Field(default=3, description="Attempts per operation")

    # Keyword fallback retry delays
    timeout_retry_delay_ms: int = Field(default=5000, ge=0)
    locator_retry_delay_ms: int = Field(default=2000, ge=0)
    unknown_retry_delay_ms: int = Field(default=3000, ge=0)

    # Fix handler tuning
    extra_delay_ms: int = Field(default=5000, ge=0, description="Wait used by the 'increase timeout' fix")
    load_timeout_ms: int = Field(default=60000, ge=0, description="Load-signal and reload timeout")
    network_wait_ms: int = Field(default=5000, ge=0, description="Pause before reloading on network errors")
    alternative_lookup_timeout_ms: int = Field(default=5000, ge=0)
    default_lookup_timeout_ms: int = Field(default=2000, ge=0)
    ui_change_lookup_timeout_ms: int = Field(default=3000, ge=0)
    max_ui_selectors: int = Field(default=5, ge=1, description="Selectors tried after a UI-change re-query")

    # Prompt shaping
    prompt_element_count: int = Field(default=10, description="Visible elements included in the prompt")
    stack_trace_chars: int = Field(default=1000, description="Stack trace characters included in the prompt")

    fix_cache_path: Optional[Path] = Field(default=None, description="JSON file for persisting discovered locators")
    artifacts_dir: Path = Field(default=Path("screenshots"), description="Where UI-change screenshots are saved")

    model_config = SettingsConfigDict(env_prefix="RECOVERY_")


class LocatorSettings(BaseSettings):
    """Candidate locators and page markers."""

    # Checked in order; the first category contained in a context wins, so
    # the specific login fields come before the generic login entry
    candidates: dict[str, list[str]] = Field(
        default={
            "login_password": ["#passwordField", '[type="password"]', '[name="password"]'],
            "login_submit": ['button[type="submit"]', 'button:has-text("Login")', ".loginButton"],
            "login": ["#usernameField", '[name="email"]', '[type="email"]', "#emailField"],
            "next_page": ['a:has-text("Next")', ".pagination-next", 'a[title="Next"]', ".next-page"],
            "job": [".jobTuple", ".job-card", ".job-listing", ".title"],
            "apply": ['button:has-text("Apply")', ".apply-btn", 'a:has-text("Apply")'],
        },
        description="Context category -> ordered candidate descriptors"
    )
    popup_selectors: list[str] = Field(
        default=[
            ".nI-gNb-backdrop",
            ".modal-backdrop",
            '[data-testid="backdrop"]',
            ".popup-overlay",
            "#onetrust-accept-btn-handler",
            'button[aria-label="Close"]',
            ".close-btn",
            ".dismiss",
        ],
        description="Overlays and close buttons clicked away by dismiss_popups"
    )
    popup_lookup_timeout_ms: int = Field(default=500, description="Visibility check per popup selector")
    next_page_lookup_timeout_ms: int = Field(default=2000, description="Visibility check per \"next page\" candidate")
    listing_markers: list[str] = Field(
        default=["jobTuple", "job"],
        description="Page markers for record listings"
    )
    verification_markers: list[str] = Field(
        default=["captcha", "recaptcha", "hcaptcha"],
        description="Page markers for human-verification challenges"
    )

    model_config = SettingsConfigDict(env_prefix="LOCATOR_")


class DOMProcessorSettings(BaseSettings):
    """DOM summarization configuration."""

    max_elements: int = Field(default=50, description="Visible elements sampled per page")

    excluded_tags: list[str] = Field(
        default=[
            "script", "style", "noscript", "svg", "path", "meta",
            "link", "head", "title", "br", "hr", "template"
        ],
        description="HTML tags to exclude"
    )

    model_config = SettingsConfigDict(env_prefix="DOM_")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_to_file: bool = Field(default=True, description="Enable file logging")
    log_dir: Path = Field(default=Path("logs"), description="Log directory")

    model_config = SettingsConfigDict(env_prefix="LOG_")


class Settings(BaseSettings):
    """Main settings aggregator."""

    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    recovery: RecoverySettings = Field(default_factory=RecoverySettings)
    locators: LocatorSettings = Field(default_factory=LocatorSettings)
    dom: DOMProcessorSettings = Field(default_factory=DOMProcessorSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


# Global settings instance
settings = Settings()
