"""
Oracle - the Gemini-backed error analyst.
Turns a failure plus page snapshot into a prompt and returns the raw model reply.
"""

import traceback
import google.generativeai as genai

from config.settings import settings
from healing_navigator.agent.state import ErrorKind, Severity
from healing_navigator.exceptions import OracleUnavailableError
from healing_navigator.vision.observer import PageState
from healing_navigator.utils.logger import agent_logger as logger


CLASSIFICATION_PROMPT = """You are an expert in browser automation failures. Analyze the failure below and classify it.

## Operation
Action: {context}

## Page
{page_lines}

## Error
Error Message: {message}
Stack Trace: {stack}

## Output Format
Respond with a single JSON object and nothing else:
```json
{{
    "errorType": "{kinds}",
    "severity": "{severities}",
    "suggestedFixes": ["short imperative fix", "..."],
    "alternativeLocators": ["css or playwright selector", "..."],
    "shouldRetry": true,
    "retryDelay": 2000
}}
```

## Rules
1. errorType must be exactly one of: {kinds_csv}
2. Suggested fixes are tried in order, put the most likely first
3. For timeouts prefer: "increase timeout", "wait for load", "retry navigation"
4. For locator problems list selectors that likely match the intended element
5. Use "captcha" when a human-verification challenge is visible
6. retryDelay is in milliseconds and must be a non-negative integer
"""

UI_CHANGE_PROMPT = """The page elements may have changed since this automation was written.

Operation: {context}
URL: {url}
Title: {title}

Selectors that used to work for this kind of element:
{known_selectors}

Suggest 3 alternative selectors that are likely to match the intended element.
Write each selector on its own line."""


class Oracle:
    """
    Thin async client over Gemini.
    ``chat`` returns whatever text the model produced; callers treat it as untrusted.
    """

    def __init__(
        self,
        api_key: str = None,
        model_name: str = None,
        temperature: float = None
    ):
        self.api_key = api_key or settings.llm.google_api_key
        self.model_name = model_name or settings.llm.model_name
        self.temperature = temperature if temperature is not None else settings.llm.temperature

        if self.api_key:
            genai.configure(api_key=self.api_key)

        self.model = genai.GenerativeModel(
            model_name=self.model_name,
            generation_config=genai.GenerationConfig(
                temperature=self.temperature,
                max_output_tokens=settings.llm.max_output_tokens,
                top_p=settings.llm.top_p,
            )
        )

        logger.info(f"Oracle initialized with model: {self.model_name}")

    async def chat(self, prompt: str) -> str:
        """
        Send a prompt and return the reply text.

        Raises:
            OracleUnavailableError: no API key, or the model returned no text
        """
        if not self.api_key:
            raise OracleUnavailableError("No Google API key configured")

        response = await self.model.generate_content_async(prompt)
        text = response.text
        if not text:
            raise OracleUnavailableError("Oracle returned an empty response")

        logger.debug(f"Oracle response: {text[:500]}")
        return text


def build_classification_prompt(
    error: BaseException,
    context: str,
    page_state: PageState,
    element_count: int = None,
    stack_chars: int = None
) -> str:
    """Prompt asking the oracle to classify a failure."""
    element_count = element_count or settings.recovery.prompt_element_count
    stack_chars = stack_chars or settings.recovery.stack_trace_chars

    elements = ", ".join(page_state.visible_elements[:element_count]) or "none"
    if page_state.prior_errors:
        previous = "\n".join(f"- {err}: {count} times" for err, count in page_state.prior_errors.items())
    else:
        previous = "none"

    page_lines = "\n".join([
        f"URL: {page_state.url}",
        f"Title: {page_state.title}",
        f"Visible Elements: {elements}",
        f"Has Login Forms: {page_state.has_login_form}",
        f"Has Job Listings: {page_state.has_listing_markers}",
        f"Has CAPTCHA: {page_state.has_verification_challenge}",
        f"Previous Errors:\n{previous}",
    ])

    stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))

    return CLASSIFICATION_PROMPT.format(
        context=context,
        page_lines=page_lines,
        message=str(error) or type(error).__name__,
        stack=stack[:stack_chars],
        kinds="|".join(k.value for k in ErrorKind),
        severities="|".join(s.value for s in Severity),
        kinds_csv=", ".join(k.value for k in ErrorKind),
    )


def build_ui_change_prompt(
    context: str,
    known_selectors: list[str],
    url: str = "",
    title: str = ""
) -> str:
    """Prompt asking the oracle for replacement selectors after a layout change."""
    return UI_CHANGE_PROMPT.format(
        context=context,
        url=url,
        title=title,
        known_selectors="\n".join(f"- {s}" for s in known_selectors) or "- none recorded",
    )
