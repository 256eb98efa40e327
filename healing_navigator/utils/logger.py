"""
Rich + Loguru logging utility for the Self-Healing Navigator.
Shows every failure, classification and fix attempt in the terminal.
"""

import json
import sys
from pathlib import Path
from datetime import datetime
from typing import Any

from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from config.settings import settings


# Initialize Rich console
console = Console()

CONSOLE_FORMAT = (
    "<level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

SEVERITY_STYLES = {
    "low": "green",
    "medium": "yellow",
    "high": "bold red",
}


class AgentLogger:
    """
    Combines Loguru's sinks with Rich panels and tables.
    Every call writes a plain log line and, for user-facing events, a rich render.
    """

    def __init__(
        self,
        level: str = "INFO",
        log_to_file: bool = True,
        log_dir: Path = Path("logs"),
        app_name: str = "HealingNavigator"
    ):
        self.app_name = app_name
        self.console = console
        self.log_dir = log_dir

        # Remove default logger
        logger.remove()

        self._console_handler_id = logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=level,
            colorize=True,
        )

        self.log_file = None
        if log_to_file:
            log_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = log_dir / f"{app_name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
            logger.add(
                self.log_file,
                format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
                level="DEBUG",
                rotation="10 MB",
                retention="7 days",
            )

        self._logger = logger

    def set_level(self, level: str):
        """Re-register the terminal sink at a different level; the file sink is untouched."""
        self._logger.remove(self._console_handler_id)
        self._console_handler_id = self._logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=level,
            colorize=True,
        )

    def thought(self, message: str, title: str = "Recovery"):
        """Display reasoning about a failure."""
        panel = Panel(
            Text(message, style="italic cyan"),
            title=f"[bold blue]{title}[/bold blue]",
            border_style="blue",
            padding=(1, 2),
        )
        self.console.print(panel)
        self._logger.info(f"[THOUGHT] {message}")

    def action(self, action_type: str, details: dict[str, Any]):
        """Display a browser action."""
        table = Table(title=f"[bold green]Action: {action_type}[/bold green]", border_style="green")
        table.add_column("Parameter", style="cyan")
        table.add_column("Value", style="white")

        for key, value in details.items():
            table.add_row(key, escape(str(value)[:100]))

        self.console.print(table)
        self._logger.info(f"[ACTION] {action_type}: {details}")

    def observation(self, message: str, data: Any = None):
        """Display an observation from the page."""
        panel = Panel(
            Text(message, style="yellow"),
            title="[bold yellow]Observation[/bold yellow]",
            border_style="yellow",
            padding=(0, 1),
        )
        self.console.print(panel)
        self._logger.debug(f"[OBSERVATION] {message}")

        if data:
            self._logger.debug(f"[OBSERVATION DATA] {data}")

    def error(self, message: str, exception: Exception = None):
        """Display an error with optional exception details."""
        error_text = Text(message, style="bold red")
        if exception:
            error_text.append(f"\n\nException: {type(exception).__name__}: {str(exception)}", style="red")

        panel = Panel(
            error_text,
            title="[bold red]Error[/bold red]",
            border_style="red",
            padding=(1, 2),
        )
        self.console.print(panel)
        self._logger.error(f"[ERROR] {message}")

    def success(self, message: str):
        """Display a success message."""
        panel = Panel(
            Text(message, style="bold green"),
            title="[bold green]Success[/bold green]",
            border_style="green",
        )
        self.console.print(panel)
        self._logger.info(f"[SUCCESS] {message}")

    def classification(self, context: str, attempt: int, classification: Any):
        """Display the classification of a failed attempt."""
        severity = classification.severity.value
        table = Table(
            title=f"[bold magenta]Classified failure: {context} (attempt {attempt})[/bold magenta]",
            border_style="magenta",
        )
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Type", classification.kind.value)
        table.add_row("Severity", Text(severity, style=SEVERITY_STYLES.get(severity, "white")))
        table.add_row("Should retry", str(classification.should_retry))
        table.add_row("Retry delay", f"{classification.retry_delay_ms} ms")
        table.add_row("Suggested fixes", escape(", ".join(classification.suggested_fixes)) or "-")
        if classification.alternative_locators:
            table.add_row("Alternatives", escape(", ".join(classification.alternative_locators)[:100]))

        self.console.print(table)
        self._logger.info(
            f"[CLASSIFY] {context} attempt={attempt} type={classification.kind.value} "
            f"severity={severity} retry={classification.should_retry}"
        )

    def fix_attempt(self, context: str, attempt: Any):
        """Display the outcome of a fix attempt."""
        style = "green" if attempt.success else "red"
        body = Text(f"{attempt.strategy}", style=f"bold {style}")
        if attempt.discovered_locator:
            body.append(f"\nLocator: {attempt.discovered_locator}", style="cyan")
        if attempt.notes:
            body.append(f"\n{attempt.notes}", style="dim")

        panel = Panel(
            body,
            title=f"[bold {style}]Fix {'applied' if attempt.success else 'failed'}: {context}[/bold {style}]",
            border_style=style,
        )
        self.console.print(panel)
        self._logger.info(
            f"[FIX] {context} strategy='{attempt.strategy}' success={attempt.success} "
            f"locator={attempt.discovered_locator}"
        )

    def session_summary(self, snapshot: dict):
        """Display the end-of-session error report."""
        table = Table(title="[bold cyan]Self-Healing Report[/bold cyan]", border_style="cyan")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Total errors", str(snapshot["total_errors"]))
        table.add_row("Auto-fixed", str(snapshot["fixed_errors"]))
        table.add_row("Self-healing rate", f"{snapshot['healing_rate']:.1f}%")
        for kind, count in snapshot["error_kind_counts"].items():
            table.add_row(f"  {kind}", str(count))
        if snapshot.get("fix_cache"):
            table.add_row("Cached locators", str(len(snapshot["fix_cache"])))

        self.console.print(table)
        self._logger.info(f"[REPORT] {snapshot}")

    def show_json(self, data: dict, title: str = "JSON Data"):
        """Display JSON data with syntax highlighting."""
        json_str = json.dumps(data, indent=2, default=str)
        syntax = Syntax(json_str, "json", theme="monokai", line_numbers=False)
        panel = Panel(syntax, title=f"[bold]{title}[/bold]", border_style="white")
        self.console.print(panel)

    def info(self, message: str):
        """Standard info logging."""
        self.console.print(f"[dim cyan]INFO:[/dim cyan] {escape(message)}")
        self._logger.info(message)

    def debug(self, message: str):
        """Debug logging (only to file by default)."""
        self._logger.debug(message)

    def warning(self, message: str):
        """Warning logging."""
        self.console.print(f"[bold yellow]WARNING:[/bold yellow] {escape(message)}")
        self._logger.warning(message)

    def banner(self, text: str):
        """Display a banner/header."""
        self.console.print()
        self.console.rule(f"[bold magenta]{text}[/bold magenta]", style="magenta")
        self.console.print()


# Global logger instance
agent_logger = AgentLogger(
    level=settings.logging.level,
    log_to_file=settings.logging.log_to_file,
    log_dir=settings.logging.log_dir,
)
