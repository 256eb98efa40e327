"""
Session state for the Self-Healing Navigator.
Tracks error frequencies, per-type counts and the locator fix cache for one browser session.
"""

import json
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Optional


class SessionState:
    """
    Mutable record of everything that went wrong (and got fixed) during a session.
    Owned by whoever starts the session; the executor is its only writer.
    """

    def __init__(self):
        self.error_frequency: Counter[str] = Counter()
        self.context_errors: dict[str, Counter[str]] = {}
        self.fix_cache: dict[str, str] = {}
        self.total_errors: int = 0
        self.fixed_errors: int = 0
        self.error_kind_counts: Counter[str] = Counter()
        self.start_time: Optional[datetime] = None
        self.session_name: Optional[str] = None

    def start_session(self, name: str = "session", keep_fix_cache: bool = True):
        """Reset counters for a new session; the fix cache survives unless told otherwise."""
        self.session_name = name
        self.start_time = datetime.now()
        self.error_frequency.clear()
        self.context_errors.clear()
        self.total_errors = 0
        self.fixed_errors = 0
        self.error_kind_counts.clear()
        if not keep_fix_cache:
            self.fix_cache.clear()

    def record_error(self, context: str, message: str):
        """Count a failed attempt of an operation."""
        self.total_errors += 1
        self.error_frequency[message] += 1
        self.context_errors.setdefault(context, Counter())[message] += 1

    def record_kind(self, kind: str):
        """Count a classified failure by its error type."""
        self.error_kind_counts[kind] += 1

    def record_fix(self, context: str, locator: Optional[str] = None):
        """Count a successful fix and remember the locator that worked, if any."""
        self.fixed_errors += 1
        if locator:
            self.fix_cache[context] = locator

    def prior_errors(self, context: str) -> dict[str, int]:
        """Error messages seen so far for a context, with their counts."""
        return dict(self.context_errors.get(context, {}))

    def cached_locator(self, context: str) -> Optional[str]:
        """Last known-good locator for a context."""
        return self.fix_cache.get(context)

    @property
    def healing_rate(self) -> float:
        """Percentage of errors that were automatically fixed."""
        if not self.total_errors:
            return 0.0
        return self.fixed_errors / self.total_errors * 100

    def snapshot(self) -> dict:
        """Plain-dict view of the session for reporting."""
        elapsed = None
        if self.start_time:
            elapsed = (datetime.now() - self.start_time).total_seconds()

        return {
            "session": self.session_name,
            "total_errors": self.total_errors,
            "fixed_errors": self.fixed_errors,
            "healing_rate": self.healing_rate,
            "error_kind_counts": dict(self.error_kind_counts),
            "error_frequency": dict(self.error_frequency),
            "fix_cache": dict(self.fix_cache),
            "elapsed_seconds": elapsed,
        }

    def export_fix_cache(self, path: Path):
        """Write the fix cache to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.fix_cache, indent=2, sort_keys=True), encoding="utf-8")

    def load_fix_cache(self, path: Path) -> int:
        """
        Merge a previously exported fix cache into this session.

        Returns the number of entries loaded; a missing file loads nothing.
        """
        path = Path(path)
        if not path.exists():
            return 0

        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Fix cache at {path} is not a JSON object")

        loaded = {str(k): str(v) for k, v in data.items() if v}
        self.fix_cache.update(loaded)
        return len(loaded)
