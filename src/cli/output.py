"""Console output for the resilient CLI.

Everything printed to the terminal is mirrored into the log file, so a
session log reads the same as what the user saw.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from network.errors import NetworkError, OfflineAndNoCacheError, RetryExhaustedError
from network.parsing import Post
from offline.actions import OfflineAction

# Console markers per message level
MARKERS = {
    "success": "[ok]",
    "warning": "[!]",
    "error": "[x]",
}

RULE_WIDTH = 60
TITLE_WIDTH = 60


class OutputManager:
    """Prints user-facing CLI output and mirrors it to a logger.

    Usage:
        out = get_output("resilient.queue")
        out.header("Offline Queue")
        for action in actions:
            out.action_row(action)
        out.success("Synced 3 actions")
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _emit(self, console: str, level: int = logging.INFO, logged: Optional[str] = None) -> None:
        print(console)
        self.logger.log(level, logged if logged is not None else console.strip())

    # === Messages ===

    def info(self, msg: str) -> None:
        self._emit(msg)

    def success(self, msg: str) -> None:
        self._emit(f"{MARKERS['success']} {msg}", logged=f"[SUCCESS] {msg}")

    def warning(self, msg: str) -> None:
        self._emit(f"{MARKERS['warning']} {msg}", logging.WARNING, logged=msg)

    def error(self, msg: str) -> None:
        self._emit(f"{MARKERS['error']} {msg}", logging.ERROR, logged=msg)

    def failure(self, error: Exception) -> None:
        """Report a terminal error with its recovery suggestions.

        Classified errors show their user message; anything else is shown
        as unexpected.
        """
        if isinstance(error, RetryExhaustedError):
            self.error(f"{error.user_message} (after {error.total_attempts} attempts)")
            suggestions = error.recovery_suggestions
        elif isinstance(error, (NetworkError, OfflineAndNoCacheError)):
            self.error(error.user_message)
            suggestions = error.recovery_suggestions
        else:
            self.error(f"Unexpected error: {error}")
            suggestions = []
        for suggestion in suggestions:
            self.bullet(suggestion)

    # === Structure ===

    def header(self, title: str) -> None:
        rule = "=" * RULE_WIDTH
        print(f"\n{rule}\n  {title}\n{rule}\n")
        self.logger.info(f"=== {title} ===")

    def subheader(self, title: str) -> None:
        self._emit(f"\n{title}:", logged=f"--- {title} ---")

    def stat(self, label: str, value: Any, indent: int = 3) -> None:
        self._emit(f"{' ' * indent}{label}: {value}", logged=f"STAT {label}={value}")

    def stats(self, values: Dict[str, Any], indent: int = 3) -> None:
        for label, value in values.items():
            self.stat(label, value, indent)

    def bullet(self, msg: str, indent: int = 3) -> None:
        self._emit(f"{' ' * indent}- {msg}")

    def row(self, columns: Sequence[Any], widths: Optional[List[int]] = None) -> None:
        """Print one table row, padding columns to widths when given."""
        if widths:
            cells = [str(col).ljust(width) for col, width in zip(columns, widths)]
        else:
            cells = [str(col) for col in columns]
        self._emit(" | ".join(cells).rstrip(), logged="ROW " + " | ".join(str(c) for c in columns))

    # === Domain rows ===

    def post_row(self, post: Post) -> None:
        title = post.title
        if len(title) > TITLE_WIDTH:
            title = title[: TITLE_WIDTH - 3] + "..."
        self.row([post.id, post.user_id, title], widths=[5, 4, TITLE_WIDTH])

    def action_row(self, action: OfflineAction) -> None:
        self.row(
            [
                action.id[:8],
                action.type.value,
                action.created_at.strftime("%Y-%m-%d %H:%M"),
                f"retries={action.retry_count}",
            ],
            widths=[8, 12, 16, 10],
        )

    def flag(self, label: str, enabled: bool, indent: int = 3) -> None:
        self.stat(label, "on" if enabled else "off", indent)


_managers: Dict[str, OutputManager] = {}


def get_output(name: str = "resilient") -> OutputManager:
    """Return the shared OutputManager for a logger name."""
    if name not in _managers:
        _managers[name] = OutputManager(logging.getLogger(name))
    return _managers[name]


__all__ = ["OutputManager", "get_output", "MARKERS"]
