"""Bounded, most-recent-first history of index failures for later inspection."""

import traceback
from collections import deque
from datetime import datetime, timezone

from shared.helper.HelperConfig import HelperConfig
from shared.models.note import ErrorLogEntry


class ErrorLog:
    def __init__(self, helper_config: HelperConfig, max_entries: int = 50) -> None:
        self.logging = helper_config.get_logger()
        self._entries: deque[ErrorLogEntry] = deque(maxlen=max_entries)

    def record(self, message: str, error: BaseException | None = None) -> None:
        """Log a failure and prepend it to the history. Never raises.

        Args:
            message (str): What was being done, e.g. "Error indexing notes/a.md".
            error (BaseException | None): The exception, if any.
        """
        try:
            details = None
            if error is not None:
                self.logging.error("%s: %s", message, error)
                details = "".join(traceback.format_exception(type(error), error, error.__traceback__)).strip()
            else:
                self.logging.error(message)
            self._entries.appendleft(
                ErrorLogEntry(timestamp=datetime.now(timezone.utc), message=message, details=details)
            )
        except Exception:
            # recording is best effort
            self.logging.debug("Could not record error log entry for %r", message, exc_info=True)

    def get_entries(self) -> list[ErrorLogEntry]:
        """Returns the history, most recent first."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
