"""
stagbot.services.log_files — Daily Category Log Files
======================================================

A :class:`logging.Handler` that writes every record into one of four
daily files under the configured log directory:

==========================  =========================================
File                        Records
==========================  =========================================
``moderation-YYYY-MM-DD``   the ``stagbot.moderation`` logger
``anonymous-YYYY-MM-DD``    the ``stagbot.anonymous`` logger
``error-YYYY-MM-DD``        anything at ERROR or above
``general-YYYY-MM-DD``      everything else
==========================  =========================================

Moderation and broadcast audits go to their own files even when they are
errors, so the audit trail stays in one place.  :func:`clean_old_logs`
removes files older than the retention window; the tasks cog calls it
once a day.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import UTC, date, datetime
from pathlib import Path

MODERATION_LOGGER = "stagbot.moderation"
ANONYMOUS_LOGGER = "stagbot.anonymous"

FILE_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def category_for(record: logging.LogRecord) -> str:
    """File category (``moderation`` / ``anonymous`` / ``error`` / ``general``)."""
    name = record.name
    if name == MODERATION_LOGGER or name.startswith(MODERATION_LOGGER + "."):
        return "moderation"
    if name == ANONYMOUS_LOGGER or name.startswith(ANONYMOUS_LOGGER + "."):
        return "anonymous"
    if record.levelno >= logging.ERROR:
        return "error"
    return "general"


class CategoryFileHandler(logging.Handler):
    """Append records to ``<log_dir>/<category>-<UTC date>.log``."""

    def __init__(
        self,
        log_dir: str | Path,
        level: int = logging.INFO,
        *,
        today: Callable[[], date] | None = None,
    ) -> None:
        super().__init__(level)
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._today = today or (lambda: datetime.now(UTC).date())
        self._write_lock = threading.Lock()
        self.setFormatter(logging.Formatter(FILE_FORMAT))

    def path_for(self, record: logging.LogRecord) -> Path:
        stamp = self._today().isoformat()
        return self.log_dir / f"{category_for(record)}-{stamp}.log"

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
            path = self.path_for(record)
            with self._write_lock, open(path, "a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except Exception:
            self.handleError(record)


def install_file_handler(log_dir: str | Path, level: int = logging.INFO) -> CategoryFileHandler:
    """Attach a :class:`CategoryFileHandler` to the root logger."""
    handler = CategoryFileHandler(log_dir, level=level)
    logging.getLogger().addHandler(handler)
    return handler


def clean_old_logs(
    log_dir: str | Path,
    days_to_keep: int = 30,
    *,
    now: float | None = None,
) -> list[str]:
    """Delete ``*.log`` files whose mtime is older than *days_to_keep* days.

    Returns the names of the deleted files.  A missing directory is not an
    error.
    """
    directory = Path(log_dir)
    if not directory.is_dir():
        return []
    cutoff = (now if now is not None else time.time()) - days_to_keep * 86400
    deleted: list[str] = []
    for path in sorted(directory.glob("*.log")):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                deleted.append(path.name)
        except OSError as exc:
            logger.error("Failed to clean old log %s: %s", path, exc)
    for name in deleted:
        logger.info("Deleted old log file: %s", name)
    return deleted
