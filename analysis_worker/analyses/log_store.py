"""Per-analysis run log files under ``analyses/<id>/logs``."""

from __future__ import annotations

import asyncio
import math
import re
from datetime import datetime, timezone
from pathlib import Path

from analysis_worker.analyses.models import LogEntry, LogPage
from analysis_worker.config import settings
from analysis_worker.core.files import safe_child
from analysis_worker.core.logging import get_logger

logger = get_logger(__name__)

LOG_FILE_NAME = "analysis.log"

_LOG_LINE_RE = re.compile(r"^\[(?P<timestamp>[^\]]+)\]\s?(?P<message>.*)$")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_log_line(line: str) -> tuple[datetime, str] | None:
    match = _LOG_LINE_RE.match(line)
    if not match:
        return None
    try:
        timestamp = datetime.fromisoformat(match.group("timestamp"))
    except ValueError:
        return None
    return timestamp, match.group("message")


class LogStore:
    def __init__(self, root: Path | None = None) -> None:
        self._root = root

    @property
    def analyses_path(self) -> Path:
        return (self._root or Path(settings.storage_path)) / "analyses"

    def _logs_dir(self, analysis_id: str) -> Path:
        return safe_child(self.analyses_path, analysis_id) / "logs"

    def _log_file(self, analysis_id: str) -> Path:
        return self._logs_dir(analysis_id) / LOG_FILE_NAME

    async def add_log(self, analysis_id: str, message: str) -> LogEntry:
        log_file = self._log_file(analysis_id)
        timestamp = _utc_now()
        await asyncio.to_thread(self._append_sync, log_file, timestamp, message)
        total = await asyncio.to_thread(self._count_sync, log_file)
        return LogEntry(sequence=total, timestamp=timestamp, message=message)

    def _append_sync(self, log_file: Path, timestamp: datetime, message: str) -> None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        # One entry per line
        flattened = message.replace("\r", " ").replace("\n", " ")
        with log_file.open("a", encoding="utf-8") as handle:
            handle.write(f"[{timestamp.isoformat()}] {flattened}\n")

    def _read_entries_sync(self, log_file: Path) -> list[LogEntry]:
        if not log_file.exists():
            return []
        entries: list[LogEntry] = []
        sequence = 0
        with log_file.open("r", encoding="utf-8", errors="replace") as handle:
            for raw_line in handle:
                line = raw_line.rstrip("\n")
                parsed = _parse_log_line(line)
                if parsed is None:
                    continue
                sequence += 1
                timestamp, message = parsed
                entries.append(
                    LogEntry(sequence=sequence, timestamp=timestamp, message=message)
                )
        return entries

    def _count_sync(self, log_file: Path) -> int:
        return len(self._read_entries_sync(log_file))

    async def get_logs(
        self,
        analysis_id: str,
        page: int = 1,
        limit: int | None = None,
    ) -> LogPage:
        """Return a page of log entries, most recent first."""
        limit = limit or settings.log_page_size
        page = max(1, page)
        entries = await asyncio.to_thread(
            self._read_entries_sync, self._log_file(analysis_id)
        )
        entries.reverse()
        start = (page - 1) * limit
        total_pages = math.ceil(len(entries) / limit) if entries else 0
        return LogPage(
            logs=entries[start : start + limit],
            page=page,
            limit=limit,
            has_more=page < total_pages,
            total_count=len(entries),
        )

    async def clear_logs(self, analysis_id: str) -> int:
        """Delete every ``*.log`` file of the analysis. Returns files removed."""
        removed = await asyncio.to_thread(
            self._clear_sync, self._logs_dir(analysis_id)
        )
        logger.info("Cleared %d log file(s) for analysis %s", removed, analysis_id)
        return removed

    @staticmethod
    def _clear_sync(logs_dir: Path) -> int:
        if not logs_dir.exists():
            return 0
        removed = 0
        for log_file in logs_dir.glob("*.log"):
            if log_file.is_file():
                log_file.unlink()
                removed += 1
        return removed


log_store = LogStore()
