"""Append-only log store for a research run."""

from __future__ import annotations

from typing import Any, List, Optional

from core import LogEntry, Phase


class ResearchLog:
    """Ordered log entries of one run. Entries are never edited or removed."""

    def __init__(self) -> None:
        self._entries: List[LogEntry] = []

    def append(self, phase: Phase, message: str, details: Optional[Any] = None) -> LogEntry:
        entry = LogEntry(
            phase=phase,
            message=str(message or "").strip(),
            details=details,
        )
        self._entries.append(entry)
        return entry

    def entries(self) -> List[LogEntry]:
        return [item.model_copy(deep=True) for item in self._entries]

    def __len__(self) -> int:
        return len(self._entries)
