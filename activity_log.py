"""Human readable activity log of everything submitted in a session.

Entries are kept in a rolling buffer in arrival order; `render()` shows the
newest first, which is how the operator reads them.
"""
from __future__ import annotations

import collections
import datetime
import logging
from dataclasses import dataclass, field
from typing import Deque, Iterable, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

_MAX_ENTRIES = 5000


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime.datetime
    head: str
    prefix: str = ""
    details: Sequence[str] = field(default_factory=tuple)

    def lines(self) -> List[str]:
        stamp = self.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        label = f"{self.prefix}: " if self.prefix else ""
        return [f"{stamp} - {label}{self.head}"] + [f"    {line}" for line in self.details]


class ActivityLog:
    def __init__(self, max_entries: int = _MAX_ENTRIES) -> None:
        self._entries: Deque[LogEntry] = collections.deque(maxlen=max_entries)

    def add(self, message: Union[str, Iterable[str]], prefix: Optional[str] = None) -> LogEntry:
        """Append an entry; a sequence becomes a head line plus detail lines."""
        if isinstance(message, str):
            parts = [message]
        else:
            parts = list(message)
        if not parts:
            raise ValueError("Log message cannot be empty")
        entry = LogEntry(
            timestamp=datetime.datetime.now(datetime.timezone.utc),
            head=parts[0],
            prefix=prefix or "",
            details=tuple(p for p in parts[1:] if p),
        )
        self._entries.append(entry)
        logger.info("%s%s", f"{entry.prefix}: " if entry.prefix else "", entry.head)
        for line in entry.details:
            logger.debug("  %s", line)
        return entry

    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def render(self) -> List[str]:
        lines: List[str] = []
        for entry in reversed(self._entries):
            lines.extend(entry.lines())
        return lines

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
