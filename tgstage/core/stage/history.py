# tgstage/core/stage/history.py
from __future__ import annotations

from typing import Any, Iterator


class HistoryLog:
    """Append-only log of the updates a stage accepted."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._updates: list[Any] = []

    def record(self, update: Any) -> bool:
        """Append ``update`` if recording is enabled. Returns True if stored."""
        if not self.enabled:
            return False
        self._updates.append(update)
        return True

    def view(self) -> tuple[Any, ...]:
        """Read-only snapshot, oldest first."""
        return tuple(self._updates)

    def __len__(self) -> int:
        return len(self._updates)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.view())
