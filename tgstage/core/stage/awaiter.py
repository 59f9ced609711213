# tgstage/core/stage/awaiter.py
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Union

ResponseCallback = Callable[[Any], Union[None, Awaitable[None]]]


class ResponseAwaiter:
    """
    Holds at most one pending callback for the next in-scope update.

    There is no queue: installing a callback replaces the previous one.
    """

    def __init__(self) -> None:
        self._callback: Optional[ResponseCallback] = None

    def install(self, callback: ResponseCallback) -> None:
        self._callback = callback

    def clear(self) -> None:
        self._callback = None

    def take(self) -> Optional[ResponseCallback]:
        """Return the pending callback and clear it in the same step."""
        callback, self._callback = self._callback, None
        return callback

    @property
    def pending(self) -> bool:
        return self._callback is not None
