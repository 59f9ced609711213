# tgstage/core/stage/ports.py
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Protocol, Union

UpdateHandler = Callable[[Any], Union[None, Awaitable[None]]]
UpdatePredicate = Callable[[Any], bool]


class Subscription(Protocol):
    group: str


class EventSource(Protocol):
    def subscribe(
        self,
        handler: UpdateHandler,
        *,
        predicate: Optional[UpdatePredicate] = None,
        group: Optional[str] = None,
    ) -> Subscription: ...

    def unsubscribe(self, subscription: Subscription) -> bool: ...


class SelfIdentity(Protocol):
    @property
    def bot_id(self) -> Optional[int]:
        """Id of the bot account, None until known."""
        ...


class StageClient(SelfIdentity, Protocol):
    """What a Stage needs from its client: an event source and its own id."""

    @property
    def events(self) -> EventSource: ...
