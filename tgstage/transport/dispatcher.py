# tgstage/transport/dispatcher.py
"""
In-process event source for Telegram updates.

Subscribers are awaited one after another, in subscription order, and an
update is fully dispatched before ``dispatch()`` returns.  The poller and the
webhook await ``dispatch()`` per update, so each subscriber sees updates
strictly in arrival order.

A subscriber added while an update is being dispatched (typically a Stage
started from a command handler) still receives that update.  Stages rely on
this: the activating update is their "first run" update, which they record
and discard.
"""
from __future__ import annotations

import inspect
import itertools
from dataclasses import dataclass
from typing import Any, Optional

from tgstage.config import settings
from tgstage.core.stage.engine import random_group_name
from tgstage.core.stage.ports import UpdateHandler, UpdatePredicate
from tgstage.core.stage.scope import extract_message
from tgstage.infra.logging_config import get_logger

logger = get_logger(__name__)


def command(name: str) -> UpdatePredicate:
    """Predicate matching ``/name`` (with or without ``@BotName``) in any message payload."""
    name = name.lstrip("/")

    def predicate(update: Any) -> bool:
        message = extract_message(update)
        text = getattr(message, "text", None) or ""
        if not text.startswith("/"):
            return False
        return text.split()[0][1:].split("@")[0] == name

    return predicate


@dataclass(eq=False)
class Subscription:
    handler: UpdateHandler
    group: str
    predicate: Optional[UpdatePredicate] = None
    id: int = 0
    active: bool = True


class EventDispatcher:
    """Ordered fan-out of updates to subscribed handlers."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._ids = itertools.count(1)

    def subscribe(
        self,
        handler: UpdateHandler,
        *,
        predicate: Optional[UpdatePredicate] = None,
        group: Optional[str] = None,
    ) -> Subscription:
        subscription = Subscription(
            handler=handler,
            group=group if group is not None else random_group_name(settings.stage_group_length),
            predicate=predicate,
            id=next(self._ids),
        )
        self._subscriptions.append(subscription)
        logger.debug(f"Subscribed handler to group={subscription.group}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove ``subscription``. Returns False if it was not subscribed."""
        subscription.active = False
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            return False
        logger.debug(f"Unsubscribed handler from group={subscription.group}")
        return True

    def unsubscribe_group(self, group: str) -> int:
        """Remove every subscription in ``group``. Returns how many were removed."""
        removed = [s for s in self._subscriptions if s.group == group]
        for subscription in removed:
            self.unsubscribe(subscription)
        return len(removed)

    def groups(self) -> list[str]:
        return [s.group for s in self._subscriptions]

    def __len__(self) -> int:
        return len(self._subscriptions)

    async def dispatch(self, update: Any) -> int:
        """
        Deliver ``update`` to every subscriber. Returns the number of handlers run.

        A failing handler is logged and does not stop delivery to the others.
        """
        delivered: set[int] = set()
        handled = 0

        while True:
            pending = [s for s in self._subscriptions if s.id not in delivered]
            if not pending:
                break

            for subscription in pending:
                delivered.add(subscription.id)
                if not subscription.active:
                    continue
                if subscription.predicate is not None and not subscription.predicate(update):
                    continue

                handled += 1
                try:
                    result = subscription.handler(update)
                    if inspect.isawaitable(result):
                        await result
                except Exception as exc:
                    logger.error(
                        f"Update handler failed (group={subscription.group}): "
                        f"{exc.__class__.__name__}: {exc}",
                        exc_info=True,
                        extra={"update_id": getattr(update, "update_id", None)},
                    )

        return handled
