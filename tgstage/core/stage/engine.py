# tgstage/core/stage/engine.py
"""
Stage: a finite-state conversation bound to a chat and/or user.

A Stage owns a table of named steps.  Starting it subscribes to the client's
event source and enters the initial step; a step handler asks for the next
in-scope update with ``await_response``.  Exiting unsubscribes again.

Usage::

    stage = Stage(client, context={}, chat_id=message.chat.id)

    @stage.on("name", initial=True)
    async def ask_name(stage):
        await client.send_message(stage.chat_id, "What's your name?")

        @stage.await_response
        async def got_name(update):
            stage.context["name"] = update.message.text
            await stage.transition("age")

    await stage.start()

Step handlers, hooks and awaiters may be plain functions or coroutine
functions.  Every update is processed to completion (including any handler it
triggers) before the event source delivers the next one.
"""
from __future__ import annotations

import inspect
import secrets
import string
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from tgstage.config import settings
from tgstage.core.stage.awaiter import ResponseAwaiter, ResponseCallback
from tgstage.core.stage.errors import NoStepsDefined, StageNotActive
from tgstage.core.stage.history import HistoryLog
from tgstage.core.stage.ports import StageClient, Subscription, UpdatePredicate
from tgstage.core.stage.scope import ScopeFilter
from tgstage.core.stage.steps import StepHandler, StepTable
from tgstage.infra.logging_config import get_logger, LogContext

logger = get_logger(__name__)

T = TypeVar("T")

StartHook = Callable[[], Union[None, Awaitable[None]]]
ExitHook = Callable[[Any], Union[None, Awaitable[None]]]

_GROUP_ALPHABET = string.ascii_letters + string.digits


def random_group_name(length: int = 8) -> str:
    return "".join(secrets.choice(_GROUP_ALPHABET) for _ in range(length))


async def _maybe_await(fn: Callable[..., Any], *args: Any) -> None:
    result = fn(*args)
    if inspect.isawaitable(result):
        await result


# ============================================================================
# STATE
# ============================================================================

@dataclass(frozen=True)
class Inactive:
    """Stage is not subscribed and ignores updates."""


@dataclass
class Active:
    """Stage is subscribed; ``first_run`` holds until the first update is seen."""
    current_step: Optional[str] = None
    awaiter: ResponseAwaiter = field(default_factory=ResponseAwaiter)
    first_run: bool = True


INACTIVE = Inactive()


# ============================================================================
# STAGE
# ============================================================================

class Stage(Generic[T]):
    """
    One live conversation.

    Args:
        client: Anything with an ``events`` source and a ``bot_id``
        context: Caller-owned payload carried across steps, passed to exit hooks
        chat_id: Only react to updates from this chat (None = any chat)
        user_id: Only react to updates from this user (None = any user)
        group: Subscription group name (random when omitted)
        history: Record accepted updates (defaults to settings.stage_history_enabled)
        predicate: Extra filter applied by the event source before delivery
    """

    def __init__(
        self,
        client: StageClient,
        *,
        context: T,
        chat_id: Optional[int] = None,
        user_id: Optional[int] = None,
        group: Any = None,
        history: Optional[bool] = None,
        predicate: Optional[UpdatePredicate] = None,
    ):
        self.client = client
        self.context = context
        self.group = str(group) if group is not None else random_group_name(settings.stage_group_length)

        self._scope = ScopeFilter(chat_id=chat_id, user_id=user_id)
        self._steps = StepTable()
        self._history = HistoryLog(
            settings.stage_history_enabled if history is None else history
        )
        self._state: Union[Inactive, Active] = INACTIVE
        self._predicate = predicate
        self._subscription: Optional[Subscription] = None

        self._on_start_hooks: list[StartHook] = []
        self._on_exit_hooks: list[ExitHook] = []

        self._log = LogContext(logger, stage_group=self.group, chat_id=chat_id, user_id=user_id)

    @classmethod
    async def enter(cls, client: StageClient, **options: Any) -> "Stage":
        """Create a new Stage and start it immediately."""
        stage = cls(client, **options)
        return await stage.start()

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def chat_id(self) -> Optional[int]:
        return self._scope.chat_id

    @property
    def user_id(self) -> Optional[int]:
        return self._scope.user_id

    @property
    def active(self) -> bool:
        return isinstance(self._state, Active)

    @property
    def current_step(self) -> Optional[str]:
        """Name of the step being run, None while inactive."""
        if isinstance(self._state, Active):
            return self._state.current_step
        return None

    @property
    def initial_step(self) -> Optional[str]:
        return self._steps.initial

    @property
    def steps(self) -> list[str]:
        return self._steps.names()

    @property
    def history(self) -> tuple[Any, ...]:
        """Updates accepted by this stage, oldest first."""
        return self._history.view()

    @property
    def history_enabled(self) -> bool:
        return self._history.enabled

    @history_enabled.setter
    def history_enabled(self, value: bool) -> None:
        self._history.enabled = value

    @property
    def awaiting_response(self) -> bool:
        return isinstance(self._state, Active) and self._state.awaiter.pending

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_step(self, name: Any, handler: StepHandler, initial: bool = False) -> "Stage[T]":
        """Add (or replace) the step ``name``."""
        self._steps.register(name, handler, initial)
        return self

    def on(self, name: Any, handler: Optional[StepHandler] = None, *, initial: bool = False):
        """
        Register a step, directly or as a decorator.

        ``stage.on("greet", greet, initial=True)`` returns the stage;
        ``@stage.on("greet", initial=True)`` returns the decorated function.
        """
        if handler is not None:
            return self.register_step(name, handler, initial)

        def decorator(fn: StepHandler) -> StepHandler:
            self.register_step(name, fn, initial)
            return fn

        return decorator

    def on_start(self, hook: StartHook) -> StartHook:
        """Add a hook called (without arguments) each time the stage starts."""
        self._on_start_hooks.append(hook)
        return hook

    def on_exit(self, hook: ExitHook) -> ExitHook:
        """Add a hook called with ``context`` each time the stage exits."""
        self._on_exit_hooks.append(hook)
        return hook

    def await_response(self, callback: ResponseCallback) -> ResponseCallback:
        """
        Deliver the next in-scope update to ``callback``, once.

        Replaces any callback installed earlier.  Does nothing useful on an
        inactive stage, since inactive stages receive no updates.
        """
        if isinstance(self._state, Active):
            self._state.awaiter.install(callback)
        else:
            self._log.warning("await_response() called on an inactive stage, ignoring")
        return callback

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> "Stage[T]":
        """Subscribe to updates, run start hooks and enter the initial step."""
        if self._steps.is_empty():
            raise NoStepsDefined()

        if self.active:
            self._log.warning("Stage already active, ignoring start()")
            return self

        self._state = Active()
        self._subscription = self.client.events.subscribe(
            self.handle_update,
            predicate=self._predicate,
            group=self.group,
        )
        self._log.info(f"Stage started: steps={self._steps.names()}, initial={self._steps.initial}")

        for hook in list(self._on_start_hooks):
            await _maybe_await(hook)

        if self._steps.initial is not None and self.active:
            await self.transition(self._steps.initial)
        return self

    async def exit(self) -> "Stage[T]":
        """Unsubscribe from updates and run exit hooks with the context."""
        if not self.active:
            self._log.warning("Stage is not active, ignoring exit()")
            return self

        last_step = self.current_step
        self._state = INACTIVE

        if self._subscription is not None:
            self.client.events.unsubscribe(self._subscription)
            self._subscription = None

        self._log.info(f"Stage exited: last_step={last_step}, history={len(self._history)}")

        for hook in list(self._on_exit_hooks):
            await _maybe_await(hook, self.context)
        return self

    async def transition(self, step: Any) -> "Stage[T]":
        """
        Make ``step`` the current step and run its handler.

        Any pending response awaiter is dropped first.

        Raises:
            UnknownStep: ``step`` was never registered
            StageNotActive: the stage has not been started (or has exited)
        """
        target = self._steps.step(step)

        state = self._state
        if not isinstance(state, Active):
            raise StageNotActive(f"Cannot transition to '{target.name}': stage is not active")

        previous = state.current_step
        state.current_step = target.name
        state.awaiter.clear()
        self._log.bind(step=target.name).debug(f"Stage transition: {previous} -> {target.name}")

        await _maybe_await(target.handler, self)
        return self

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def handle_update(self, update: Any) -> None:
        """Process one update from the event source."""
        state = self._state
        if not isinstance(state, Active):
            return

        # The update that started this stage predates the conversation.
        if state.first_run:
            self._history.record(update)
            state.first_run = False
            return

        if not state.awaiter.pending:
            return

        if not self._scope.matches(update, self.client.bot_id):
            self._log.debug(
                f"Update {getattr(update, 'update_id', '?')} out of scope, dropped"
            )
            return

        self._history.record(update)
        callback = state.awaiter.take()
        await _maybe_await(callback, update)

    def __repr__(self) -> str:
        return (
            f"Stage(group={self.group!r}, active={self.active}, "
            f"current_step={self.current_step!r}, chat_id={self.chat_id}, user_id={self.user_id})"
        )
