# tgstage/core/stage/steps.py
"""
Step table: ordered mapping of step name -> handler, plus the initial step.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from tgstage.core.stage.errors import UnknownStep

if TYPE_CHECKING:
    from tgstage.core.stage.engine import Stage

logger = logging.getLogger(__name__)

StepHandler = Callable[["Stage"], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class Step:
    """A named unit of conversation logic."""
    name: str
    handler: StepHandler
    initial: bool = False


class StepTable:
    """
    Insertion-ordered registry of steps.

    Re-registering a name replaces its handler in place.  Only one step can
    be the initial one; marking a second step as initial logs a warning and
    the last registration wins.
    """

    def __init__(self) -> None:
        self._steps: dict[str, Step] = {}
        self._initial: Optional[str] = None

    def register(self, name: Any, handler: StepHandler, initial: bool = False) -> Step:
        """Add or overwrite the step ``name``. Returns the stored Step."""
        name = str(getattr(name, "value", name))

        if initial:
            if self._initial is not None and self._initial != name:
                logger.warning(
                    f"The step has already been defined as {self._initial} and is now "
                    f"being redefined as {name}. This is most likely unintentional."
                )
            self._initial = name

        step = Step(name=name, handler=handler, initial=initial)
        self._steps[name] = step
        return step

    def get(self, name: Any) -> StepHandler:
        """Return the handler for ``name`` or raise UnknownStep."""
        return self.step(name).handler

    def step(self, name: Any) -> Step:
        name = str(getattr(name, "value", name))
        try:
            return self._steps[name]
        except KeyError:
            raise UnknownStep(name) from None

    def is_empty(self) -> bool:
        return not self._steps

    def names(self) -> list[str]:
        return list(self._steps.keys())

    @property
    def initial(self) -> Optional[str]:
        """Name of the designated initial step, if any."""
        return self._initial

    def __contains__(self, name: object) -> bool:
        return str(getattr(name, "value", name)) in self._steps

    def __len__(self) -> int:
        return len(self._steps)
