# tgstage/core/stage/errors.py
"""
Typed errors for the stage engine.

All of these are programmer errors raised synchronously to the caller of
``start()`` / ``transition()``.  Updates that fall outside a stage's scope
are never errors; they are dropped silently.
"""
from __future__ import annotations


class StageError(Exception):
    """Base class for all stage engine errors."""

    def __init__(self, detail: str = "Stage error"):
        self.detail = detail
        super().__init__(detail)


class NoStepsDefined(StageError):
    """``start()`` was called on a stage without any registered steps."""

    def __init__(self, detail: str = "No steps for this stage"):
        super().__init__(detail)


class UnknownStep(StageError):
    """A transition referenced a step name that was never registered."""

    def __init__(self, step: str):
        self.step = step
        super().__init__(f"Step '{step}' does not exist")


class StageNotActive(StageError):
    """A transition was requested while the stage is not running."""

    def __init__(self, detail: str = "Stage is not active"):
        super().__init__(detail)
