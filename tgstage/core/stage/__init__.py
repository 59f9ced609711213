# tgstage/core/stage/__init__.py
"""
Stage engine -- transport-agnostic conversation state machine.

Canonical imports:
    from tgstage.core.stage import Stage, NoStepsDefined, UnknownStep
    from tgstage.core.stage.scope import ScopeFilter
    from tgstage.core.stage.ports import StageClient
"""
from tgstage.core.stage.errors import (  # noqa: F401
    StageError,
    NoStepsDefined,
    UnknownStep,
    StageNotActive,
)
from tgstage.core.stage.steps import Step, StepTable  # noqa: F401
from tgstage.core.stage.scope import ScopeFilter, extract_message  # noqa: F401
from tgstage.core.stage.awaiter import ResponseAwaiter  # noqa: F401
from tgstage.core.stage.history import HistoryLog  # noqa: F401
from tgstage.core.stage.ports import EventSource, SelfIdentity, StageClient  # noqa: F401
from tgstage.core.stage.engine import Stage, Active, Inactive  # noqa: F401
