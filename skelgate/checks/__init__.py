"""skelgate checks -- declares and runs quality gates.

Public API
----------
.. autoclass:: CheckRegistry
.. autoclass:: PipelineOrchestrator
.. autoclass:: SubprocessRunner
.. autoclass:: Check
.. autoclass:: Invocation
.. autoclass:: CheckResult
.. autoclass:: RunReport
"""

from .models import (
    Check,
    CheckKind,
    CheckOutcome,
    CheckResult,
    Invocation,
    InvocationOutcome,
    OutcomeReason,
    RunReport,
)
from .orchestrator import PipelineOrchestrator
from .registry import CheckRegistry, default_registry
from .runnable import Runnable, SubprocessRunner

__all__ = [
    # Models
    "Check",
    "CheckKind",
    "CheckOutcome",
    "CheckResult",
    "Invocation",
    "InvocationOutcome",
    "OutcomeReason",
    "RunReport",
    # Registry
    "CheckRegistry",
    "default_registry",
    # Execution
    "PipelineOrchestrator",
    "Runnable",
    "SubprocessRunner",
]
