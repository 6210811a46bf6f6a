"""Services - exit engine orchestration, scheduling and metrics."""

from charon.services.exit_engine import ActionResult, EngineState, ExitEngine
from charon.services.metrics import MetricsEmitter
from charon.services.scheduler import ExitScheduler

__all__ = [
    "ExitEngine",
    "EngineState",
    "ActionResult",
    "ExitScheduler",
    "MetricsEmitter",
]
