"""Domain models - pure data structures with no I/O dependencies."""

from charon.domain.position import (
    ExecutionStatus,
    ExitAction,
    ExitDecision,
    ExitStrategy,
    Position,
    ProofSource,
    Tradability,
)
from charon.domain.redemption import (
    RedemptionAttempt,
    RedemptionErrorKind,
    RedemptionOutcome,
    SkipReason,
    SubmitResult,
)

__all__ = [
    # Position models
    "Position",
    "ProofSource",
    "ExecutionStatus",
    "Tradability",
    # Decision models
    "ExitAction",
    "ExitStrategy",
    "ExitDecision",
    # Redemption models
    "SkipReason",
    "RedemptionErrorKind",
    "RedemptionAttempt",
    "RedemptionOutcome",
    "SubmitResult",
]
