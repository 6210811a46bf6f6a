"""
Redemption domain models.

These models describe why a redemption was skipped, how a failed attempt
was classified, and the per-market attempt record behind the circuit
breaker.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional


class SkipReason(str, Enum):
    """Reasons a redemption is not attempted. None of these are failures."""
    NOT_RESOLVED_ONCHAIN = "NOT_RESOLVED_ONCHAIN"
    BELOW_MIN_VALUE = "BELOW_MIN_VALUE"
    IN_COOLDOWN = "IN_COOLDOWN"
    TOO_MANY_FAILURES = "TOO_MANY_FAILURES"


class RedemptionErrorKind(str, Enum):
    """Closed classification of a failed redemption attempt."""
    NOT_RESOLVED = "NOT_RESOLVED"
    RATE_LIMITED = "RATE_LIMITED"
    NONCE_CONFLICT = "NONCE_CONFLICT"
    DURABLE = "DURABLE"

    @property
    def counts_as_failure(self) -> bool:
        """Only durable failures advance the circuit breaker."""
        return self is RedemptionErrorKind.DURABLE

    @property
    def is_transient(self) -> bool:
        """Whether the attempt may be retried within the same call."""
        return self in (RedemptionErrorKind.RATE_LIMITED, RedemptionErrorKind.NONCE_CONFLICT)


@dataclass
class RedemptionAttempt:
    """Per-market attempt record."""
    last_attempt_at: int  # epoch ms
    consecutive_failures: int = 0


@dataclass
class SubmitResult:
    """Result shape shared by the sell-order and redemption submitters."""
    success: bool
    error: Optional[str] = None
    transaction_hash: Optional[str] = None
    order_id: Optional[str] = None


@dataclass
class RedemptionOutcome:
    """Result of one redeem() call for a position."""
    market_id: str
    token_id: str
    success: bool = False
    transaction_hash: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[RedemptionErrorKind] = None
    skipped_reason: Optional[SkipReason] = None
    position_value_usd: Decimal = Decimal("0")
    attempts: int = 0

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    @property
    def counts_as_failure(self) -> bool:
        return self.error_kind is not None and self.error_kind.counts_as_failure
