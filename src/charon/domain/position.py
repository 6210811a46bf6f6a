"""
Position and exit-decision domain models.

A Position is one outcome token held in one market, as supplied by the
position tracker each cycle. Positions are immutable; proof resolution
returns an updated copy rather than mutating the snapshot.
"""
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Optional


class ProofSource(str, Enum):
    """Provenance of a position's redeemable status, strongest first."""
    ONCHAIN_DENOM = "ONCHAIN_DENOM"
    DATA_API_FLAG = "DATA_API_FLAG"
    DATA_API_UNCONFIRMED = "DATA_API_UNCONFIRMED"  # index and chain disagree
    NONE = "NONE"

    @property
    def is_verified(self) -> bool:
        return self in (ProofSource.ONCHAIN_DENOM, ProofSource.DATA_API_FLAG)


class ExecutionStatus(str, Enum):
    """Venue execution status of a position's token."""
    TRADABLE = "TRADABLE"
    NOT_TRADABLE_ON_CLOB = "NOT_TRADABLE_ON_CLOB"
    EXECUTION_BLOCKED = "EXECUTION_BLOCKED"


class Tradability(str, Enum):
    """Result of the tradability classifier."""
    REDEEMABLE = "REDEEMABLE"
    NOT_TRADABLE = "NOT_TRADABLE"
    NO_BID = "NO_BID"
    TRADABLE = "TRADABLE"


class ExitAction(str, Enum):
    """Action selected by the exit ladder."""
    NONE = "NONE"
    SELL = "SELL"
    REDEEM = "REDEEM"


class ExitStrategy(str, Enum):
    """Named exit policy that produced a decision."""
    DISPUTE_WINDOW_EXIT = "dispute_window_exit"
    AUTO_SELL_THRESHOLD = "auto_sell_threshold"
    QUICK_WIN = "quick_win"
    STALE_PROFITABLE_EXIT = "stale_profitable_exit"
    OVERSIZED_EXIT = "oversized_exit"
    AUTO_REDEEM = "auto_redeem"
    HOLD = "hold"


@dataclass(frozen=True)
class Position:
    """A held quantity of one outcome token in one market.

    Prices are per-share in USD (0-1). Timestamps are epoch milliseconds.
    entry_meta_trusted is tri-state: None means "not reported", False means
    the entry timestamps failed reconciliation and must not drive
    time-based exits.
    """
    market_id: str
    token_id: str
    side: str
    size: Decimal
    entry_price: Decimal
    current_price: Decimal
    current_bid_price: Optional[Decimal] = None
    pnl_pct: Decimal = Decimal("0")
    pnl_usd: Decimal = Decimal("0")
    pnl_trusted: bool = True
    entry_meta_trusted: Optional[bool] = None
    first_acquired_at: Optional[int] = None
    time_held_sec: Optional[float] = None
    redeemable: bool = False
    redeemable_proof_source: ProofSource = ProofSource.NONE
    execution_status: ExecutionStatus = ExecutionStatus.TRADABLE
    market_end_time: Optional[int] = None

    @property
    def key(self) -> str:
        """Unique key for this position within a wallet."""
        return f"{self.market_id}-{self.token_id}"

    @property
    def invested_usd(self) -> Decimal:
        return self.size * self.entry_price

    @property
    def value_usd(self) -> Decimal:
        return self.size * self.current_price

    @property
    def has_bid(self) -> bool:
        return self.current_bid_price is not None

    @property
    def reference_price(self) -> Decimal:
        """Executable bid if known, else the index price."""
        if self.current_bid_price is not None:
            return self.current_bid_price
        return self.current_price

    def held_seconds(self, now_ms: int) -> Optional[float]:
        """Seconds held, preferring the tracker's value over first_acquired_at."""
        if self.time_held_sec is not None:
            return self.time_held_sec
        if self.first_acquired_at is not None:
            return max(0, now_ms - self.first_acquired_at) / 1000.0
        return None

    def with_proof(self, redeemable: bool, proof_source: ProofSource) -> "Position":
        return replace(self, redeemable=redeemable, redeemable_proof_source=proof_source)

    def with_bid(self, bid: Optional[Decimal]) -> "Position":
        return replace(self, current_bid_price=bid)


@dataclass(frozen=True)
class ExitDecision:
    """Output of the exit ladder for one position. Never persisted."""
    action: ExitAction
    strategy: ExitStrategy
    reason: str
    market_id: str = ""
    token_id: str = ""
    limit_price: Optional[Decimal] = None

    @classmethod
    def hold(cls, position: Position, reason: str = "no exit policy triggered") -> "ExitDecision":
        return cls(
            action=ExitAction.NONE,
            strategy=ExitStrategy.HOLD,
            reason=reason,
            market_id=position.market_id,
            token_id=position.token_id,
        )

    @classmethod
    def sell(
        cls,
        position: Position,
        strategy: ExitStrategy,
        limit_price: Decimal,
        reason: str,
    ) -> "ExitDecision":
        return cls(
            action=ExitAction.SELL,
            strategy=strategy,
            reason=reason,
            market_id=position.market_id,
            token_id=position.token_id,
            limit_price=limit_price,
        )

    @classmethod
    def redeem(cls, position: Position, reason: str) -> "ExitDecision":
        return cls(
            action=ExitAction.REDEEM,
            strategy=ExitStrategy.AUTO_REDEEM,
            reason=reason,
            market_id=position.market_id,
            token_id=position.token_id,
        )

    @property
    def is_actionable(self) -> bool:
        return self.action != ExitAction.NONE
