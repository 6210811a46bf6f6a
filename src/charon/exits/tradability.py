"""Tradability classification for exit and buy-side callers."""
from charon.domain.position import ExecutionStatus, Position, Tradability

_BLOCKED_STATUSES = (ExecutionStatus.NOT_TRADABLE_ON_CLOB, ExecutionStatus.EXECUTION_BLOCKED)


def check_tradability(position: Position) -> Tradability:
    """Classify whether a position may be acted on by the sell ladder.

    Strict precedence: verified-redeemable, then venue status, then bid
    availability. A verified-redeemable position is never sold, even when
    it also lacks a bid.
    """
    if position.redeemable_proof_source.is_verified:
        return Tradability.REDEEMABLE
    if position.execution_status in _BLOCKED_STATUSES:
        return Tradability.NOT_TRADABLE
    if position.current_bid_price is None:
        return Tradability.NO_BID
    return Tradability.TRADABLE


def is_actionable(position: Position) -> bool:
    return check_tradability(position) == Tradability.TRADABLE
