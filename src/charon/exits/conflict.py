"""
Cross-outcome conflict guard.

Outcomes within a market are mutually exclusive, so buying any other
outcome while holding a winning one locks in a loss on the purchase.
Breakeven (pnl_pct == 0) counts as winning.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from charon.domain.position import Position


@dataclass(frozen=True)
class ConflictingPosition:
    side: str
    pnl_pct: Decimal
    size: Decimal


def get_conflicting_position(
    positions: Iterable[Position],
    market_id: str,
    target_token_id: str,
) -> Optional[ConflictingPosition]:
    """Find a winning position on another outcome of the same market.

    Args:
        positions: Currently held positions.
        market_id: Market the caller wants to buy into.
        target_token_id: Outcome token the caller wants to buy.

    Returns:
        The first conflicting position, or None if the buy is allowed.
    """
    for position in positions:
        if (
            position.market_id == market_id
            and position.token_id != target_token_id
            and position.pnl_pct >= 0
        ):
            return ConflictingPosition(
                side=position.side,
                pnl_pct=position.pnl_pct,
                size=position.size,
            )
    return None


def would_conflict(
    positions: Iterable[Position],
    market_id: str,
    target_token_id: str,
) -> bool:
    return get_conflicting_position(positions, market_id, target_token_id) is not None
