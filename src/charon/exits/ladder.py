"""
Ordered exit-strategy ladder.

Each policy is evaluated in a fixed order and the first one that triggers
decides the action for the position:

1. dispute-window exit   (bid at the ceiling, no hold time)
2. threshold auto-sell   (price at threshold after a minimum hold)
3. quick-win             (large gain relative to entry, held briefly)
4. stale-profitable exit (profitable and held too long)
5. oversized exit        (too much capital in one position)

Verified-redeemable positions never reach the sell policies. Evaluation is
pure: the same position, config and time always give the same decision.
"""
from decimal import Decimal
from typing import Callable, Optional

from charon.core.clock import Clock, MS_PER_SECOND, epoch_ms, hours_to_ms
from charon.domain.position import (
    ExitDecision,
    ExitStrategy,
    Position,
    Tradability,
)
from charon.exits.config import LadderConfig
from charon.exits.tradability import check_tradability

_HUNDRED = Decimal("100")

Policy = Callable[[Position, Tradability, int], Optional[ExitDecision]]


class ExitLadder:
    """Evaluate the exit policies for one position at a time.

    Usage:
        ladder = ExitLadder(config.ladder, redemption_enabled=True)
        decision = ladder.evaluate(position)
    """

    def __init__(
        self,
        config: LadderConfig,
        redemption_enabled: bool = True,
        clock: Clock = epoch_ms,
    ) -> None:
        self._config = config
        self._redemption_enabled = redemption_enabled
        self._clock = clock
        self._policies: tuple[Policy, ...] = (
            self._dispute_window_exit,
            self._threshold_auto_sell,
            self._quick_win,
            self._stale_profitable_exit,
            self._oversized_exit,
        )

    @property
    def config(self) -> LadderConfig:
        return self._config

    def evaluate(self, position: Position, now_ms: Optional[int] = None) -> ExitDecision:
        """Return the first triggered exit decision, or a hold decision."""
        now = self._clock() if now_ms is None else now_ms
        tradability = check_tradability(position)

        if tradability == Tradability.REDEEMABLE:
            if self._redemption_enabled:
                return ExitDecision.redeem(
                    position,
                    reason=f"resolved ({position.redeemable_proof_source.value}), redeem on-chain",
                )
            return ExitDecision.hold(position, reason="redeemable, auto-redeem disabled")

        if tradability == Tradability.NOT_TRADABLE:
            return ExitDecision.hold(
                position, reason=f"not tradable ({position.execution_status.value})"
            )

        for policy in self._policies:
            decision = policy(position, tradability, now)
            if decision is not None:
                return decision

        return ExitDecision.hold(position)

    # -------------------------------------------------------------------------
    # Policies
    # -------------------------------------------------------------------------

    def _dispute_window_exit(
        self, position: Position, tradability: Tradability, now: int
    ) -> Optional[ExitDecision]:
        cfg = self._config
        if not cfg.dispute_window_exit_enabled or position.current_bid_price is None:
            return None
        bid = position.current_bid_price
        if bid < cfg.dispute_window_exit_price:
            return None
        return ExitDecision.sell(
            position,
            ExitStrategy.DISPUTE_WINDOW_EXIT,
            limit_price=bid,
            reason=f"bid {bid} >= dispute-window exit price {cfg.dispute_window_exit_price}",
        )

    def _threshold_auto_sell(
        self, position: Position, tradability: Tradability, now: int
    ) -> Optional[ExitDecision]:
        cfg = self._config
        if not cfg.auto_sell_enabled or position.entry_meta_trusted is False:
            return None
        price = position.reference_price
        if price < cfg.auto_sell_threshold:
            return None
        held = position.held_seconds(now)
        if held is None or held < cfg.auto_sell_min_hold_seconds:
            return None
        return ExitDecision.sell(
            position,
            ExitStrategy.AUTO_SELL_THRESHOLD,
            limit_price=price,
            reason=(
                f"price {price} >= auto-sell threshold {cfg.auto_sell_threshold} "
                f"after {held:.0f}s held"
            ),
        )

    def _quick_win(
        self, position: Position, tradability: Tradability, now: int
    ) -> Optional[ExitDecision]:
        cfg = self._config
        if not cfg.quick_win_enabled or position.entry_meta_trusted is False:
            return None
        if position.entry_price <= 0:
            return None
        held = position.held_seconds(now)
        if held is None or held >= cfg.quick_win_max_hold_minutes * 60:
            return None
        price = position.reference_price
        gain_pct = (price - position.entry_price) / position.entry_price * _HUNDRED
        if gain_pct < cfg.quick_win_profit_pct:
            return None
        return ExitDecision.sell(
            position,
            ExitStrategy.QUICK_WIN,
            limit_price=price,
            reason=(
                f"gain {gain_pct:.1f}% from entry {position.entry_price} "
                f"within {held / 60:.0f}min"
            ),
        )

    def _stale_profitable_exit(
        self, position: Position, tradability: Tradability, now: int
    ) -> Optional[ExitDecision]:
        cfg = self._config
        if not cfg.stale_exit_enabled or tradability != Tradability.TRADABLE:
            return None
        if position.pnl_pct <= 0 or not position.pnl_trusted:
            return None
        if position.entry_meta_trusted is False:
            return None

        if position.first_acquired_at is not None:
            held_ms = now - position.first_acquired_at
        elif position.time_held_sec is not None:
            held_ms = int(position.time_held_sec * MS_PER_SECOND)
        else:
            return None
        if held_ms < hours_to_ms(cfg.stale_position_hours):
            return None

        if cfg.stale_expiry_hold_hours > 0 and position.market_end_time is not None:
            remaining = position.market_end_time - now
            if 0 < remaining <= hours_to_ms(cfg.stale_expiry_hold_hours):
                return None

        bid = position.current_bid_price
        return ExitDecision.sell(
            position,
            ExitStrategy.STALE_PROFITABLE_EXIT,
            limit_price=bid,
            reason=(
                f"profitable ({position.pnl_pct}%) and held "
                f"{held_ms / hours_to_ms(1):.1f}h >= {cfg.stale_position_hours}h"
            ),
        )

    def _oversized_exit(
        self, position: Position, tradability: Tradability, now: int
    ) -> Optional[ExitDecision]:
        """Sell a position whose invested capital exceeds the threshold.

        Profitable or near-breakeven positions sell at once. A loser is only
        forced out while its market end time is still ahead and within
        oversized_exit_hours_before_event; once the end time has passed
        (remaining <= 0) the position holds and waits for resolution.
        """
        cfg = self._config
        if not cfg.oversized_exit_enabled:
            return None
        invested = position.invested_usd
        if invested <= cfg.oversized_exit_threshold_usd:
            return None

        price = position.reference_price
        prefix = f"oversized ${invested:.2f} > ${cfg.oversized_exit_threshold_usd}"

        if position.pnl_pct > 0:
            reason = f"{prefix}, profitable ({position.pnl_pct}%)"
        elif abs(position.pnl_pct) <= cfg.oversized_exit_breakeven_tolerance_pct:
            reason = f"{prefix}, near breakeven ({position.pnl_pct}%)"
        elif position.market_end_time is not None and (
            0
            < position.market_end_time - now
            <= hours_to_ms(cfg.oversized_exit_hours_before_event)
        ):
            reason = f"{prefix}, market ends within {cfg.oversized_exit_hours_before_event}h"
        else:
            return None

        return ExitDecision.sell(
            position, ExitStrategy.OVERSIZED_EXIT, limit_price=price, reason=reason
        )
