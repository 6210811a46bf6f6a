"""Configuration for the exit engine.

Configuration is loaded from ConfigManager once per cycle and frozen.
Every threshold the ladder, the redeemer and the engine consult is
enumerated here with its default; nothing reads the environment directly.
"""

from dataclasses import dataclass, field, fields, replace
from decimal import Decimal

from charon.core.config import ConfigManager


@dataclass(frozen=True)
class LadderConfig:
    """Thresholds for the ordered sell-side exit ladder.

    Prices are per-share (0-1). Percentages are in percent units (90 = 90%).

    Attributes:
        dispute_window_exit_enabled: Sell immediately once the bid reaches the ceiling.
        dispute_window_exit_price: Bid at or above which the dispute-window exit fires.
        auto_sell_enabled: Whether threshold auto-sell is enabled.
        auto_sell_threshold: Reference price at or above which to auto-sell.
        auto_sell_min_hold_seconds: Minimum hold before auto-sell may fire.
        quick_win_enabled: Whether the quick-win exit is enabled.
        quick_win_max_hold_minutes: Quick-win only applies while held less than this.
        quick_win_profit_pct: Minimum gain relative to entry price.
        stale_exit_enabled: Whether the stale-profitable exit is enabled.
        stale_position_hours: Hold duration after which a profitable position is stale.
        stale_expiry_hold_hours: Keep stale positions whose market ends within this window (0 = off).
        oversized_exit_enabled: Whether the oversized-position exit is enabled.
        oversized_exit_threshold_usd: Invested USD above which a position is oversized.
        oversized_exit_breakeven_tolerance_pct: |pnl_pct| within which a loser is sold.
        oversized_exit_hours_before_event: Force-sell oversized losers this close to market end.
    """

    dispute_window_exit_enabled: bool = True
    dispute_window_exit_price: Decimal = Decimal("0.999")
    auto_sell_enabled: bool = True
    auto_sell_threshold: Decimal = Decimal("0.999")
    auto_sell_min_hold_seconds: int = 60
    quick_win_enabled: bool = True
    quick_win_max_hold_minutes: int = 60
    quick_win_profit_pct: Decimal = Decimal("90")
    stale_exit_enabled: bool = True
    stale_position_hours: float = 24.0
    stale_expiry_hold_hours: float = 48.0
    oversized_exit_enabled: bool = True
    oversized_exit_threshold_usd: Decimal = Decimal("25")
    oversized_exit_breakeven_tolerance_pct: Decimal = Decimal("2")
    oversized_exit_hours_before_event: float = 1.0

    @classmethod
    def from_config_manager(
        cls,
        config: ConfigManager,
        prefix: str = "exits",
    ) -> "LadderConfig":
        d = cls()
        return cls(
            dispute_window_exit_enabled=config.get_bool(
                f"{prefix}.dispute_window.enabled", default=d.dispute_window_exit_enabled
            ),
            dispute_window_exit_price=config.get_decimal(
                f"{prefix}.dispute_window.exit_price", default=d.dispute_window_exit_price
            ),
            auto_sell_enabled=config.get_bool(
                f"{prefix}.auto_sell.enabled", default=d.auto_sell_enabled
            ),
            auto_sell_threshold=config.get_decimal(
                f"{prefix}.auto_sell.threshold", default=d.auto_sell_threshold
            ),
            auto_sell_min_hold_seconds=config.get_int(
                f"{prefix}.auto_sell.min_hold_seconds", default=d.auto_sell_min_hold_seconds
            ),
            quick_win_enabled=config.get_bool(
                f"{prefix}.quick_win.enabled", default=d.quick_win_enabled
            ),
            quick_win_max_hold_minutes=config.get_int(
                f"{prefix}.quick_win.max_hold_minutes", default=d.quick_win_max_hold_minutes
            ),
            quick_win_profit_pct=config.get_decimal(
                f"{prefix}.quick_win.profit_pct", default=d.quick_win_profit_pct
            ),
            stale_exit_enabled=config.get_bool(
                f"{prefix}.stale.enabled", default=d.stale_exit_enabled
            ),
            stale_position_hours=config.get_float(
                f"{prefix}.stale.position_hours", default=d.stale_position_hours
            ),
            stale_expiry_hold_hours=config.get_float(
                f"{prefix}.stale.expiry_hold_hours", default=d.stale_expiry_hold_hours
            ),
            oversized_exit_enabled=config.get_bool(
                f"{prefix}.oversized.enabled", default=d.oversized_exit_enabled
            ),
            oversized_exit_threshold_usd=config.get_decimal(
                f"{prefix}.oversized.threshold_usd", default=d.oversized_exit_threshold_usd
            ),
            oversized_exit_breakeven_tolerance_pct=config.get_decimal(
                f"{prefix}.oversized.breakeven_tolerance_pct",
                default=d.oversized_exit_breakeven_tolerance_pct,
            ),
            oversized_exit_hours_before_event=config.get_float(
                f"{prefix}.oversized.hours_before_event",
                default=d.oversized_exit_hours_before_event,
            ),
        )


@dataclass(frozen=True)
class RedemptionConfig:
    """Redemption preflight, retry and circuit-breaker settings.

    Attributes:
        enabled: Whether the ladder emits REDEEM for verified-redeemable positions.
        min_position_usd: Positions worth less than this are skipped.
        zero_value_usd: Value below which a position is treated as a worthless loser.
        cooldown_seconds: Wait after an attempt before the same market is retried.
        max_failures: Durable failures before the market is tripped.
        retry_base_seconds: Base delay for in-call retry of rate-limit/nonce errors.
        max_retries: In-call retries for rate-limit/nonce errors.
        payout_cache_ttl_seconds: How long a denominator read is reused.
        batch_delay_seconds: Delay between redemptions in redeem_all.
        ledger_path: Optional JSON file for cross-restart cooldown continuity.
    """

    enabled: bool = True
    min_position_usd: Decimal = Decimal("0.10")
    zero_value_usd: Decimal = Decimal("0.001")
    cooldown_seconds: int = 300
    max_failures: int = 3
    retry_base_seconds: float = 2.0
    max_retries: int = 3
    payout_cache_ttl_seconds: int = 300
    batch_delay_seconds: float = 5.0
    ledger_path: str = ""

    @classmethod
    def from_config_manager(
        cls,
        config: ConfigManager,
        prefix: str = "redemption",
    ) -> "RedemptionConfig":
        d = cls()
        return cls(
            enabled=config.get_bool(f"{prefix}.enabled", default=d.enabled),
            min_position_usd=config.get_decimal(
                f"{prefix}.min_position_usd", default=d.min_position_usd
            ),
            zero_value_usd=config.get_decimal(
                f"{prefix}.zero_value_usd", default=d.zero_value_usd
            ),
            cooldown_seconds=config.get_int(
                f"{prefix}.cooldown_seconds", default=d.cooldown_seconds
            ),
            max_failures=config.get_int(f"{prefix}.max_failures", default=d.max_failures),
            retry_base_seconds=config.get_float(
                f"{prefix}.retry_base_seconds", default=d.retry_base_seconds
            ),
            max_retries=config.get_int(f"{prefix}.max_retries", default=d.max_retries),
            payout_cache_ttl_seconds=config.get_int(
                f"{prefix}.payout_cache_ttl_seconds", default=d.payout_cache_ttl_seconds
            ),
            batch_delay_seconds=config.get_float(
                f"{prefix}.batch_delay_seconds", default=d.batch_delay_seconds
            ),
            ledger_path=config.get(f"{prefix}.ledger_path", default=d.ledger_path) or "",
        )


@dataclass(frozen=True)
class EngineConfig:
    """Orchestration settings.

    Attributes:
        dry_run: Log decisions without submitting orders or transactions.
        poll_interval_seconds: Delay between evaluation cycles.
        dispute_exit_cooldown_seconds: After a failed dispute-window sell, wait this
            long before selling the token again.
        min_order_usd: Sell orders below this notional are not submitted.
    """

    dry_run: bool = False
    poll_interval_seconds: float = 30.0
    dispute_exit_cooldown_seconds: int = 600
    min_order_usd: Decimal = Decimal("1")

    @classmethod
    def from_config_manager(
        cls,
        config: ConfigManager,
        prefix: str = "engine",
    ) -> "EngineConfig":
        d = cls()
        return cls(
            dry_run=config.get_bool(f"{prefix}.dry_run", default=d.dry_run),
            poll_interval_seconds=config.get_float(
                f"{prefix}.poll_interval_seconds", default=d.poll_interval_seconds
            ),
            dispute_exit_cooldown_seconds=config.get_int(
                f"{prefix}.dispute_exit_cooldown_seconds",
                default=d.dispute_exit_cooldown_seconds,
            ),
            min_order_usd=config.get_decimal(
                f"{prefix}.min_order_usd", default=d.min_order_usd
            ),
        )


@dataclass(frozen=True)
class ExitConfig:
    """Fully resolved configuration for one evaluation cycle."""

    ladder: LadderConfig = field(default_factory=LadderConfig)
    redemption: RedemptionConfig = field(default_factory=RedemptionConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)

    @classmethod
    def from_config_manager(cls, config: ConfigManager) -> "ExitConfig":
        """Create ExitConfig from ConfigManager.

        When `charon.preset` names a preset, its values are the base and
        explicit keys in the file or environment override them.

        Args:
            config: ConfigManager instance.

        Returns:
            ExitConfig instance.
        """
        from charon.exits.presets import config_for_preset

        preset = config.get("charon.preset")
        if preset is False:
            # CHARON_CHARON_PRESET=off parses as a boolean.
            preset = "off"
        if preset:
            return _overlay(config_for_preset(str(preset)), config)
        return cls(
            ladder=LadderConfig.from_config_manager(config),
            redemption=RedemptionConfig.from_config_manager(config),
            engine=EngineConfig.from_config_manager(config),
        )


# ConfigManager key for each LadderConfig field, used when overlaying a preset.
_LADDER_KEYS = {
    "dispute_window_exit_enabled": "exits.dispute_window.enabled",
    "dispute_window_exit_price": "exits.dispute_window.exit_price",
    "auto_sell_enabled": "exits.auto_sell.enabled",
    "auto_sell_threshold": "exits.auto_sell.threshold",
    "auto_sell_min_hold_seconds": "exits.auto_sell.min_hold_seconds",
    "quick_win_enabled": "exits.quick_win.enabled",
    "quick_win_max_hold_minutes": "exits.quick_win.max_hold_minutes",
    "quick_win_profit_pct": "exits.quick_win.profit_pct",
    "stale_exit_enabled": "exits.stale.enabled",
    "stale_position_hours": "exits.stale.position_hours",
    "stale_expiry_hold_hours": "exits.stale.expiry_hold_hours",
    "oversized_exit_enabled": "exits.oversized.enabled",
    "oversized_exit_threshold_usd": "exits.oversized.threshold_usd",
    "oversized_exit_breakeven_tolerance_pct": "exits.oversized.breakeven_tolerance_pct",
    "oversized_exit_hours_before_event": "exits.oversized.hours_before_event",
}


def _coerce(current: object, raw: object) -> object:
    if isinstance(current, bool):
        if isinstance(raw, str):
            return raw.lower() in ("true", "1", "yes", "on")
        return bool(raw)
    if isinstance(current, Decimal):
        return Decimal(str(raw))
    if isinstance(current, int):
        return int(raw)  # type: ignore[call-overload]
    if isinstance(current, float):
        return float(raw)  # type: ignore[arg-type]
    return raw


def _overlay(base: ExitConfig, config: ConfigManager) -> ExitConfig:
    """Apply keys explicitly present in config on top of a preset."""

    ladder_changes = {}
    for name, key in _LADDER_KEYS.items():
        raw = config.get(key)
        if raw is not None:
            ladder_changes[name] = _coerce(getattr(base.ladder, name), raw)

    redemption_changes = {}
    for f in fields(RedemptionConfig):
        raw = config.get(f"redemption.{f.name}")
        if raw is not None:
            redemption_changes[f.name] = _coerce(getattr(base.redemption, f.name), raw)

    engine_changes = {}
    for f in fields(EngineConfig):
        raw = config.get(f"engine.{f.name}")
        if raw is not None:
            engine_changes[f.name] = _coerce(getattr(base.engine, f.name), raw)

    return replace(
        base,
        ladder=replace(base.ladder, **ladder_changes),
        redemption=replace(base.redemption, **redemption_changes),
        engine=replace(base.engine, **engine_changes),
    )
