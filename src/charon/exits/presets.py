"""Named exit-engine presets.

A preset is a complete ExitConfig. Selecting one is a pure lookup; values
in the TOML file or environment are layered on top by
ExitConfig.from_config_manager.
"""

from dataclasses import replace
from decimal import Decimal

from charon.exits.config import EngineConfig, ExitConfig, LadderConfig, RedemptionConfig

PRESET_NAMES = ("conservative", "balanced", "aggressive", "off")


def _conservative() -> ExitConfig:
    # Only near-certain exits; long holds before anything time-based fires.
    return ExitConfig(
        ladder=LadderConfig(
            auto_sell_min_hold_seconds=300,
            quick_win_enabled=False,
            stale_position_hours=48.0,
            stale_expiry_hold_hours=72.0,
            oversized_exit_threshold_usd=Decimal("50"),
            oversized_exit_breakeven_tolerance_pct=Decimal("1"),
        ),
        redemption=RedemptionConfig(min_position_usd=Decimal("0.10")),
        engine=EngineConfig(),
    )


def _balanced() -> ExitConfig:
    return ExitConfig()


def _aggressive() -> ExitConfig:
    return ExitConfig(
        ladder=LadderConfig(
            auto_sell_threshold=Decimal("0.995"),
            auto_sell_min_hold_seconds=10,
            quick_win_max_hold_minutes=120,
            quick_win_profit_pct=Decimal("50"),
            stale_position_hours=12.0,
            stale_expiry_hold_hours=24.0,
            oversized_exit_threshold_usd=Decimal("15"),
            oversized_exit_breakeven_tolerance_pct=Decimal("5"),
            oversized_exit_hours_before_event=2.0,
        ),
        redemption=RedemptionConfig(min_position_usd=Decimal("0.01")),
        engine=EngineConfig(poll_interval_seconds=15.0),
    )


def _off() -> ExitConfig:
    base = ExitConfig()
    return replace(
        base,
        ladder=replace(
            base.ladder,
            dispute_window_exit_enabled=False,
            auto_sell_enabled=False,
            quick_win_enabled=False,
            stale_exit_enabled=False,
            oversized_exit_enabled=False,
        ),
        redemption=replace(base.redemption, enabled=False),
    )


_PRESETS = {
    "conservative": _conservative,
    "balanced": _balanced,
    "aggressive": _aggressive,
    "off": _off,
}


def config_for_preset(name: str) -> ExitConfig:
    """Return the ExitConfig for a named preset.

    Args:
        name: Preset name (case-insensitive).

    Returns:
        A fresh ExitConfig.

    Raises:
        ValueError: If the preset name is unknown.
    """
    factory = _PRESETS.get(name.strip().lower())
    if factory is None:
        raise ValueError(
            f"Unknown preset {name!r}; expected one of: {', '.join(PRESET_NAMES)}"
        )
    return factory()
