"""Charon - Entry Point

Usage:
    python -m charon [--config PATH] [--log-level LEVEL] [--json-logs] COMMAND

Commands:
    run     - Start the exit scheduler (default)
    redeem  - Redeem every resolved position once, then exit
    presets - Show the exit presets
    version - Show version

Examples:
    python -m charon run
    python -m charon --config config/production.toml run --dry-run
    python -m charon redeem --exclude-losses
    python -m charon presets
"""

import argparse
import asyncio
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from charon import __version__

if TYPE_CHECKING:
    from charon.core.config import ConfigManager
    from charon.exits.proof import ProofResolver
    from charon.integrations.chain.ctf import CTFClient
    from charon.integrations.polymarket.clob import ClobSellSubmitter
    from charon.integrations.polymarket.data_api import DataApiPositionProvider
    from charon.redemption.ledger import AttemptLedger, LedgerFile
    from charon.redemption.redeemer import Redeemer
    from charon.services.exit_engine import ExitEngine
    from charon.services.metrics import MetricsEmitter


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="charon",
        description="Exit-decision engine for Polymarket outcome-token positions",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Charon {__version__}",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (TOML)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=False,
        help="Emit JSON log lines",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run", help="Start the exit scheduler")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Log decisions without submitting orders or transactions",
    )

    redeem_parser = subparsers.add_parser("redeem", help="Redeem all resolved positions")
    redeem_parser.add_argument(
        "--exclude-losses",
        action="store_true",
        default=False,
        help="Skip worthless losing positions",
    )

    subparsers.add_parser("presets", help="Show exit presets")
    subparsers.add_parser("version", help="Show version")

    return parser.parse_args(argv)


def find_config_file(specified: Optional[Path]) -> Optional[Path]:
    """Find configuration file."""
    if specified and specified.exists():
        return specified

    search_paths = [
        Path("config/default.toml"),
        Path("charon.toml"),
        Path("/etc/charon/charon.toml"),
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


def format_presets() -> str:
    """Render the preset table."""
    from charon.exits.presets import PRESET_NAMES, config_for_preset

    rows = [("preset", "auto-sell", "quick-win", "stale", "oversized", "redeem")]
    for name in PRESET_NAMES:
        cfg = config_for_preset(name)
        ladder = cfg.ladder
        rows.append((
            name,
            f">={ladder.auto_sell_threshold} after {ladder.auto_sell_min_hold_seconds}s"
            if ladder.auto_sell_enabled else "off",
            f"+{ladder.quick_win_profit_pct}% in {ladder.quick_win_max_hold_minutes}m"
            if ladder.quick_win_enabled else "off",
            f"{ladder.stale_position_hours}h (hold {ladder.stale_expiry_hold_hours}h)"
            if ladder.stale_exit_enabled else "off",
            f">${ladder.oversized_exit_threshold_usd}"
            if ladder.oversized_exit_enabled else "off",
            f">=${cfg.redemption.min_position_usd}"
            if cfg.redemption.enabled else "off",
        ))

    widths = [max(len(row[i]) for row in rows) for i in range(len(rows[0]))]
    return "\n".join(
        "  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip()
        for row in rows
    )


@dataclass
class Runtime:
    """Everything wired for one wallet."""

    ctf: "CTFClient"
    clob: "ClobSellSubmitter"
    provider: "DataApiPositionProvider"
    proof_resolver: "ProofResolver"
    ledger: "AttemptLedger"
    ledger_file: Optional["LedgerFile"]
    redeemer: "Redeemer"
    engine: "ExitEngine"
    metrics: "MetricsEmitter"

    async def connect(self) -> None:
        await self.ctf.connect()
        await self.clob.connect()
        await self.provider.connect()

    async def close(self) -> None:
        await self.provider.close()
        await self.clob.close()
        await self.ctf.close()


def build_runtime(config: "ConfigManager") -> Runtime:
    """Construct every component from configuration."""
    from eth_account import Account

    from charon.exits.config import ExitConfig
    from charon.exits.proof import ProofResolver
    from charon.integrations.chain.ctf import CTFClient
    from charon.integrations.polymarket.clob import ClobSellSubmitter
    from charon.integrations.polymarket.data_api import DataApiPositionProvider
    from charon.integrations.polymarket.types import PolymarketSettings
    from charon.redemption.eligibility import RedemptionEligibility
    from charon.redemption.ledger import AttemptLedger, LedgerFile
    from charon.redemption.redeemer import Redeemer
    from charon.services.exit_engine import EngineState, ExitEngine
    from charon.services.metrics import MetricsEmitter

    exit_config = ExitConfig.from_config_manager(config)
    settings = PolymarketSettings.from_config_manager(config)
    redemption = exit_config.redemption

    ctf = CTFClient(
        rpc_url=settings.polygon_rpc_url,
        private_key=settings.private_key,
        proxy_address=settings.proxy_wallet,
    )
    clob = ClobSellSubmitter(settings, min_order_usd=exit_config.engine.min_order_usd)

    wallet = settings.position_wallet or Account.from_key(settings.private_key).address
    provider = DataApiPositionProvider(settings, wallet, bid_source=clob.get_best_bid)

    proof_resolver = ProofResolver(ctf, cache_ttl_seconds=redemption.payout_cache_ttl_seconds)

    ledger_file = LedgerFile(redemption.ledger_path) if redemption.ledger_path else None
    if ledger_file is not None:
        ledger = AttemptLedger.restore(
            ledger_file.load(),
            cooldown_seconds=redemption.cooldown_seconds,
            max_failures=redemption.max_failures,
        )
    else:
        ledger = AttemptLedger(
            cooldown_seconds=redemption.cooldown_seconds,
            max_failures=redemption.max_failures,
        )

    metrics = MetricsEmitter()
    eligibility = RedemptionEligibility(redemption, ledger, proof_resolver)
    redeemer = Redeemer(ctf, ledger, eligibility, redemption, metrics=metrics)
    engine = ExitEngine(
        exit_config,
        proof_resolver,
        clob,
        redeemer,
        ledger,
        metrics=metrics,
        state=EngineState(),
        ledger_file=ledger_file,
    )

    return Runtime(
        ctf=ctf,
        clob=clob,
        provider=provider,
        proof_resolver=proof_resolver,
        ledger=ledger,
        ledger_file=ledger_file,
        redeemer=redeemer,
        engine=engine,
        metrics=metrics,
    )


def load_config(args: argparse.Namespace) -> "ConfigManager":
    from charon.core.config import ConfigManager

    config_path = find_config_file(args.config)
    config = ConfigManager(config_path) if config_path else ConfigManager()
    if getattr(args, "dry_run", None) is not None:
        config.set_override("engine.dry_run", args.dry_run)
    return config


def configure_logging(args: argparse.Namespace, config: "ConfigManager"):
    from charon.core.logging import setup_logging

    level = args.log_level or str(config.get("charon.log_level", default="INFO")).upper()
    json_output = args.json_logs or config.get_bool("charon.json_logs", default=False)
    return setup_logging(
        level=level,
        json_output=json_output,
        log_file=config.get("charon.log_file"),
        dry_run=config.get_bool("engine.dry_run", default=False),
    )


async def run_scheduler(args: argparse.Namespace) -> int:
    """Run the exit scheduler until SIGINT/SIGTERM."""
    from charon.services.scheduler import ExitScheduler

    config = load_config(args)
    log = configure_logging(args, config)

    log.info(
        "starting_charon",
        version=__version__,
        config=str(config.config_path) if config.config_path else "defaults",
        preset=config.get("charon.preset"),
    )

    try:
        runtime = build_runtime(config)
    except Exception as e:
        log.error("startup_failed", error=str(e))
        return 1

    scheduler = ExitScheduler(
        runtime.engine,
        runtime.provider,
        runtime.ledger,
        config=config,
        metrics=runtime.metrics,
    )

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        await runtime.connect()
        await scheduler.start()
        await shutdown.wait()
        health = await scheduler.health_check()
        log.info("shutdown_requested", health=health.to_dict())
        return 0
    except Exception as e:
        log.error("fatal_error", error=str(e), exc_info=True)
        return 1
    finally:
        await scheduler.stop()
        await runtime.close()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)


async def run_redeem(args: argparse.Namespace) -> int:
    """Redeem every resolved position once."""
    config = load_config(args)
    log = configure_logging(args, config)

    try:
        runtime = build_runtime(config)
    except Exception as e:
        log.error("startup_failed", error=str(e))
        return 1

    try:
        await runtime.connect()
        positions = await runtime.provider.get_positions()
        resolved = await runtime.proof_resolver.resolve(positions)
        redeemable = [p for p in resolved if p.redeemable]
        log.info("force_redeem_start", positions=len(positions), redeemable=len(redeemable))

        outcomes = await runtime.redeemer.redeem_all(
            redeemable, include_losses=not args.exclude_losses
        )
        if runtime.ledger_file is not None:
            runtime.ledger_file.save(runtime.ledger)
        return 1 if any(o.counts_as_failure for o in outcomes) else 0
    except Exception as e:
        log.error("force_redeem_failed", error=str(e), exc_info=True)
        return 1
    finally:
        await runtime.close()


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    if args.command == "version":
        print(f"Charon {__version__}")
        return 0

    if args.command == "presets":
        print(format_presets())
        return 0

    if args.command == "redeem":
        return asyncio.run(run_redeem(args))

    # Default: run the scheduler
    return asyncio.run(run_scheduler(args))


if __name__ == "__main__":
    sys.exit(main())
