"""
Per-market redemption attempt ledger.

The ledger drives cooldown and the circuit breaker:

- success clears the market entirely
- NOT_RESOLVED refreshes the attempt time (cooldown) but zeroes failures
- RATE_LIMITED / NONCE_CONFLICT leave the record untouched
- DURABLE increments failures; at max_failures the market is tripped
  until cleared by an operator

State lives in memory for the process run. LedgerFile optionally persists
it so that cooldowns survive a restart.
"""
import json
import os
from pathlib import Path
from typing import Any, Optional, Union

from charon.core.clock import Clock, MS_PER_SECOND, epoch_ms
from charon.core.logging import get_logger
from charon.domain.redemption import RedemptionAttempt, RedemptionErrorKind, SkipReason

log = get_logger("redemption.ledger")


class AttemptLedger:
    """Tracks last attempt time and consecutive durable failures per market."""

    def __init__(
        self,
        cooldown_seconds: int = 300,
        max_failures: int = 3,
        clock: Clock = epoch_ms,
    ) -> None:
        self._cooldown_ms = cooldown_seconds * MS_PER_SECOND
        self._max_failures = max_failures
        self._clock = clock
        self._attempts: dict[str, RedemptionAttempt] = {}

    @property
    def max_failures(self) -> int:
        return self._max_failures

    def configure(self, cooldown_seconds: int, max_failures: int) -> None:
        """Apply reloaded limits without losing recorded attempts."""
        self._cooldown_ms = cooldown_seconds * MS_PER_SECOND
        self._max_failures = max_failures

    def check(self, market_id: str, now_ms: Optional[int] = None) -> Optional[SkipReason]:
        """Return why the market must be skipped right now, or None."""
        attempt = self._attempts.get(market_id)
        if attempt is None:
            return None
        if attempt.consecutive_failures >= self._max_failures:
            return SkipReason.TOO_MANY_FAILURES
        now = self._clock() if now_ms is None else now_ms
        if now - attempt.last_attempt_at < self._cooldown_ms:
            return SkipReason.IN_COOLDOWN
        return None

    def record(
        self,
        market_id: str,
        result: Union[bool, RedemptionErrorKind],
        now_ms: Optional[int] = None,
    ) -> Optional[RedemptionAttempt]:
        """Record the outcome of a submitted redemption.

        Args:
            market_id: Market the attempt was for.
            result: True for success, otherwise the classified error kind.
            now_ms: Attempt time (defaults to the clock).

        Returns:
            The updated record, or None when the entry was cleared.
        """
        if result is True:
            self._attempts.pop(market_id, None)
            return None
        if result is False:
            raise ValueError("record() takes True or a RedemptionErrorKind, not False")

        now = self._clock() if now_ms is None else now_ms
        attempt = self._attempts.get(market_id)

        if result is RedemptionErrorKind.NOT_RESOLVED:
            attempt = RedemptionAttempt(last_attempt_at=now, consecutive_failures=0)
            self._attempts[market_id] = attempt
        elif result is RedemptionErrorKind.DURABLE:
            failures = attempt.consecutive_failures + 1 if attempt else 1
            attempt = RedemptionAttempt(last_attempt_at=now, consecutive_failures=failures)
            self._attempts[market_id] = attempt
            if failures >= self._max_failures:
                log.warning(
                    "redemption_market_tripped",
                    market_id=market_id,
                    consecutive_failures=failures,
                )
        return attempt

    def get(self, market_id: str) -> Optional[RedemptionAttempt]:
        return self._attempts.get(market_id)

    def tripped_markets(self) -> list[str]:
        """Markets blocked by the circuit breaker."""
        return [
            market_id
            for market_id, attempt in self._attempts.items()
            if attempt.consecutive_failures >= self._max_failures
        ]

    def clear(self, market_id: str) -> bool:
        """Manually clear a market. Returns whether an entry existed."""
        existed = self._attempts.pop(market_id, None) is not None
        if existed:
            log.info("redemption_ledger_cleared", market_id=market_id)
        return existed

    def reset(self) -> None:
        self._attempts.clear()

    def __len__(self) -> int:
        return len(self._attempts)

    def snapshot(self) -> dict[str, dict[str, int]]:
        return {
            market_id: {
                "last_attempt_at": attempt.last_attempt_at,
                "consecutive_failures": attempt.consecutive_failures,
            }
            for market_id, attempt in self._attempts.items()
        }

    @classmethod
    def restore(
        cls,
        data: dict[str, Any],
        cooldown_seconds: int = 300,
        max_failures: int = 3,
        clock: Clock = epoch_ms,
    ) -> "AttemptLedger":
        ledger = cls(cooldown_seconds=cooldown_seconds, max_failures=max_failures, clock=clock)
        for market_id, raw in data.items():
            ledger._attempts[market_id] = RedemptionAttempt(
                last_attempt_at=int(raw["last_attempt_at"]),
                consecutive_failures=int(raw.get("consecutive_failures", 0)),
            )
        return ledger


class LedgerFile:
    """JSON persistence for an AttemptLedger, written atomically."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any]:
        """Read the stored snapshot. A missing or corrupt file yields {}."""
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            log.warning("ledger_file_unreadable", path=str(self._path), error=str(e))
            return {}
        if not isinstance(data, dict):
            return {}
        return data

    def save(self, ledger: AttemptLedger) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(ledger.snapshot(), f, indent=2, sort_keys=True)
        os.replace(tmp_path, self._path)
