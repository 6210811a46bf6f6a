"""
Unit tests for the redemption attempt ledger.

Tests cover:
- Transitions for success and every error kind
- Cooldown and circuit-breaker checks
- Manual clearing
- JSON persistence through LedgerFile
"""
import json

import pytest

from charon.core.clock import MS_PER_SECOND
from charon.domain.redemption import RedemptionErrorKind, SkipReason
from charon.redemption.ledger import AttemptLedger, LedgerFile
from tests.factories import MARKET_ID, NOW_MS


@pytest.fixture
def ledger(clock):
    return AttemptLedger(cooldown_seconds=300, max_failures=3, clock=clock)


class TestRecord:
    """State transitions per attempt result."""

    def test_first_durable_failure_creates_record(self, ledger):
        attempt = ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)

        assert attempt.consecutive_failures == 1
        assert attempt.last_attempt_at == NOW_MS

    def test_durable_failures_accumulate(self, ledger, clock):
        ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)
        clock.advance(400)
        attempt = ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)

        assert attempt.consecutive_failures == 2
        assert attempt.last_attempt_at == NOW_MS + 400 * MS_PER_SECOND

    def test_success_clears_entry(self, ledger):
        ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)

        assert ledger.record(MARKET_ID, True) is None
        assert ledger.get(MARKET_ID) is None
        assert len(ledger) == 0

    def test_not_resolved_refreshes_time_without_failures(self, ledger, clock):
        """payoutDenominator=0: failures stay 0, last attempt time moves."""
        ledger.record(MARKET_ID, RedemptionErrorKind.NOT_RESOLVED)
        clock.advance(600)

        attempt = ledger.record(MARKET_ID, RedemptionErrorKind.NOT_RESOLVED)

        assert attempt.consecutive_failures == 0
        assert attempt.last_attempt_at == NOW_MS + 600 * MS_PER_SECOND

    def test_not_resolved_resets_prior_failures(self, ledger):
        ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)
        ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)

        attempt = ledger.record(MARKET_ID, RedemptionErrorKind.NOT_RESOLVED)

        assert attempt.consecutive_failures == 0

    @pytest.mark.parametrize(
        "kind", [RedemptionErrorKind.RATE_LIMITED, RedemptionErrorKind.NONCE_CONFLICT]
    )
    def test_transient_kinds_leave_record_untouched(self, ledger, clock, kind):
        ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)
        clock.advance(10)

        attempt = ledger.record(MARKET_ID, kind)

        assert attempt.consecutive_failures == 1
        assert attempt.last_attempt_at == NOW_MS

    def test_transient_kind_without_record_creates_nothing(self, ledger):
        assert ledger.record(MARKET_ID, RedemptionErrorKind.RATE_LIMITED) is None
        assert len(ledger) == 0

    def test_false_is_rejected(self, ledger):
        with pytest.raises(ValueError):
            ledger.record(MARKET_ID, False)


class TestCheck:
    """Cooldown and breaker checks."""

    def test_unknown_market_is_allowed(self, ledger):
        assert ledger.check(MARKET_ID) is None

    def test_in_cooldown(self, ledger, clock):
        ledger.record(MARKET_ID, RedemptionErrorKind.NOT_RESOLVED)
        clock.advance(299)

        assert ledger.check(MARKET_ID) == SkipReason.IN_COOLDOWN

    def test_cooldown_expires(self, ledger, clock):
        ledger.record(MARKET_ID, RedemptionErrorKind.NOT_RESOLVED)
        clock.advance(300)

        assert ledger.check(MARKET_ID) is None

    def test_trips_after_max_failures(self, ledger, clock):
        for _ in range(3):
            ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)
            clock.advance(301)

        assert ledger.check(MARKET_ID) == SkipReason.TOO_MANY_FAILURES
        assert ledger.tripped_markets() == [MARKET_ID]

    def test_breaker_reported_before_cooldown(self, ledger):
        for _ in range(3):
            ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)

        assert ledger.check(MARKET_ID) == SkipReason.TOO_MANY_FAILURES

    def test_tripped_market_stays_blocked(self, ledger, clock):
        for _ in range(3):
            ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)
        clock.advance(24 * 3600)

        assert ledger.check(MARKET_ID) == SkipReason.TOO_MANY_FAILURES

    def test_clear_unblocks(self, ledger):
        for _ in range(3):
            ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)

        assert ledger.clear(MARKET_ID) is True
        assert ledger.check(MARKET_ID) is None
        assert ledger.clear(MARKET_ID) is False

    def test_configure_changes_limits(self, ledger):
        ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)

        ledger.configure(cooldown_seconds=0, max_failures=1)

        assert ledger.check(MARKET_ID) == SkipReason.TOO_MANY_FAILURES
        assert ledger.max_failures == 1


class TestPersistence:
    """Snapshot, restore and LedgerFile."""

    def test_snapshot_restore_round_trip(self, ledger, clock):
        ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)

        restored = AttemptLedger.restore(ledger.snapshot(), clock=clock)

        assert restored.get(MARKET_ID) == ledger.get(MARKET_ID)
        assert restored.check(MARKET_ID) == SkipReason.IN_COOLDOWN

    def test_ledger_file_save_and_load(self, ledger, tmp_path):
        ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)
        ledger_file = LedgerFile(tmp_path / "state" / "ledger.json")

        ledger_file.save(ledger)

        data = ledger_file.load()
        assert data[MARKET_ID]["consecutive_failures"] == 1
        assert data[MARKET_ID]["last_attempt_at"] == NOW_MS
        assert not (tmp_path / "state" / "ledger.json.tmp").exists()

    def test_missing_file_loads_empty(self, tmp_path):
        assert LedgerFile(tmp_path / "missing.json").load() == {}

    def test_corrupt_file_loads_empty(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text("{not json")

        assert LedgerFile(path).load() == {}

    def test_saved_file_is_json(self, ledger, tmp_path):
        ledger.record(MARKET_ID, RedemptionErrorKind.NOT_RESOLVED)
        path = tmp_path / "ledger.json"

        LedgerFile(path).save(ledger)

        assert json.loads(path.read_text()) == ledger.snapshot()
