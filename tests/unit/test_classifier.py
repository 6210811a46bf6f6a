"""
Unit tests for redemption error classification.
"""
import pytest

from charon.domain.redemption import RedemptionErrorKind
from charon.redemption.classifier import classify_redemption_error


class TestClassifyRedemptionError:
    """Free-text errors map to exactly one closed kind."""

    @pytest.mark.parametrize(
        "message",
        [
            "execution reverted: result for condition not received yet",
            "Condition not resolved",
            "payoutDenominator=0",
            "payout denominator is zero",
        ],
    )
    def test_not_resolved(self, message):
        assert classify_redemption_error(message) == RedemptionErrorKind.NOT_RESOLVED

    @pytest.mark.parametrize(
        "message",
        [
            "HTTP 429 Too Many Requests",
            "503 Service Unavailable",
            "{'code': -32000, 'message': 'header not found'}",
            "{'code': -32005, 'message': 'limit exceeded'}",
            "too many requests",
            "missing response for request",
            "could not decode result data (code=BAD_DATA)",
        ],
    )
    def test_rate_limited(self, message):
        assert classify_redemption_error(message) == RedemptionErrorKind.RATE_LIMITED

    @pytest.mark.parametrize(
        "message",
        [
            "replacement transaction underpriced",
            "REPLACEMENT_UNDERPRICED",
            "nonce too low",
            "already known",
        ],
    )
    def test_nonce_conflict(self, message):
        assert classify_redemption_error(message) == RedemptionErrorKind.NONCE_CONFLICT

    @pytest.mark.parametrize(
        "message",
        ["execution reverted", "Transaction reverted", "insufficient funds for gas", ""],
    )
    def test_everything_else_is_durable(self, message):
        assert classify_redemption_error(message) == RedemptionErrorKind.DURABLE

    def test_none_is_durable(self):
        assert classify_redemption_error(None) == RedemptionErrorKind.DURABLE

    def test_not_resolved_takes_precedence(self):
        """A rate-limit code inside a not-resolved revert is still NOT_RESOLVED."""
        message = "-32000 execution reverted: payoutDenominator is 0"

        assert classify_redemption_error(message) == RedemptionErrorKind.NOT_RESOLVED

    def test_exception_includes_cause(self):
        try:
            try:
                raise ConnectionError("429 too many requests")
            except ConnectionError as inner:
                raise RuntimeError("redeem failed") from inner
        except RuntimeError as error:
            assert classify_redemption_error(error) == RedemptionErrorKind.RATE_LIMITED


class TestErrorKind:
    """Kind properties drive the ledger and the retry loop."""

    def test_only_durable_counts_as_failure(self):
        assert RedemptionErrorKind.DURABLE.counts_as_failure
        assert not RedemptionErrorKind.NOT_RESOLVED.counts_as_failure
        assert not RedemptionErrorKind.RATE_LIMITED.counts_as_failure
        assert not RedemptionErrorKind.NONCE_CONFLICT.counts_as_failure

    def test_transient_kinds(self):
        assert RedemptionErrorKind.RATE_LIMITED.is_transient
        assert RedemptionErrorKind.NONCE_CONFLICT.is_transient
        assert not RedemptionErrorKind.NOT_RESOLVED.is_transient
        assert not RedemptionErrorKind.DURABLE.is_transient
