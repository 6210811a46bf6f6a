"""
Redemption error classification.

Errors from the redemption submitter arrive as free text (RPC messages,
revert strings, provider exceptions). They are classified exactly once,
here, into a RedemptionErrorKind; everything downstream switches on the
kind.
"""
from typing import Union

from charon.domain.redemption import RedemptionErrorKind

# Checked in this order; the first matching group wins.
NOT_RESOLVED_SIGNATURES = (
    "result for condition not received yet",
    "condition not resolved",
    "payoutdenominator",
    "payout denominator",
    "not resolved",
)

RATE_LIMIT_SIGNATURES = (
    "429",
    "503",
    "-32000",
    "-32005",
    "too many requests",
    "rate limit",
    "in-flight transaction limit",
    "missing response for request",
    "bad_data",
)

NONCE_SIGNATURES = (
    "replacement transaction underpriced",
    "replacement_underpriced",
    "replacement fee too low",
    "nonce too low",
    "already known",
)


def _error_text(error: Union[str, BaseException, None]) -> str:
    if error is None:
        return ""
    if isinstance(error, BaseException):
        text = str(error) or type(error).__name__
        cause = error.__cause__
        if cause is not None:
            text = f"{text} {cause}"
        return text.lower()
    return error.lower()


def classify_redemption_error(error: Union[str, BaseException, None]) -> RedemptionErrorKind:
    """Classify a redemption failure.

    Args:
        error: Error message or exception raised by the submitter.

    Returns:
        The error kind. Unrecognised errors are DURABLE.
    """
    text = _error_text(error)
    if any(sig in text for sig in NOT_RESOLVED_SIGNATURES):
        return RedemptionErrorKind.NOT_RESOLVED
    if any(sig in text for sig in RATE_LIMIT_SIGNATURES):
        return RedemptionErrorKind.RATE_LIMITED
    if any(sig in text for sig in NONCE_SIGNATURES):
        return RedemptionErrorKind.NONCE_CONFLICT
    return RedemptionErrorKind.DURABLE
