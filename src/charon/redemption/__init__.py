"""Redemption - preflight, error classification, attempt ledger and execution."""

from charon.redemption.classifier import classify_redemption_error
from charon.redemption.eligibility import RedemptionEligibility
from charon.redemption.ledger import AttemptLedger, LedgerFile
from charon.redemption.redeemer import Redeemer

__all__ = [
    "classify_redemption_error",
    "AttemptLedger",
    "LedgerFile",
    "RedemptionEligibility",
    "Redeemer",
]
