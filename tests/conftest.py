"""
Shared pytest fixtures for Charon tests.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from charon.core.clock import MS_PER_SECOND
from charon.domain.redemption import SubmitResult
from tests.factories import NOW_MS


@pytest.fixture
def now_ms():
    return NOW_MS


@pytest.fixture
def clock():
    """Mutable epoch-ms clock; set clock.now to move time."""

    class FakeClock:
        def __init__(self) -> None:
            self.now = NOW_MS

        def __call__(self) -> int:
            return self.now

        def advance(self, seconds: float) -> None:
            self.now += int(seconds * MS_PER_SECOND)

    return FakeClock()


@pytest.fixture
def mock_sleep():
    """Async sleep replacement that returns immediately."""
    return AsyncMock(return_value=None)


@pytest.fixture
def sell_submitter():
    """Mock sell-order submitter that accepts every order."""
    submitter = MagicMock()
    submitter.submit_sell_order = AsyncMock(
        return_value=SubmitResult(success=True, order_id="order-1")
    )
    return submitter


@pytest.fixture
def redemption_submitter():
    """Mock redemption submitter that succeeds."""
    submitter = MagicMock()
    submitter.submit_redemption = AsyncMock(
        return_value=SubmitResult(success=True, transaction_hash="0xabc")
    )
    return submitter


@pytest.fixture
def denominator_reader():
    """Mock on-chain reader reporting every market as resolved."""
    reader = MagicMock()
    reader.get_payout_denominator = AsyncMock(return_value=1)
    return reader


@pytest.fixture
def mock_config():
    """Mock ConfigManager for unit tests."""
    config = MagicMock()
    config.get.return_value = None
    return config
