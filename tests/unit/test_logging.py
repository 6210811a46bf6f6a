"""
Unit tests for structured logging setup.
"""
import logging

import pytest
import structlog

from charon import __version__
from charon.core.logging import NOISY_LOGGERS, setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    noisy = {name: logging.getLogger(name).level for name in NOISY_LOGGERS}
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)
    for name, noisy_level in noisy.items():
        logging.getLogger(name).setLevel(noisy_level)
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


class TestSetupLogging:
    """Process-wide context and levels."""

    def test_binds_service_and_version(self):
        setup_logging(level="INFO")

        context = structlog.contextvars.get_contextvars()

        assert context == {"service": "charon", "version": __version__}

    def test_binds_dry_run_when_given(self):
        setup_logging(level="INFO", dry_run=True)

        assert structlog.contextvars.get_contextvars()["dry_run"] is True

    def test_rebinding_drops_stale_context(self):
        structlog.contextvars.bind_contextvars(market_id="0xabc")

        setup_logging(level="INFO")

        assert "market_id" not in structlog.contextvars.get_contextvars()

    def test_json_events_carry_service(self, capsys):
        setup_logging(level="INFO", json_output=True)

        structlog.get_logger("charon.test").info("cycle_done", positions=3)

        line = capsys.readouterr().out.strip().splitlines()[-1]
        assert '"service": "charon"' in line
        assert f'"version": "{__version__}"' in line
        assert '"positions": 3' in line

    def test_quiets_client_libraries(self):
        setup_logging(level="DEBUG")

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger().level == logging.DEBUG

    def test_error_level_applies_to_client_libraries(self):
        setup_logging(level="ERROR")

        assert logging.getLogger("web3").level == logging.ERROR

