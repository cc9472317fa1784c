"""Tests for logging setup."""

import logging

from cardmirror.core.logging import debug_requested, get_logger, setup_logging


def test_env_toggle(monkeypatch):
    monkeypatch.setenv("CARDMIRROR_DEBUG", "TRUE")
    assert debug_requested()
    monkeypatch.setenv("CARDMIRROR_DEBUG", "no")
    assert not debug_requested()
    assert debug_requested(True)


def test_debug_shows_http_requests(monkeypatch):
    monkeypatch.delenv("CARDMIRROR_DEBUG", raising=False)
    assert setup_logging(debug=True) == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.DEBUG
    assert get_logger("cardmirror.core.engine").isEnabledFor(logging.DEBUG)


def test_quiet_by_default(monkeypatch):
    """Without --debug only warnings and errors are shown, httpx included."""
    monkeypatch.delenv("CARDMIRROR_DEBUG", raising=False)
    assert setup_logging() == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING
    assert not get_logger("cardmirror.core.engine").isEnabledFor(logging.INFO)
