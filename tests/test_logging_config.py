"""Tests for logging setup."""

import logging

from market_feed.core import logging_config
from market_feed.core.config import settings


def test_text_format_uses_single_formatter(monkeypatch):
    monkeypatch.setattr(settings, "log_format", "text")

    logging_config.setup_logging()

    handler = logging.getLogger("market_feed").handlers[0]
    assert not type(handler.formatter).__name__.startswith("Json")
    assert logging.getLogger("httpx").level == logging.WARNING


def test_json_format(monkeypatch):
    monkeypatch.setattr(settings, "log_format", "json")

    logging_config.setup_logging()

    handler = logging.getLogger("market_feed").handlers[0]
    assert type(handler.formatter).__name__ == "JsonFormatter"


def test_create_logger_namespace():
    assert logging_config.create_logger("market_feed.services.cache").name == "market_feed.services.cache"
    assert logging_config.create_logger("scripts").name == "market_feed.scripts"
