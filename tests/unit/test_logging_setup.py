"""Tests for root logger configuration."""

from __future__ import annotations

import logging

import pytest
from rich.logging import RichHandler

from studyweave.logging_setup import setup_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_installs_rich_handler():
    setup_logging("INFO")
    root = logging.getLogger()
    assert root.level == logging.INFO
    assert any(isinstance(h, RichHandler) for h in root.handlers)


def test_level_from_environment(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "error")
    setup_logging()
    assert logging.getLogger().level == logging.ERROR


def test_unknown_level_defaults_to_warning(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "chatty")
    setup_logging()
    assert logging.getLogger().level == logging.WARNING


def test_third_party_loggers_quiet_unless_debug():
    setup_logging("INFO")
    assert logging.getLogger("LiteLLM").level == logging.WARNING
    setup_logging("DEBUG")
    assert logging.getLogger("LiteLLM").level == logging.DEBUG


def test_existing_module_loggers_stay_enabled():
    module_logger = logging.getLogger("studyweave.rag.retriever")
    setup_logging("INFO")
    assert not module_logger.disabled
