from __future__ import annotations

import logging

import pytest
from rich.logging import RichHandler

from autoresponder.core.logging import LIBRARY_LOGGERS, PACKAGE_LOGGER, setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    watched = [PACKAGE_LOGGER, *LIBRARY_LOGGERS]
    levels = {name: logging.getLogger(name).level for name in watched}
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, old in levels.items():
        logging.getLogger(name).setLevel(old)


def test_package_and_library_levels_are_separate(restore_logging) -> None:
    setup_logging("debug", library_level="ERROR")

    assert logging.getLogger(PACKAGE_LOGGER).level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.ERROR
    assert logging.getLogger("discord.http").level == logging.ERROR
    assert any(isinstance(h, RichHandler) for h in logging.getLogger().handlers)


def test_unknown_level_falls_back_to_info(restore_logging, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    setup_logging("chatty")

    assert logging.getLogger(PACKAGE_LOGGER).level == logging.INFO
    assert logging.getLogger("aiohttp").level == logging.WARNING
