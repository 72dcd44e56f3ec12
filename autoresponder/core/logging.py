"""Logging configuration"""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "autoresponder"

# Chatty at DEBUG; kept at ``library_level`` so pipeline debug output stays readable
LIBRARY_LOGGERS = ("discord", "discord.http", "discord.gateway", "aiohttp", "httpx", "httpcore")


def _level(name: str | int | None, default: str = "INFO") -> int:
    if isinstance(name, int):
        return name
    return getattr(logging, str(name or default).upper(), logging.INFO)


def _rich_handler() -> logging.Handler:
    console = Console(force_terminal=True, width=120)
    handler = RichHandler(
        console=console,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=True,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        tracebacks_width=120,
    )
    handler.setFormatter(logging.Formatter(fmt="%(message)s", datefmt="[%Y-%m-%d %H:%M:%S]"))
    return handler


def setup_logging(level_name: str | None = None, library_level: str | int = logging.WARNING) -> None:
    """Configure application logging with Rich handler

    ``level_name`` applies to the ``autoresponder`` loggers, ``library_level``
    to discord.py and the HTTP stacks.
    """
    level = _level(level_name or os.getenv("LOG_LEVEL"))
    lib_level = _level(library_level, "WARNING")

    try:
        logging.basicConfig(level=level, handlers=[_rich_handler()], force=True)
    except Exception as e:
        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            force=True,
        )
        logging.getLogger(__name__).warning(f"Rich logging setup failed: {e}, using standard logging")

    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(lib_level)
