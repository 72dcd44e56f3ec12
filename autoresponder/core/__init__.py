"""Core modules for the auto-respond bot."""

from .config import BOT_NAME, BOT_VERSION, PACKAGE_DIR, PROJECT_DIR, AutoRespondSettings, get_settings
from .guards import CooldownGuard, ErrorLogGuard
from .health_server import HealthCheckServer
from .logging import setup_logging

__all__ = [
    # Config
    "AutoRespondSettings",
    "BOT_NAME",
    "BOT_VERSION",
    "get_settings",
    # Paths
    "PACKAGE_DIR",
    "PROJECT_DIR",
    # Guards
    "CooldownGuard",
    "ErrorLogGuard",
    # Services
    "HealthCheckServer",
    # Logging
    "setup_logging",
]
