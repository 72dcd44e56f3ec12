"""Auto-respond media pipeline for Discord guild bots."""

from autoresponder.core.config import BOT_VERSION as __version__

__all__ = ["__version__"]
