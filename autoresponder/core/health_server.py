"""HTTP health check server"""

import logging
import time
from typing import TYPE_CHECKING, Any

from aiohttp import web

from .config import BOT_NAME

if TYPE_CHECKING:
    from discord.ext.commands import Bot

logger = logging.getLogger(__name__)


class HealthCheckServer:
    """HTTP health check server"""

    def __init__(self, bot: "Bot | None" = None, host: str = "0.0.0.0", port: int = 8080) -> None:
        self.bot: Any = bot
        self.host = host
        self.port = port
        self.app = web.Application()
        self.runner: web.AppRunner | None = None
        self._start_time: float = time.time()
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Configure HTTP routes"""
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_get("/status", self.handle_status)
        self.app.router.add_get("/ping", self.handle_ping)

    def _ready(self) -> bool:
        return self.bot is not None and self.bot.is_ready()

    async def handle_health(self, request: web.Request) -> web.Response:
        """Liveness check, always 200"""
        ready = self._ready()
        return web.json_response({"status": "healthy" if ready else "starting", "ready": ready})

    async def handle_status(self, request: web.Request) -> web.Response:
        """Uptime plus auto-respond pipeline counters"""
        ready = self._ready()
        cog = self.bot.get_cog("AutoRespond") if self.bot is not None else None
        return web.json_response(
            {
                "service": BOT_NAME,
                "uptime_seconds": int(time.time() - self._start_time),
                "connected_guilds": len(self.bot.guilds) if ready else 0,
                "autorespond": cog.status() if cog is not None else None,
            }
        )

    async def handle_ping(self, request: web.Request) -> web.Response:
        return web.Response(text="pong")

    async def start(self) -> None:
        """Start health check server"""
        try:
            self.runner = web.AppRunner(self.app)
            await self.runner.setup()
            site = web.TCPSite(self.runner, self.host, self.port)
            await site.start()
            logger.info(f"Health server started on {self.host}:{self.port}")
        except Exception as e:
            logger.exception(f"Failed to start health server: {e}")
            raise

    async def stop(self) -> None:
        """Stop health check server"""
        if self.runner:
            try:
                await self.runner.cleanup()
                logger.info("Health server stopped")
            except Exception as e:
                logger.exception(f"Error stopping health server: {e}")
