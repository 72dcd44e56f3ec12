"""
Auto-respond Discord Bot
discord.py 2.x client that loads the auto-respond cog
"""

import asyncio
import logging

import discord
from discord.ext import commands
from dotenv import load_dotenv

from autoresponder.core import BOT_VERSION, HealthCheckServer, get_settings, setup_logging
from autoresponder.shared.repositories import InMemoryRuleRepository, RuleStore

logger = logging.getLogger(__name__)


class AutoResponderClient(commands.Bot):
    """Discord client hosting the auto-respond pipeline"""

    def __init__(self, rule_store: RuleStore | None = None):
        intents = discord.Intents.default()
        intents.message_content = True  # needed to read trigger text

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            help_command=None,
        )

        self.settings = get_settings()
        self.rule_store: RuleStore = rule_store or InMemoryRuleRepository()
        self.initial_extensions = ["autoresponder.cogs.autorespond"]
        self.health_server: HealthCheckServer | None = None
        if self.settings.enable_health_server:
            self.health_server = HealthCheckServer(self, port=self.settings.health_port)

    async def setup_hook(self):
        """Load cogs and start the health server"""
        loaded = []
        failed = []

        for extension in self.initial_extensions:
            try:
                await self.load_extension(extension)
                loaded.append(extension.split(".")[-1])
            except Exception as e:
                failed.append(f"{extension.split('.')[-1]} ({e})")

        if loaded:
            logger.info(f"[green]Loaded cogs:[/green] {', '.join(loaded)}")
        if failed:
            logger.error(f"[red]Failed to load:[/red] {', '.join(failed)}")

        if self.health_server:
            await self.health_server.start()

    async def on_ready(self):
        logger.info(f"[bold green]Bot ready:[/bold green] {self.user} [dim](v{BOT_VERSION})[/dim]")
        logger.info(
            f"[cyan]Connected:[/cyan] {len(self.guilds)} guilds | discord.py {discord.__version__}"
        )

    async def close(self):
        if self.health_server:
            await self.health_server.stop()
        await super().close()


async def main():
    """Bot entry coroutine"""
    settings = get_settings()
    if not settings.discord_bot_token:
        logger.error("[bold red]DISCORD_BOT_TOKEN is not set[/bold red]")
        logger.error("Set it in .env: DISCORD_BOT_TOKEN=your_token_here")
        return

    async with AutoResponderClient() as bot:
        try:
            await bot.start(settings.discord_bot_token)
        except (KeyboardInterrupt, asyncio.CancelledError):
            if not bot.is_closed():
                await bot.close()


def run():
    """Console entry point"""
    load_dotenv(encoding="utf-8")
    settings = get_settings()
    setup_logging(settings.log_level, library_level=settings.library_log_level)
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("[yellow]Bot stopped manually[/yellow]")
    except Exception as e:
        logger.error(f"[bold red]Bot crashed:[/bold red] {e}", exc_info=e)


if __name__ == "__main__":
    run()
