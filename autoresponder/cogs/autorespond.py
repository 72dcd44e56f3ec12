"""
Auto-respond Cog
Replies to guild messages that match configured rules
"""

from __future__ import annotations

import io
import logging

import discord
from discord.ext import commands

from autoresponder.core.config import AutoRespondSettings, get_settings
from autoresponder.core.guards import CooldownGuard, ErrorLogGuard
from autoresponder.media.fetcher import MediaFetcher
from autoresponder.media.retry import RetryPolicy
from autoresponder.media.store import MediaStore
from autoresponder.services.dispatcher import (
    MessageContext,
    ResponseDispatcher,
    ResponsePayload,
    SendError,
)
from autoresponder.services.media import RuleMediaService
from autoresponder.shared.cache import HybridMediaCache
from autoresponder.shared.repositories.rule import InMemoryRuleRepository, RuleStore

logger = logging.getLogger(__name__)

# Discord JSON error codes for a sticker that cannot be sent
INVALID_STICKER_CODES = {10060, 50081}


class DiscordMessageSender:
    """Sends a ``ResponsePayload`` as a reply to ``message``."""

    def __init__(self, message: discord.Message):
        self.message = message

    async def send(self, payload: ResponsePayload) -> None:
        stickers: list[discord.Object] = []
        for sticker_id in payload.stickers:
            try:
                stickers.append(discord.Object(id=int(sticker_id)))
            except ValueError as e:
                raise SendError(SendError.INVALID_STICKER, f"bad sticker id {sticker_id!r}") from e

        kwargs: dict = {"mention_author": False}
        if payload.content:
            kwargs["content"] = payload.content
        if payload.files:
            kwargs["files"] = [
                discord.File(io.BytesIO(media.data), filename=media.filename)
                for media in payload.files
            ]
        if stickers:
            kwargs["stickers"] = stickers

        try:
            await self.message.reply(**kwargs)
        except discord.Forbidden as e:
            raise SendError(SendError.FORBIDDEN, str(e)) from e
        except discord.HTTPException as e:
            kind = SendError.INVALID_STICKER if e.code in INVALID_STICKER_CODES else SendError.OTHER
            raise SendError(kind, str(e)) from e


def build_dispatcher(
    settings: AutoRespondSettings,
    rule_store: RuleStore,
    fetcher: MediaFetcher | None = None,
) -> ResponseDispatcher:
    """Wire the media pipeline from settings."""
    store = MediaStore(settings.data_dir)
    cache = HybridMediaCache(
        store, ttl=settings.media_cache_ttl, capacity=settings.media_cache_capacity
    )
    fetcher = fetcher or MediaFetcher(
        max_bytes=settings.media_max_bytes,
        min_bytes=settings.media_min_bytes,
        timeout=settings.fetch_timeout,
        retry_policy=RetryPolicy(
            retries=settings.fetch_retries,
            delay=settings.fetch_retry_delay,
            backoff_factor=settings.fetch_backoff_factor,
        ),
    )
    media = RuleMediaService(store, cache, fetcher, rule_store)
    return ResponseDispatcher(
        rule_store,
        media,
        media_cooldown=CooldownGuard(window=settings.gif_cooldown),
        error_guard=ErrorLogGuard(
            window=settings.error_log_cooldown,
            prune_threshold=settings.error_log_prune_threshold,
        ),
    )


class AutoRespond(commands.Cog):
    """Rule-based auto replies with cached media"""

    def __init__(
        self,
        bot: commands.Bot,
        rule_store: RuleStore | None = None,
        dispatcher: ResponseDispatcher | None = None,
    ):
        self.bot = bot
        self.rule_store: RuleStore = rule_store or getattr(bot, "rule_store", None) or InMemoryRuleRepository()
        self.dispatcher = dispatcher or build_dispatcher(get_settings(), self.rule_store)

    @property
    def media(self) -> RuleMediaService:
        return self.dispatcher.media

    async def cog_unload(self) -> None:
        await self.media.fetcher.close()

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        """Check every guild message from a human against the guild's rules"""
        if message.author.bot or not message.guild or not message.content:
            return

        context = MessageContext(
            guild_id=message.guild.id,
            channel_id=message.channel.id,
            content=message.content,
        )
        outcomes = await self.dispatcher.dispatch(context, DiscordMessageSender(message))
        if outcomes:
            logger.debug(
                f"Auto-respond | guild: {message.guild.id} | channel: {message.channel.id} | "
                + ", ".join(f"#{o.rule_id}={o.status}" for o in outcomes)
            )

    def status(self) -> dict:
        """Counters for the health server"""
        media = self.media
        return {
            "media_cache_entries": len(media.cache),
            "media_cache_hits": media.cache.hits,
            "media_cache_misses": media.cache.misses,
            "gif_cooldown_keys": len(self.dispatcher.media_cooldown),
            "error_log_keys": len(self.dispatcher.error_guard),
            "suppressed_failures": self.dispatcher.error_guard.total_suppressed,
            "cleanup_deleted": media.store.cleanup.deleted,
            "cleanup_missing": media.store.cleanup.missing,
            "cleanup_failed": media.store.cleanup.failed,
        }


async def setup(bot: commands.Bot):
    """Load Cog"""
    await bot.add_cog(AutoRespond(bot))
