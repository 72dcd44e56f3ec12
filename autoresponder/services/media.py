"""Rule media lifecycle: resolve for sending, persist on first fetch, purge when superseded."""

from __future__ import annotations

import asyncio
import logging
import posixpath
from dataclasses import dataclass

from autoresponder.media.fetcher import REASON_EMPTY_URL, MediaFetcher
from autoresponder.media.store import MediaStore, StoredMedia, sanitize_name, sanitize_path
from autoresponder.shared.cache import HybridMediaCache
from autoresponder.shared.models.rule import Rule
from autoresponder.shared.repositories.rule import RuleStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaAttachment:
    data: bytes
    filename: str


@dataclass
class MediaResolution:
    attachment: MediaAttachment | None = None
    reason: str | None = None
    from_store: bool = False

    @property
    def ok(self) -> bool:
        return self.attachment is not None


class RuleMediaService:
    """Ties the fetcher, hybrid cache and durable store to the rule store."""

    def __init__(
        self,
        store: MediaStore,
        cache: HybridMediaCache,
        fetcher: MediaFetcher,
        rules: RuleStore,
    ) -> None:
        self.store = store
        self.cache = cache
        self.fetcher = fetcher
        self.rules = rules
        self._locks: dict[tuple[int, int], asyncio.Lock] = {}

    # --- lock management (bounded) ---

    def _get_lock(self, key: tuple[int, int]) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
            if len(self._locks) > 1024:
                for k in [k for k, lock in self._locks.items() if not lock.locked() and k != key]:
                    del self._locks[k]
        return self._locks[key]

    # --- sending path ---

    async def load_stored(self, rule: Rule) -> MediaAttachment | None:
        path = sanitize_path(rule.media_stored_path)
        if not path:
            return None
        data = await self.cache.get(path)
        if data is None:
            return None
        name = sanitize_name(rule.media_stored_name) or posixpath.basename(path)
        return MediaAttachment(data=data, filename=name)

    async def resolve(self, guild_id: int, rule: Rule) -> MediaResolution:
        """Stored copy through the cache first, then a live fetch of ``media_url``."""
        stored = await self.load_stored(rule)
        if stored is not None:
            return MediaResolution(attachment=stored, from_store=True)

        if not rule.media_url.strip():
            if rule.media_stored_path:
                await self._drop_missing_stored(guild_id, rule)
            return MediaResolution(reason=REASON_EMPTY_URL)

        async with self._get_lock((guild_id, rule.id)):
            # Another message may have stored it while we waited
            current = await self.rules.get_rule(guild_id, rule.id) or rule
            if current.media_stored_path != rule.media_stored_path:
                stored = await self.load_stored(current)
                if stored is not None:
                    return MediaResolution(attachment=stored, from_store=True)

            result = await self.fetcher.fetch(current.media_url or rule.media_url)
            if not result.ok:
                if current.media_stored_path:
                    await self._clear_stored(guild_id, current)
                return MediaResolution(reason=result.reason)

            attachment = MediaAttachment(result.data, result.filename)
            saved = await self._replace_stored(guild_id, current, result.data, result.filename)
            if saved is None:
                logger.debug(f"Sending rule #{rule.id} media unpersisted (guild {guild_id})")
            return MediaResolution(attachment=attachment)

    # --- authoring path ---

    async def attach_media(
        self,
        guild_id: int,
        rule_id: int,
        *,
        source_url: str | None = None,
        data: bytes | None = None,
        filename: str = "",
    ) -> StoredMedia | None:
        """Persist media for a rule from raw bytes or by fetching ``source_url``."""
        rule = await self.rules.get_rule(guild_id, rule_id)
        if rule is None:
            return None

        if data is None:
            url = source_url if source_url is not None else rule.media_url
            result = await self.fetcher.fetch(url)
            if not result.ok:
                logger.info(f"Could not fetch media for rule #{rule_id}: {result.reason}")
                return None
            data, filename = result.data, filename or result.filename

        async with self._get_lock((guild_id, rule_id)):
            rule = await self.rules.get_rule(guild_id, rule_id)
            if rule is None:
                return None
            return await self._replace_stored(guild_id, rule, data, filename)

    async def refresh_for_update(self, guild_id: int, rule_id: int, new_url: str) -> Rule | None:
        """Point a rule at ``new_url``, re-fetching only when needed.

        A failed re-fetch leaves the rule with the new URL and no stored copy.
        """
        rule = await self.rules.get_rule(guild_id, rule_id)
        if rule is None:
            return None

        new_url = str(new_url or "").strip()
        if new_url == rule.media_url and rule.media_stored_path:
            return rule

        async with self._get_lock((guild_id, rule_id)):
            rule = await self.rules.get_rule(guild_id, rule_id)
            if rule is None:
                return None
            old_path = rule.media_stored_path
            if not new_url:
                updated = await self.rules.update_rule(
                    guild_id, rule_id, media_url="", media_stored_path="", media_stored_name=""
                )
                self.purge(old_path)
                return updated

            result = await self.fetcher.fetch(new_url)
            saved = None
            if result.ok:
                saved = await self.store.store(guild_id, rule_id, result.data, result.filename)

            if saved is None:
                updated = await self.rules.update_rule(
                    guild_id, rule_id, media_url=new_url, media_stored_path="", media_stored_name=""
                )
                self.purge(old_path)
                return updated

            updated = await self.rules.update_rule(
                guild_id,
                rule_id,
                media_url=new_url,
                media_stored_path=saved.path,
                media_stored_name=saved.name,
            )
            if updated is None:
                self.purge(saved.path)
                return None
            self.cache.put(saved.path, result.data)
            if old_path and old_path != saved.path:
                self.purge(old_path)
            return updated

    async def remove_rule(self, guild_id: int, rule_id: int) -> bool:
        rule = await self.rules.get_rule(guild_id, rule_id)
        removed = await self.rules.remove_rule(guild_id, rule_id)
        if removed and rule is not None:
            self.purge(rule.media_stored_path)
            self._locks.pop((guild_id, rule_id), None)
        return removed

    def purge(self, path: str) -> bool:
        """Synchronously drop a stored file from memory and disk."""
        if not path:
            return False
        self.cache.invalidate(path)
        return self.store.delete(path)

    # --- internals ---

    async def _replace_stored(
        self, guild_id: int, rule: Rule, data: bytes, filename: str
    ) -> StoredMedia | None:
        saved = await self.store.store(guild_id, rule.id, data, filename)
        if saved is None:
            return None

        updated = await self.rules.update_rule(
            guild_id, rule.id, media_stored_path=saved.path, media_stored_name=saved.name
        )
        if updated is None:
            # Rule removed while we were writing
            self.purge(saved.path)
            return None

        self.cache.put(saved.path, data)
        current_old = rule.media_stored_path
        if current_old and current_old != saved.path:
            self.purge(current_old)
        return saved

    async def _drop_missing_stored(self, guild_id: int, rule: Rule) -> None:
        """Forget a stored path whose file is gone and that has no URL to refetch."""
        async with self._get_lock((guild_id, rule.id)):
            current = await self.rules.get_rule(guild_id, rule.id)
            if current is None or current.media_stored_path != rule.media_stored_path:
                return
            logger.info(f"Stored media for rule #{rule.id} is missing, clearing it (guild {guild_id})")
            await self._clear_stored(guild_id, current)

    async def _clear_stored(self, guild_id: int, rule: Rule) -> None:
        await self.rules.update_rule(guild_id, rule.id, media_stored_path="", media_stored_name="")
        self.purge(rule.media_stored_path)
