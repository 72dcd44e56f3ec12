"""Repository for auto-respond rules.

Rule persistence belongs to the host bot; ``RuleStore`` is the contract the
media pipeline relies on. ``InMemoryRuleRepository`` keeps rules for the
process lifetime and enforces the same trimming and caps a durable store must.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Protocol

from autoresponder.shared.models.rule import GuildConfig, MatchMode, Rule

logger = logging.getLogger(__name__)

MAX_TRIGGER_LENGTH = 300
MAX_REPLY_LENGTH = 2000
MAX_MEDIA_URL_LENGTH = 1000
MAX_STICKER_ID_LENGTH = 64

UPDATABLE_FIELDS = frozenset(
    {
        "trigger",
        "reply",
        "media_url",
        "sticker_id",
        "match",
        "case_sensitive",
        "channel_id",
        "media_stored_path",
        "media_stored_name",
    }
)


class RuleStore(Protocol):
    async def get_guild_config(self, guild_id: int) -> GuildConfig: ...

    async def set_enabled(self, guild_id: int, enabled: bool) -> bool: ...

    async def list_rules(self, guild_id: int) -> list[Rule]: ...

    async def get_rule(self, guild_id: int, rule_id: int) -> Rule | None: ...

    async def add_rule(self, guild_id: int, **fields: Any) -> Rule: ...

    async def update_rule(self, guild_id: int, rule_id: int, **updates: Any) -> Rule | None: ...

    async def remove_rule(self, guild_id: int, rule_id: int) -> bool: ...


def _clean_field(name: str, value: Any) -> Any:
    if name == "trigger":
        return str(value or "")[:MAX_TRIGGER_LENGTH]
    if name == "reply":
        return str(value or "")[:MAX_REPLY_LENGTH]
    if name == "media_url":
        return str(value or "").strip()[:MAX_MEDIA_URL_LENGTH]
    if name == "sticker_id":
        return str(value or "").strip()[:MAX_STICKER_ID_LENGTH]
    if name == "match":
        return MatchMode.parse(value)
    if name == "case_sensitive":
        return bool(value)
    if name == "channel_id":
        return int(value) if value else None
    return str(value or "")


class InMemoryRuleRepository:
    """Process-lifetime rule store keyed by guild id."""

    def __init__(self) -> None:
        self._guilds: dict[int, GuildConfig] = {}
        self._lock = asyncio.Lock()

    def _config(self, guild_id: int) -> GuildConfig:
        cfg = self._guilds.get(guild_id)
        if cfg is None:
            cfg = self._guilds[guild_id] = GuildConfig()
        return cfg

    async def get_guild_config(self, guild_id: int) -> GuildConfig:
        """Return a snapshot; callers may iterate it while rules are edited."""
        cfg = self._config(guild_id)
        return GuildConfig(enabled=cfg.enabled, next_id=cfg.next_id, rules=list(cfg.rules))

    async def set_enabled(self, guild_id: int, enabled: bool) -> bool:
        cfg = self._config(guild_id)
        cfg.enabled = bool(enabled)
        return cfg.enabled

    async def list_rules(self, guild_id: int) -> list[Rule]:
        return list(self._config(guild_id).rules)

    async def get_rule(self, guild_id: int, rule_id: int) -> Rule | None:
        for rule in self._config(guild_id).rules:
            if rule.id == int(rule_id):
                return rule
        return None

    async def add_rule(self, guild_id: int, **fields: Any) -> Rule:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown rule fields: {', '.join(sorted(unknown))}")

        async with self._lock:
            cfg = self._config(guild_id)
            rule = Rule(id=cfg.next_id, trigger="", created_at=time.time())
            cfg.next_id += 1
            for name, value in fields.items():
                setattr(rule, name, _clean_field(name, value))
            cfg.rules.append(rule)

        logger.debug(f"Added rule #{rule.id} in guild {guild_id}")
        return rule

    async def update_rule(self, guild_id: int, rule_id: int, **updates: Any) -> Rule | None:
        """Apply ``updates``; changing ``media_url`` clears the stored media fields."""
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown rule fields: {', '.join(sorted(unknown))}")

        async with self._lock:
            rule = await self.get_rule(guild_id, rule_id)
            if rule is None:
                return None

            cleaned = {name: _clean_field(name, value) for name, value in updates.items()}
            if "media_url" in cleaned and cleaned["media_url"] != rule.media_url:
                cleaned.setdefault("media_stored_path", "")
                cleaned.setdefault("media_stored_name", "")

            updated = replace(rule, **cleaned)
            rules = self._config(guild_id).rules
            rules[rules.index(rule)] = updated
            return updated

    async def remove_rule(self, guild_id: int, rule_id: int) -> bool:
        async with self._lock:
            cfg = self._config(guild_id)
            before = len(cfg.rules)
            cfg.rules = [r for r in cfg.rules if r.id != int(rule_id)]
            return len(cfg.rules) != before
