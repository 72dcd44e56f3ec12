"""Auto-respond rule model."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class MatchMode(str, Enum):
    CONTAINS = "contains"
    EQUALS = "equals"
    STARTS_WITH = "starts_with"
    REGEX = "regex"

    @classmethod
    def parse(cls, value: object) -> "MatchMode":
        """Unknown or empty values fall back to ``contains``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.CONTAINS


@dataclass
class Rule:
    id: int
    trigger: str
    match: MatchMode = MatchMode.CONTAINS
    case_sensitive: bool = False
    channel_id: int | None = None
    reply: str = ""
    media_url: str = ""
    sticker_id: str = ""
    media_stored_path: str = ""
    media_stored_name: str = ""
    created_at: float = field(default_factory=time.time)

    @property
    def has_media(self) -> bool:
        return bool(self.media_url.strip() or self.media_stored_path.strip())

    @property
    def is_actionable(self) -> bool:
        return bool(self.reply.strip() or self.sticker_id.strip() or self.has_media)


@dataclass
class GuildConfig:
    enabled: bool = False
    next_id: int = 1
    rules: list[Rule] = field(default_factory=list)
