"""Durable per-rule media storage.

Files live under ``{root}/autorespond-media/{guild}/`` and are named
``rule-{rule_id}-{unix_ms}-{sha1[:12]}{ext}``. Every store call writes a new
file, so deleting a rule deletes exactly its own files.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import posixpath
import re
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

MEDIA_DIR = "autorespond-media"
MAX_RELATIVE_PATH = 500
MAX_NAME_LENGTH = 120
MAX_EXT_LENGTH = 10
DEFAULT_MEDIA_NAME = "autorespond-media.bin"

_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9._()\- ]+")
_UNSAFE_GUILD_RE = re.compile(r"[^0-9a-zA-Z_-]")


@dataclass(frozen=True)
class StoredMedia:
    path: str
    name: str


@dataclass
class CleanupStats:
    """Counters for best-effort deletes."""

    deleted: int = 0
    missing: int = 0
    failed: int = 0


def sanitize_path(value: str) -> str:
    """Return a safe relative path under ``MEDIA_DIR`` or ``""`` if invalid."""
    raw = str(value or "").strip().replace("\\", "/")
    if not raw:
        return ""
    if ".." in raw.split("/"):
        return ""
    normalized = posixpath.normpath(raw).lstrip("/")
    if not normalized.startswith(f"{MEDIA_DIR}/") or ".." in normalized:
        return ""
    if len(normalized) > MAX_RELATIVE_PATH:
        return ""
    return normalized


def sanitize_name(value: str) -> str:
    raw = str(value or "").strip().replace("\\", "/")
    if not raw:
        return ""
    base = posixpath.basename(raw)
    return _UNSAFE_NAME_RE.sub("_", base).strip()[:MAX_NAME_LENGTH]


def preferred_name(original_name: str, fallback: str = DEFAULT_MEDIA_NAME) -> str:
    return sanitize_name(original_name) or fallback


def build_stored_filename(rule_id: int, original_name: str, data: bytes, now_ms: int | None = None) -> str:
    ext = posixpath.splitext(preferred_name(original_name))[1].lower()[:MAX_EXT_LENGTH] or ".bin"
    digest = hashlib.sha1(data).hexdigest()[:12]
    stamp = int(time.time() * 1000) if now_ms is None else now_ms
    try:
        clean_rule_id = int(rule_id)
    except (TypeError, ValueError):
        clean_rule_id = 0
    return f"rule-{clean_rule_id}-{stamp}-{digest}{ext}"


def _safe_guild_dir(guild_id: int | str) -> str:
    return _UNSAFE_GUILD_RE.sub("", str(guild_id))[:64] or "guild"


class MediaStore:
    """Content-addressed file store scoped by guild and rule."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self.cleanup = CleanupStats()

    def absolute_path(self, relative_path: str) -> Path | None:
        safe = sanitize_path(relative_path)
        if not safe:
            return None
        return self.root / safe

    async def store(
        self,
        guild_id: int | str,
        rule_id: int,
        data: bytes,
        original_name: str = "",
    ) -> StoredMedia | None:
        """Write ``data`` as a new file for the rule. Returns ``None`` on failure."""
        if not guild_id or not rule_id or not data:
            return None

        filename = build_stored_filename(rule_id, original_name, data)
        relative_path = posixpath.join(MEDIA_DIR, _safe_guild_dir(guild_id), filename)
        target = self.root / relative_path

        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as e:
            logger.error(f"Failed to store media for rule {rule_id} in guild {guild_id}: {e}")
            return None

        logger.debug(f"Stored {len(data)} bytes at {relative_path}")
        return StoredMedia(path=relative_path, name=preferred_name(original_name, filename))

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def load(self, relative_path: str) -> bytes | None:
        target = self.absolute_path(relative_path)
        if target is None:
            return None
        try:
            data = await asyncio.to_thread(target.read_bytes)
        except OSError:
            return None
        return data or None

    def delete(self, relative_path: str) -> bool:
        """Remove a stored file. Never raises; failures are logged and counted."""
        target = self.absolute_path(relative_path)
        if target is None:
            return False
        try:
            target.unlink()
        except FileNotFoundError:
            self.cleanup.missing += 1
            return False
        except OSError as e:
            self.cleanup.failed += 1
            logger.warning(f"Failed to delete stored media {relative_path}: {e}")
            return False
        self.cleanup.deleted += 1
        return True
