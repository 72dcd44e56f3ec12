"""Builds and sends auto-respond replies for one incoming message.

Rules are handled one after another so cooldown state for a channel updates
in rule order. Failures stay scoped to the rule that caused them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from autoresponder.core.guards import CooldownGuard, ErrorLogGuard
from autoresponder.media.urls import is_gif_like_url
from autoresponder.services.matcher import match_rules
from autoresponder.services.media import MediaAttachment, RuleMediaService
from autoresponder.shared.models.rule import Rule
from autoresponder.shared.repositories.rule import RuleStore

logger = logging.getLogger(__name__)

MAX_REPLY_CHARS = 2000
LOGGED_URL_CHARS = 200

# Dispatch outcome statuses
SENT = "sent"
SENT_WITHOUT_STICKER = "sent_without_sticker"
COOLDOWN = "cooldown"
MEDIA_FAILED = "media_failed"
SEND_FAILED = "send_failed"
NOTHING_TO_SEND = "nothing_to_send"
ERROR = "error"


class AutoRespondError(Exception):
    """Base error for the auto-respond pipeline."""


class SendError(AutoRespondError):
    """Raised by a ``MessageSender`` when the messaging API rejects a reply."""

    INVALID_STICKER = "invalid_sticker"
    FORBIDDEN = "forbidden"
    OTHER = "other"

    def __init__(self, kind: str = OTHER, message: str = "") -> None:
        super().__init__(message or kind)
        self.kind = kind


@dataclass
class ResponsePayload:
    content: str | None = None
    files: list[MediaAttachment] = field(default_factory=list)
    stickers: list[str] = field(default_factory=list)

    def without_sticker(self) -> "ResponsePayload":
        return ResponsePayload(content=self.content, files=list(self.files))

    def is_empty(self) -> bool:
        return not (self.content or self.files or self.stickers)


class MessageSender(Protocol):
    async def send(self, payload: ResponsePayload) -> None: ...


@dataclass(frozen=True)
class MessageContext:
    guild_id: int
    channel_id: int
    content: str


@dataclass
class DispatchOutcome:
    rule_id: int
    status: str
    reason: str | None = None


class ResponseDispatcher:
    """Matches a message against its guild's rules and sends each reply."""

    def __init__(
        self,
        rules: RuleStore,
        media: RuleMediaService,
        media_cooldown: CooldownGuard | None = None,
        error_guard: ErrorLogGuard | None = None,
    ) -> None:
        self.rules = rules
        self.media = media
        self.media_cooldown = media_cooldown or CooldownGuard()
        self.error_guard = error_guard or ErrorLogGuard()

    async def dispatch(self, message: MessageContext, sender: MessageSender) -> list[DispatchOutcome]:
        if not message.content:
            return []

        try:
            cfg = await self.rules.get_guild_config(message.guild_id)
        except Exception as e:
            logger.warning(f"Rule lookup failed for guild {message.guild_id}: {type(e).__name__}: {e}")
            return []
        if not cfg.enabled or not cfg.rules:
            return []

        outcomes: list[DispatchOutcome] = []
        for rule in match_rules(cfg.rules, message.content, message.channel_id):
            try:
                outcomes.append(await self._respond(message, rule, sender))
            except Exception as e:
                logger.exception(f"Auto-respond rule #{rule.id} failed in guild {message.guild_id}: {e}")
                outcomes.append(DispatchOutcome(rule.id, ERROR, type(e).__name__))
        return outcomes

    async def _respond(self, message: MessageContext, rule: Rule, sender: MessageSender) -> DispatchOutcome:
        content = rule.reply[:MAX_REPLY_CHARS].strip()
        media_url = rule.media_url.strip()
        sticker_id = rule.sticker_id.strip()
        if not (content or rule.has_media or sticker_id):
            return DispatchOutcome(rule.id, NOTHING_TO_SEND)

        gif_source = media_url or rule.media_stored_name
        if rule.has_media and is_gif_like_url(gif_source):
            key = (message.guild_id, message.channel_id, rule.id)
            if not self.media_cooldown.allow(key):
                wait = self.media_cooldown.remaining(key)
                logger.debug(f"Rule #{rule.id} media on cooldown in channel {message.channel_id} ({wait:.1f}s left)")
                return DispatchOutcome(rule.id, COOLDOWN, f"{wait:.1f}s")

        files: list[MediaAttachment] = []
        if rule.has_media:
            resolution = await self.media.resolve(message.guild_id, rule)
            if resolution.ok and resolution.attachment is not None:
                files.append(resolution.attachment)
            else:
                self._report_media_failure(message, rule, resolution.reason or "unknown")
                if not content and not sticker_id:
                    return DispatchOutcome(rule.id, MEDIA_FAILED, resolution.reason)

        payload = ResponsePayload(
            content=content or None,
            files=files,
            stickers=[sticker_id] if sticker_id else [],
        )
        return await self._send_with_fallback(message, rule, payload, sender)

    async def _send_with_fallback(
        self,
        message: MessageContext,
        rule: Rule,
        payload: ResponsePayload,
        sender: MessageSender,
    ) -> DispatchOutcome:
        """Full payload, then without the sticker.

        A failure after dropping the sticker is final; media is never dropped.
        """
        try:
            await sender.send(payload)
            return DispatchOutcome(rule.id, SENT)
        except SendError as e:
            first_error = e

        if not payload.stickers or first_error.kind == SendError.FORBIDDEN:
            self._log_send_failure(message, rule, first_error)
            return DispatchOutcome(rule.id, SEND_FAILED, first_error.kind)

        fallback = payload.without_sticker()
        if fallback.is_empty():
            self._log_send_failure(message, rule, first_error)
            return DispatchOutcome(rule.id, SEND_FAILED, first_error.kind)

        logger.debug(f"Retrying rule #{rule.id} without sticker ({first_error.kind})")
        try:
            await sender.send(fallback)
        except SendError as e:
            self._log_send_failure(message, rule, e)
            return DispatchOutcome(rule.id, SEND_FAILED, e.kind)
        return DispatchOutcome(rule.id, SENT_WITHOUT_STICKER, first_error.kind)

    def _report_media_failure(self, message: MessageContext, rule: Rule, reason: str) -> None:
        url = (rule.media_url or rule.media_stored_path)[:LOGGED_URL_CHARS]
        key = (message.guild_id, message.channel_id, rule.id, reason, url)
        repeats = self.error_guard.suppressed(key)
        if not self.error_guard.should_log(key):
            return
        suffix = f" ({repeats} repeats suppressed)" if repeats else ""
        logger.warning(
            f"Auto-respond media unavailable | guild {message.guild_id} | "
            f"channel {message.channel_id} | rule #{rule.id} | {reason} | {url}{suffix}"
        )

    def _log_send_failure(self, message: MessageContext, rule: Rule, error: SendError) -> None:
        logger.warning(
            f"Auto-respond send failed | guild {message.guild_id} | "
            f"channel {message.channel_id} | rule #{rule.id} | {error.kind}: {error}"
        )
