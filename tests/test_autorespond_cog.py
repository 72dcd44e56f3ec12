from __future__ import annotations

import asyncio
import json
from pathlib import Path
from types import SimpleNamespace

import discord
import pytest
from discord.ext import commands
from pydantic import ValidationError

from autoresponder.cogs.autorespond import AutoRespond, DiscordMessageSender, build_dispatcher
from autoresponder.core.config import AutoRespondSettings
from autoresponder.core.health_server import HealthCheckServer
from autoresponder.services.dispatcher import ResponsePayload, SendError
from autoresponder.services.media import MediaAttachment
from autoresponder.shared.repositories.rule import InMemoryRuleRepository
from conftest import PNG_BYTES


class FakeMessage:
    def __init__(self, content: str = "gm", *, bot: bool = False, guild_id: int | None = 1, error=None):
        self.content = content
        self.author = SimpleNamespace(bot=bot)
        self.guild = SimpleNamespace(id=guild_id) if guild_id is not None else None
        self.channel = SimpleNamespace(id=2)
        self.error = error
        self.replies: list[dict] = []

    async def reply(self, **kwargs):
        self.replies.append(kwargs)
        if self.error is not None:
            raise self.error


def _http_error(cls, status: int, code: int, text: str):
    response = SimpleNamespace(status=status, reason=text)
    return cls(response, {"code": code, "message": text})


def _settings(tmp_path: Path) -> AutoRespondSettings:
    return AutoRespondSettings(data_dir=tmp_path, enable_health_server=False)


def _cog(tmp_path: Path) -> tuple[AutoRespond, InMemoryRuleRepository]:
    bot = commands.Bot(command_prefix="!", intents=discord.Intents.none())
    rules = InMemoryRuleRepository()
    cog = AutoRespond(bot, rule_store=rules, dispatcher=build_dispatcher(_settings(tmp_path), rules))
    return cog, rules


def test_sender_builds_reply_with_files_and_stickers() -> None:
    message = FakeMessage()
    payload = ResponsePayload(
        content="hello",
        files=[MediaAttachment(PNG_BYTES, "cat.png")],
        stickers=["123"],
    )

    asyncio.run(DiscordMessageSender(message).send(payload))

    sent = message.replies[0]
    assert sent["content"] == "hello"
    assert sent["mention_author"] is False
    assert sent["files"][0].filename == "cat.png"
    assert sent["stickers"][0].id == 123


@pytest.mark.parametrize("code", [10060, 50081])
def test_sender_maps_sticker_errors(code: int) -> None:
    message = FakeMessage(error=_http_error(discord.HTTPException, 400, code, "Invalid sticker"))

    with pytest.raises(SendError) as excinfo:
        asyncio.run(DiscordMessageSender(message).send(ResponsePayload(stickers=["1"])))

    assert excinfo.value.kind == SendError.INVALID_STICKER


def test_sender_maps_forbidden_and_other_errors() -> None:
    forbidden = FakeMessage(error=_http_error(discord.Forbidden, 403, 50013, "Missing Permissions"))
    server_error = FakeMessage(error=_http_error(discord.HTTPException, 500, 0, "Internal Server Error"))

    with pytest.raises(SendError) as denied:
        asyncio.run(DiscordMessageSender(forbidden).send(ResponsePayload(content="x")))
    with pytest.raises(SendError) as other:
        asyncio.run(DiscordMessageSender(server_error).send(ResponsePayload(content="x")))

    assert denied.value.kind == SendError.FORBIDDEN
    assert other.value.kind == SendError.OTHER


def test_sender_rejects_malformed_sticker_id() -> None:
    message = FakeMessage()

    with pytest.raises(SendError) as excinfo:
        asyncio.run(DiscordMessageSender(message).send(ResponsePayload(content="x", stickers=["abc"])))

    assert excinfo.value.kind == SendError.INVALID_STICKER
    assert message.replies == []


def test_on_message_replies_to_matching_rule(tmp_path: Path) -> None:
    cog, rules = _cog(tmp_path)
    message = FakeMessage("gm friends")

    async def scenario():
        await rules.set_enabled(1, True)
        await rules.add_rule(1, trigger="gm", reply="good morning")
        await cog.on_message(message)

    asyncio.run(scenario())

    assert message.replies == [{"mention_author": False, "content": "good morning"}]


def test_on_message_ignores_bots_and_direct_messages(tmp_path: Path) -> None:
    cog, rules = _cog(tmp_path)
    from_bot = FakeMessage("gm", bot=True)
    direct = FakeMessage("gm", guild_id=None)

    async def scenario():
        await rules.set_enabled(1, True)
        await rules.add_rule(1, trigger="gm", reply="good morning")
        await cog.on_message(from_bot)
        await cog.on_message(direct)

    asyncio.run(scenario())

    assert from_bot.replies == []
    assert direct.replies == []


def test_status_endpoint_reports_pipeline_counters(tmp_path: Path) -> None:
    cog, _ = _cog(tmp_path)
    bot = SimpleNamespace(is_ready=lambda: False, guilds=[], get_cog=lambda name: cog)
    server = HealthCheckServer(bot, port=0)

    response = asyncio.run(server.handle_status(None))
    body = json.loads(response.text)

    assert body["connected_guilds"] == 0
    assert body["autorespond"]["media_cache_entries"] == 0
    assert body["autorespond"]["cleanup_failed"] == 0


def test_settings_validation(tmp_path: Path) -> None:
    assert AutoRespondSettings(data_dir=tmp_path, log_level="verbose").log_level == "INFO"
    assert AutoRespondSettings(data_dir=tmp_path, log_level="debug").log_level == "DEBUG"

    with pytest.raises(ValidationError):
        AutoRespondSettings(data_dir=tmp_path, media_max_bytes=0)
