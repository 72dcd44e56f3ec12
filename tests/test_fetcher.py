from __future__ import annotations

import asyncio
from collections.abc import Callable

import httpx

from autoresponder.media.fetcher import (
    REASON_HTTP_STATUS,
    REASON_INVALID_URL,
    REASON_TOO_LARGE,
    REASON_TOO_SMALL,
    REASON_TRANSPORT,
    REASON_UNSUPPORTED_TYPE,
    MediaFetcher,
    build_attachment_name,
    is_supported_media,
)
from autoresponder.media.retry import RetryPolicy
from conftest import GIF_BYTES, PNG_BYTES

NO_WAIT = RetryPolicy(retries=2, delay=0.0)


def _fetcher(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> MediaFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    return MediaFetcher(client, retry_policy=NO_WAIT, **kwargs)


def test_fetch_returns_image_and_filename() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "image/png"}, content=PNG_BYTES)

    result = asyncio.run(_fetcher(handler).fetch("https://example.com/img/cat.png"))

    assert result.ok is True
    assert result.data == PNG_BYTES
    assert result.filename == "cat.png"
    assert result.content_type == "image/png"


def test_fetch_follows_redirects() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old":
            return httpx.Response(302, headers={"location": "https://example.com/new.gif"})
        return httpx.Response(200, headers={"content-type": "image/gif"}, content=GIF_BYTES)

    result = asyncio.run(_fetcher(handler).fetch("https://example.com/old"))

    assert result.ok is True
    assert result.data == GIF_BYTES


def test_fetch_rejects_wrong_content_type() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/html"}, content=b"<html>" * 50)

    result = asyncio.run(_fetcher(handler).fetch("https://example.com/a.png"))

    assert result.ok is False
    assert result.reason == REASON_UNSUPPORTED_TYPE


def test_fetch_generic_type_falls_back_to_extension() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, headers={"content-type": "application/octet-stream"}, content=PNG_BYTES
        )

    fetcher = _fetcher(handler)
    assert asyncio.run(fetcher.fetch("https://example.com/a.webm")).ok is True
    assert asyncio.run(fetcher.fetch("https://example.com/download")).reason == REASON_UNSUPPORTED_TYPE


def test_fetch_rejects_declared_oversize_video() -> None:
    big = b"\x00" * (20 * 1024 * 1024)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "video/mp4"}, content=big)

    result = asyncio.run(_fetcher(handler).fetch("https://example.com/huge.mp4"))

    assert result.ok is False
    assert result.reason == REASON_TOO_LARGE
    assert result.data == b""


def test_fetch_rejects_undeclared_oversize_body() -> None:
    async def body():
        for _ in range(4):
            yield b"\x01" * 512

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "image/gif"}, content=body())

    result = asyncio.run(_fetcher(handler, max_bytes=1024).fetch("https://example.com/a.gif"))

    assert result.reason == REASON_TOO_LARGE


def test_fetch_rejects_tiny_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "image/png"}, content=b"tiny")

    result = asyncio.run(_fetcher(handler).fetch("https://example.com/a.png"))

    assert result.reason == REASON_TOO_SMALL


def test_fetch_size_bounds_hold() -> None:
    sizes = [63, 64, 2048, 2049]

    def handler(request: httpx.Request) -> httpx.Response:
        size = int(request.url.params["n"])
        return httpx.Response(200, headers={"content-type": "image/png"}, content=b"\x02" * size)

    fetcher = _fetcher(handler, max_bytes=2048)
    for size in sizes:
        result = asyncio.run(fetcher.fetch(f"https://example.com/a.png?n={size}"))
        if result.ok:
            assert 64 <= len(result.data) <= 2048
        else:
            assert size in (63, 2049)


def test_fetch_falls_back_to_normalized_candidate() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        if request.url.host == "media.discordapp.net":
            return httpx.Response(404)
        return httpx.Response(200, headers={"content-type": "image/png"}, content=PNG_BYTES)

    url = "https://media.discordapp.net/attachments/1/2/a.png?ex=1&is=2&hm=3"
    result = asyncio.run(_fetcher(handler).fetch(url))

    assert result.ok is True
    assert result.source_url == "https://cdn.discordapp.com/attachments/1/2/a.png"
    assert len(seen) == 2


def test_fetch_reports_last_failure_reason() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    result = asyncio.run(_fetcher(handler).fetch("https://example.com/a.png"))

    assert result.ok is False
    assert result.reason == REASON_HTTP_STATUS


def test_fetch_retries_transient_transport_errors() -> None:
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) < 3:
            raise httpx.ConnectTimeout("connect timeout", request=request)
        return httpx.Response(200, headers={"content-type": "image/png"}, content=PNG_BYTES)

    result = asyncio.run(_fetcher(handler).fetch("https://example.com/a.png"))

    assert result.ok is True
    assert len(attempts) == 3


def test_fetch_transport_failure_after_retries() -> None:
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        raise httpx.ConnectError("connection reset by peer", request=request)

    result = asyncio.run(_fetcher(handler).fetch("https://example.com/a.png"))

    assert result.ok is False
    assert result.reason == REASON_TRANSPORT
    assert len(attempts) == 3


def test_rejected_response_is_not_retried() -> None:
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        return httpx.Response(200, headers={"content-type": "text/plain"}, content=b"x" * 100)

    asyncio.run(_fetcher(handler).fetch("https://example.com/a.png"))

    assert len(attempts) == 1


def test_supported_media_rules() -> None:
    assert is_supported_media("image/webp", "https://x.test/a")
    assert is_supported_media("video/mp4; codecs=avc1", "https://x.test/a")
    assert is_supported_media("", "https://x.test/a.MKV")
    assert not is_supported_media("", "https://x.test/a.exe")
    assert not is_supported_media("application/json", "https://x.test/a.png")


def test_attachment_name_inference() -> None:
    assert build_attachment_name("https://x.test/media/clip", "video/mp4") == "clip.mp4"
    assert build_attachment_name("https://x.test/a%20b.png", "image/png") == "a b.png"
    assert build_attachment_name("https://x.test/", "image/svg+xml") == "autorespond-media.svg"
    assert build_attachment_name("https://x.test/", "") == "autorespond-media.bin"


def test_fetch_rejects_url_with_bad_port() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, headers={"content-type": "image/png"}, content=PNG_BYTES)

    result = asyncio.run(_fetcher(handler).fetch("https://media.discordapp.net:abc/attachments/1/2/a.png"))

    assert result.ok is False
    assert result.reason == REASON_INVALID_URL
    assert calls == []
