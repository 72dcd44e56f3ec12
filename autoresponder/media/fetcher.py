"""Bounded, type-checked HTTP retrieval of auto-respond media.

A fetch walks the candidate URLs (original, then canonical form) and returns the
first body that is image/video, within the size bounds and not an error page.
Rejections are results, not exceptions; only transport errors are retried.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import unquote, urlsplit

import httpx

from .retry import DEFAULT_RETRY_POLICY, RetryPolicy, retry_async
from .urls import candidate_urls

logger = logging.getLogger(__name__)

DEFAULT_MAX_MEDIA_BYTES = 15 * 1024 * 1024
MIN_VALID_MEDIA_BYTES = 64
DEFAULT_TIMEOUT = 12.0
FALLBACK_BASENAME = "autorespond-media"

MEDIA_EXTENSIONS = frozenset(
    {"png", "jpg", "jpeg", "webp", "gif", "bmp", "svg", "mp4", "mov", "webm", "avi", "mkv"}
)
GENERIC_CONTENT_TYPES = frozenset(
    {"", "application/octet-stream", "binary/octet-stream", "application/unknown"}
)

# Failure reasons, also used in error-log suppression keys
REASON_EMPTY_URL = "empty_url"
REASON_INVALID_URL = "invalid_url"
REASON_TRANSPORT = "transport_error"
REASON_HTTP_STATUS = "http_status"
REASON_UNSUPPORTED_TYPE = "unsupported_type"
REASON_TOO_LARGE = "too_large"
REASON_TOO_SMALL = "too_small"


@dataclass
class FetchResult:
    """Outcome of a media fetch."""

    ok: bool
    data: bytes = b""
    filename: str = ""
    content_type: str = ""
    source_url: str = ""
    reason: str | None = None

    @classmethod
    def rejected(cls, reason: str, source_url: str = "") -> "FetchResult":
        return cls(ok=False, reason=reason, source_url=source_url)


def _media_type(content_type: str) -> str:
    return str(content_type or "").split(";")[0].strip().lower()


def _url_extension(url: str) -> str:
    try:
        path = urlsplit(url).path
    except ValueError:
        return ""
    return PurePosixPath(unquote(path)).suffix.lstrip(".").lower()


def is_supported_media(content_type: str, url: str) -> bool:
    """image/* or video/*; a missing or generic type falls back to the URL extension."""
    media_type = _media_type(content_type)
    if media_type.startswith(("image/", "video/")):
        return True
    if media_type in GENERIC_CONTENT_TYPES:
        return _url_extension(url) in MEDIA_EXTENSIONS
    return False


def build_attachment_name(url: str, content_type: str = "") -> str:
    media_type = _media_type(content_type)
    ext_from_type = media_type.split("/", 1)[1].split("+")[0] if "/" in media_type else ""

    try:
        raw_name = PurePosixPath(unquote(urlsplit(url).path)).name.strip()
    except ValueError:
        raw_name = ""

    if raw_name:
        if PurePosixPath(raw_name).suffix:
            return raw_name[:120]
        if ext_from_type:
            return f"{raw_name[:90]}.{ext_from_type}"
        return raw_name[:120]
    return f"{FALLBACK_BASENAME}.{ext_from_type or 'bin'}"


def _declared_length(headers: httpx.Headers) -> int:
    try:
        return int(headers.get("content-length") or 0)
    except ValueError:
        return 0


class MediaFetcher:
    """Fetches candidate media URLs over a shared httpx client."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        max_bytes: int = DEFAULT_MAX_MEDIA_BYTES,
        min_bytes: int = MIN_VALID_MEDIA_BYTES,
        timeout: float = DEFAULT_TIMEOUT,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        self.max_bytes = max_bytes
        self.min_bytes = min_bytes
        self.retry_policy = retry_policy
        self._owns_client = client is None
        self._http = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client:
            await self._http.aclose()

    async def fetch(self, url: str) -> FetchResult:
        """Return the first acceptable candidate body, or a rejected result."""
        try:
            candidates = candidate_urls(url)
        except ValueError as e:
            logger.debug(f"Unparsable media URL {str(url)[:120]!r}: {e}")
            return FetchResult.rejected(REASON_INVALID_URL, str(url or ""))
        if not candidates:
            return FetchResult.rejected(REASON_EMPTY_URL)

        last = FetchResult.rejected(REASON_TRANSPORT, candidates[0])
        for candidate in candidates:
            try:
                result = await retry_async(
                    functools.partial(self._download, candidate),
                    self.retry_policy,
                    label=candidate[:120],
                )
            except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
                logger.debug(f"Skipping media candidate {candidate[:120]}: {e}")
                result = FetchResult.rejected(REASON_INVALID_URL, candidate)
            except Exception as e:
                logger.debug(f"Transport failure for {candidate[:120]}: {type(e).__name__}: {e}")
                result = FetchResult.rejected(REASON_TRANSPORT, candidate)

            if result.ok:
                return result
            last = result
        return last

    async def _download(self, url: str) -> FetchResult:
        async with self._http.stream("GET", url, follow_redirects=True) as response:
            if not response.is_success:
                return FetchResult.rejected(REASON_HTTP_STATUS, url)

            content_type = response.headers.get("content-type", "")
            if not is_supported_media(content_type, url):
                return FetchResult.rejected(REASON_UNSUPPORTED_TYPE, url)

            declared = _declared_length(response.headers)
            if declared and declared > self.max_bytes:
                return FetchResult.rejected(REASON_TOO_LARGE, url)

            buffer = bytearray()
            async for chunk in response.aiter_bytes():
                buffer.extend(chunk)
                if len(buffer) > self.max_bytes:
                    return FetchResult.rejected(REASON_TOO_LARGE, url)

        if len(buffer) < self.min_bytes:
            return FetchResult.rejected(REASON_TOO_SMALL, url)

        return FetchResult(
            ok=True,
            data=bytes(buffer),
            filename=build_attachment_name(url, content_type),
            content_type=_media_type(content_type),
            source_url=url,
        )
