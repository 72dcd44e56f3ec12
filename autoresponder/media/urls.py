"""Media URL canonicalization.

First-party Discord CDN attachment links carry time-limited signature query
parameters (``ex``, ``is``, ``hm``). Two links to the same attachment fetched at
different times differ only in those parameters, so they are dropped here to
give one canonical key per attachment.
"""

from __future__ import annotations

import re
from typing import NamedTuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

CANONICAL_CDN_HOST = "cdn.discordapp.com"
MIRROR_CDN_HOSTS = frozenset({"media.discordapp.net"})
CDN_HOST_SUFFIXES = ("discordapp.com", "discordapp.net")
ATTACHMENT_PATH_PREFIXES = ("/attachments/", "/ephemeral-attachments/")
EXPIRING_PARAMS = frozenset({"ex", "is", "hm", "expires", "signature"})

GIF_HOSTS = ("tenor.com", "giphy.com", "media.discordapp.net")
_GIF_EXT_RE = re.compile(r"\.gif($|[?#])")


class NormalizedUrl(NamedTuple):
    url: str
    was_normalized: bool


def _is_cdn_host(host: str) -> bool:
    return any(host == suffix or host.endswith("." + suffix) for suffix in CDN_HOST_SUFFIXES)


def normalize_media_url(url: str) -> NormalizedUrl:
    """Return the canonical form of ``url``.

    Non-CDN and unparsable URLs come back unchanged with ``was_normalized`` False.
    """
    raw = str(url or "").strip()
    if not raw:
        return NormalizedUrl(raw, False)

    try:
        parts = urlsplit(raw)
        host = (parts.hostname or "").lower()
        port = parts.port
    except ValueError:
        return NormalizedUrl(raw, False)

    if parts.scheme not in ("http", "https") or not _is_cdn_host(host):
        return NormalizedUrl(raw, False)
    if not parts.path.startswith(ATTACHMENT_PATH_PREFIXES):
        return NormalizedUrl(raw, False)

    netloc = parts.netloc
    if host in MIRROR_CDN_HOSTS:
        netloc = CANONICAL_CDN_HOST
        if port:
            netloc = f"{netloc}:{port}"

    query_pairs = parse_qsl(parts.query, keep_blank_values=True)
    kept = [(k, v) for k, v in query_pairs if k.lower() not in EXPIRING_PARAMS]
    query = urlencode(kept) if len(kept) != len(query_pairs) else parts.query

    canonical = urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))
    return NormalizedUrl(canonical, canonical != raw)


def is_expiring_cdn_url(url: str) -> bool:
    """True for a first-party CDN link that carries a time-limited signature."""
    try:
        parts = urlsplit(str(url or "").strip())
        host = (parts.hostname or "").lower()
    except ValueError:
        return False
    if not _is_cdn_host(host):
        return False
    keys = {k.lower() for k, _ in parse_qsl(parts.query, keep_blank_values=True)}
    return bool(keys & EXPIRING_PARAMS)


def candidate_urls(url: str) -> list[str]:
    """Ordered, de-duplicated fetch candidates: the original, then its canonical form."""
    original = str(url or "").strip()
    candidates: list[str] = []
    for value in (original, normalize_media_url(original).url):
        if value and value not in candidates:
            candidates.append(value)
    return candidates


def is_gif_like_url(url: str) -> bool:
    value = str(url or "").strip().lower()
    if not value:
        return False
    return bool(_GIF_EXT_RE.search(value)) or any(host in value for host in GIF_HOSTS)
