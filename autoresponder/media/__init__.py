"""Media URL handling, fetching and durable storage."""

from .fetcher import FetchResult, MediaFetcher
from .store import MediaStore, StoredMedia
from .urls import NormalizedUrl, candidate_urls, normalize_media_url

__all__ = [
    "FetchResult",
    "MediaFetcher",
    "MediaStore",
    "NormalizedUrl",
    "StoredMedia",
    "candidate_urls",
    "normalize_media_url",
]
