from __future__ import annotations

import asyncio
import hashlib
import re
from pathlib import Path

from autoresponder.media.store import (
    MediaStore,
    build_stored_filename,
    sanitize_name,
    sanitize_path,
)
from conftest import PNG_BYTES


def test_store_writes_content_addressed_file(tmp_path: Path) -> None:
    store = MediaStore(tmp_path)

    saved = asyncio.run(store.store(123, 7, PNG_BYTES, "Cat Pic.PNG"))

    assert saved is not None
    digest = hashlib.sha1(PNG_BYTES).hexdigest()[:12]
    assert re.fullmatch(rf"autorespond-media/123/rule-7-\d+-{digest}\.png", saved.path)
    assert saved.name == "Cat Pic.PNG"
    assert (tmp_path / saved.path).read_bytes() == PNG_BYTES


def test_identical_content_gets_separate_files(tmp_path: Path) -> None:
    store = MediaStore(tmp_path)

    first = asyncio.run(store.store(1, 1, PNG_BYTES, "a.png"))
    second = asyncio.run(store.store(1, 2, PNG_BYTES, "a.png"))

    assert first is not None and second is not None
    assert first.path != second.path
    assert (tmp_path / first.path).exists()
    assert (tmp_path / second.path).exists()


def test_store_rejects_empty_input(tmp_path: Path) -> None:
    store = MediaStore(tmp_path)

    assert asyncio.run(store.store(1, 1, b"", "a.png")) is None
    assert asyncio.run(store.store(1, 0, PNG_BYTES, "a.png")) is None


def test_load_and_delete(tmp_path: Path) -> None:
    store = MediaStore(tmp_path)
    saved = asyncio.run(store.store(1, 1, PNG_BYTES, "a.png"))
    assert saved is not None

    assert asyncio.run(store.load(saved.path)) == PNG_BYTES
    assert store.delete(saved.path) is True
    assert asyncio.run(store.load(saved.path)) is None
    assert store.delete(saved.path) is False
    assert store.cleanup.deleted == 1
    assert store.cleanup.missing == 1


def test_delete_failure_is_counted_not_raised(tmp_path: Path) -> None:
    store = MediaStore(tmp_path)
    directory = tmp_path / "autorespond-media" / "1" / "dir.png"
    directory.mkdir(parents=True)

    assert store.delete("autorespond-media/1/dir.png") is False
    assert store.cleanup.failed == 1


def test_unsafe_paths_treated_as_absent(tmp_path: Path) -> None:
    secret = tmp_path / "secret.txt"
    secret.write_text("keep")
    store = MediaStore(tmp_path)

    assert asyncio.run(store.load("autorespond-media/../secret.txt")) is None
    assert asyncio.run(store.load("secret.txt")) is None
    assert store.delete("autorespond-media/../secret.txt") is False
    assert secret.exists()


def test_sanitize_path() -> None:
    assert sanitize_path("autorespond-media/1/a.png") == "autorespond-media/1/a.png"
    assert sanitize_path("\\autorespond-media\\1\\a.png") == "autorespond-media/1/a.png"
    assert sanitize_path("/autorespond-media/1/a.png") == "autorespond-media/1/a.png"
    assert sanitize_path("autorespond-media/../etc/passwd") == ""
    assert sanitize_path("other/1/a.png") == ""
    assert sanitize_path("autorespond-media/" + "a" * 600) == ""
    assert sanitize_path("") == ""


def test_sanitize_name_and_extension_fallback() -> None:
    assert sanitize_name("../../evil<>.gif") == "evil_.gif"
    assert build_stored_filename(3, "", b"data", now_ms=42).endswith(".bin")
    assert build_stored_filename(3, "clip.MP4", b"data", now_ms=42).startswith("rule-3-42-")
    assert build_stored_filename(3, "clip.MP4", b"data", now_ms=42).endswith(".mp4")
