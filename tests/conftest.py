"""Shared fixtures and fakes for the note index tests."""

import asyncio
import logging

import pytest

from shared.errors.IndexErrors import StorageError, StorageNotFound
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexSettings
from shared.models.note import NoteDocument


class FakeStorage:
    """In-memory blob storage with optional per-call delays and failures."""

    def __init__(self, read_delay: float = 0.0, write_delay: float = 0.0):
        self.blobs: dict[str, bytes] = {}
        self.read_delay = read_delay
        self.write_delay = write_delay
        self.fail_writes = False
        self.fail_reads = False
        self.write_count = 0

    async def do_read(self, path: str) -> bytes:
        await asyncio.sleep(self.read_delay)
        if self.fail_reads:
            raise StorageError("read failed")
        if path not in self.blobs:
            raise StorageNotFound(path)
        return self.blobs[path]

    async def do_write(self, path: str, data: bytes) -> None:
        await asyncio.sleep(self.write_delay)
        if self.fail_writes:
            raise StorageError("write failed")
        self.blobs[path] = data
        self.write_count += 1


class FakeEmbedClient:
    """Returns fixed vectors per text; unknown texts get a default vector."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, default: list[float] | None = None):
        self.vectors = vectors or {}
        self.default = default or [1.0, 0.0, 0.0]
        self.calls: list[str] = []
        self.error: Exception | None = None
        self.delay = 0.0

    async def do_embed_text(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.vectors.get(text, self.default)


class FakeNoteSource:
    """Note source over a plain dict of key -> (content, version)."""

    def __init__(self, notes: dict[str, tuple[str, int]] | None = None):
        self.notes = dict(notes or {})
        # key -> exception raised when that note is read
        self.failing: dict[str, Exception] = {}

    async def do_list_keys(self) -> list[str]:
        return sorted(self.notes)

    async def do_get_note(self, key: str) -> NoteDocument | None:
        if key in self.failing:
            raise self.failing[key]
        if key not in self.notes:
            return None
        content, version = self.notes[key]
        return NoteDocument(key=key, content=content, version=version)


@pytest.fixture
def helper_config():
    return HelperConfig(logger=logging.getLogger("note_index.tests"))


@pytest.fixture
def settings():
    return IndexSettings(min_similarity=0.5, provider_timeout=1.0)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def embed_client():
    return FakeEmbedClient()
