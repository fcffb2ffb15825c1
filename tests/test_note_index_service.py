"""Tests for services/note_index/NoteIndexService.py"""

import asyncio
from pathlib import Path

import pytest

from services.note_index.NoteIndexService import NoteIndexService
from shared.clients.source.vault.NoteSourceVault import NoteSourceVault
from shared.errors.IndexErrors import ProviderRateLimited, SourceError
from shared.models.config import IndexSettings
from shared.models.note import NoteEvent, NoteEventKind, UpdateOutcome
from tests.conftest import FakeEmbedClient, FakeNoteSource, FakeStorage


def build(helper_config, notes=None, settings=None, embed_client=None, storage=None):
    source = FakeNoteSource(notes or {})
    embed_client = embed_client or FakeEmbedClient(default=[1.0, 0.0])
    service = NoteIndexService(
        helper_config=helper_config,
        settings=settings or IndexSettings(min_similarity=0.5),
        storage_client=storage or FakeStorage(),
        embed_client=embed_client,
        note_source=source,
    )
    return service, source, embed_client


class TestQuerySurface:

    @pytest.mark.asyncio
    async def test_reindex_then_find_similar(self, helper_config):
        embed_client = FakeEmbedClient(
            vectors={"a text": [1.0, 0.0, 0.0], "b text": [0.0, 1.0, 0.0], "c text": [0.9, 0.1, 0.0]}
        )
        service, _, _ = build(
            helper_config,
            notes={"A.md": ("a text", 1), "B.md": ("b text", 1), "C.md": ("c text", 1)},
            embed_client=embed_client,
        )

        result = await service.reindex_all()
        matches = await service.find_similar("A.md", max_results=2)

        assert result.updated == 3
        assert [(m.key, m.title) for m in matches] == [("C.md", "C")]

    @pytest.mark.asyncio
    async def test_find_similar_failure_is_recorded(self, helper_config):
        service, _, embed_client = build(helper_config, notes={"a.md": ("text", 1)})
        embed_client.error = ProviderRateLimited("slow down", status_code=429)

        with pytest.raises(ProviderRateLimited):
            await service.find_similar("a.md")

        assert service.get_error_logs()[0].message == "Error finding similar notes for a.md"

    @pytest.mark.asyncio
    async def test_unreadable_query_note_is_recorded(self, helper_config):
        service, source, _ = build(helper_config, notes={"a.md": ("text", 1)})
        source.failing["a.md"] = SourceError("Cannot read note 'a.md'")

        with pytest.raises(SourceError):
            await service.find_similar("a.md")

        assert service.get_error_logs()[0].message == "Error finding similar notes for a.md"

    @pytest.mark.asyncio
    async def test_unreadable_vault_note_does_not_abort_reindex(self, helper_config, tmp_path, monkeypatch):
        for name in ("a.md", "b.md", "c.md"):
            (tmp_path / name).write_text(f"{name} text", encoding="utf-8")
        original_read_text = Path.read_text

        def read_text(path, *args, **kwargs):
            if path.name == "b.md":
                raise PermissionError(13, "Permission denied", str(path))
            return original_read_text(path, *args, **kwargs)

        monkeypatch.setattr(Path, "read_text", read_text)
        service = NoteIndexService(
            helper_config=helper_config,
            settings=IndexSettings(min_similarity=0.5),
            storage_client=FakeStorage(),
            embed_client=FakeEmbedClient(default=[1.0, 0.0]),
            note_source=NoteSourceVault(helper_config=helper_config, root_dir=tmp_path),
        )

        result = await service.reindex_all(force=True)

        assert (result.updated, result.errored) == (2, 1)
        assert set(await service.vector_store.get_all()) == {"a.md", "c.md"}
        assert service.get_error_logs()[0].message == "Error indexing b.md"

    @pytest.mark.asyncio
    async def test_delete_embedding_and_clear(self, helper_config):
        service, _, _ = build(helper_config, notes={"a.md": ("a", 1), "b.md": ("b", 1)})
        await service.reindex_all()

        assert await service.delete_embedding("a.md") is True
        assert await service.delete_embedding("a.md") is False
        assert set(await service.vector_store.get_all()) == {"b.md"}

        await service.clear()
        assert await service.vector_store.get_all() == {}


class TestNoteEvents:

    @pytest.mark.asyncio
    async def test_created_and_modified(self, helper_config):
        service, source, embed_client = build(helper_config, notes={"a.md": ("v1", 1)})

        assert await service.handle_note_event(NoteEvent(kind=NoteEventKind.CREATED, key="a.md")) is UpdateOutcome.UPDATED

        source.notes["a.md"] = ("v2", 2)
        assert await service.handle_note_event(NoteEvent(kind=NoteEventKind.MODIFIED, key="a.md")) is UpdateOutcome.UPDATED
        assert (await service.vector_store.get("a.md")).source_version == 2
        assert embed_client.calls == ["v1", "v2"]

    @pytest.mark.asyncio
    async def test_deleted(self, helper_config):
        service, source, _ = build(helper_config, notes={"a.md": ("text", 1)})
        await service.reindex_all()
        del source.notes["a.md"]

        assert await service.handle_note_event(NoteEvent(kind=NoteEventKind.DELETED, key="a.md")) is None
        assert await service.vector_store.get("a.md") is None

    @pytest.mark.asyncio
    async def test_renamed(self, helper_config):
        service, source, _ = build(helper_config, notes={"old.md": ("text", 1)})
        await service.reindex_all()
        source.notes = {"new.md": ("text", 1)}

        await service.handle_note_event(NoteEvent(kind=NoteEventKind.RENAMED, key="new.md", old_key="old.md"))

        assert set(await service.vector_store.get_all()) == {"new.md"}

    @pytest.mark.asyncio
    async def test_vanished_note_is_removed(self, helper_config):
        service, source, _ = build(helper_config, notes={"a.md": ("text", 1)})
        await service.reindex_all()
        source.notes.clear()

        assert await service.handle_note_event(NoteEvent(kind=NoteEventKind.MODIFIED, key="a.md")) is None
        assert await service.vector_store.get("a.md") is None

    @pytest.mark.asyncio
    async def test_failure_recorded_and_propagated(self, helper_config):
        service, _, embed_client = build(helper_config, notes={"a.md": ("text", 1)})
        embed_client.error = ProviderRateLimited("slow down", status_code=429)

        with pytest.raises(ProviderRateLimited):
            await service.handle_note_event(NoteEvent(kind=NoteEventKind.CREATED, key="a.md"))
        assert "a.md" in service.get_error_logs()[0].message

    @pytest.mark.asyncio
    async def test_scheduled_event_failure_lands_in_error_log(self, helper_config):
        service, _, embed_client = build(helper_config, notes={"a.md": ("text", 1)})
        embed_client.error = ProviderRateLimited("slow down", status_code=429)

        task = service.schedule_note_event(NoteEvent(kind=NoteEventKind.CREATED, key="a.md"))
        await asyncio.gather(task, return_exceptions=True)

        assert len(service.get_error_logs()) == 1
        service.clear_error_logs()
        assert service.get_error_logs() == []

    @pytest.mark.asyncio
    async def test_scheduled_event_unexpected_error_lands_in_error_log(self, helper_config):
        service, source, _ = build(helper_config, notes={"a.md": ("text", 1)})
        source.failing["a.md"] = RuntimeError("source exploded")

        task = service.schedule_note_event(NoteEvent(kind=NoteEventKind.MODIFIED, key="a.md"))
        await asyncio.gather(task, return_exceptions=True)

        entries = service.get_error_logs()
        assert len(entries) == 1
        assert entries[0].message == "Unexpected error handling modified event for a.md"

    @pytest.mark.asyncio
    async def test_unreadable_event_note_is_recorded(self, helper_config):
        service, source, _ = build(helper_config, notes={"a.md": ("text", 1)})
        source.failing["a.md"] = SourceError("Cannot read note 'a.md'")

        task = service.schedule_note_event(NoteEvent(kind=NoteEventKind.CREATED, key="a.md"))
        await asyncio.gather(task, return_exceptions=True)

        entries = service.get_error_logs()
        assert [entry.message for entry in entries] == ["Error handling created event for a.md"]


class TestBackgroundReindex:

    @pytest.mark.asyncio
    async def test_start_and_wait(self, helper_config):
        service, _, _ = build(helper_config, notes={f"n{i}.md": (f"text {i}", 1) for i in range(3)})

        assert service.start_reindex() is True
        result = await service.wait_for_reindex()

        assert result.updated == 3
        status = service.get_reindex_status()
        assert status.running is False
        assert (status.processed, status.total) == (3, 3)
        assert status.last_result == result

    @pytest.mark.asyncio
    async def test_only_one_job_at_a_time(self, helper_config):
        embed_client = FakeEmbedClient(default=[1.0, 0.0])
        embed_client.delay = 0.01
        service, _, _ = build(helper_config, notes={"a.md": ("a", 1), "b.md": ("b", 1)}, embed_client=embed_client)

        assert service.start_reindex() is True
        assert service.start_reindex() is False
        assert service.get_reindex_status().running is True
        await service.wait_for_reindex()
        assert service.start_reindex(force=True) is True
        await service.wait_for_reindex()

    @pytest.mark.asyncio
    async def test_cancel(self, helper_config):
        embed_client = FakeEmbedClient(default=[1.0, 0.0])
        embed_client.delay = 0.01
        service, _, _ = build(
            helper_config, notes={f"n{i}.md": (f"text {i}", 1) for i in range(20)}, embed_client=embed_client
        )

        service.start_reindex()
        await asyncio.sleep(0.025)
        assert service.cancel_reindex() is True
        result = await service.wait_for_reindex()

        assert result.cancelled is True
        assert result.processed < 20
        assert service.cancel_reindex() is False

    @pytest.mark.asyncio
    async def test_close_stops_job(self, helper_config):
        embed_client = FakeEmbedClient(default=[1.0, 0.0])
        embed_client.delay = 0.01
        service, _, _ = build(
            helper_config, notes={f"n{i}.md": (f"text {i}", 1) for i in range(20)}, embed_client=embed_client
        )

        service.start_reindex()
        await service.close()

        assert service.is_reindex_running() is False


class TestStats:

    @pytest.mark.asyncio
    async def test_stats_follow_store_updates(self, helper_config):
        service, _, _ = build(helper_config, notes={"a.md": ("a", 1), "b.md": ("b", 1)})

        stats = await service.get_stats()
        assert (stats.indexed, stats.total, stats.percentage) == (0, 2, 0)

        await service.handle_note_event(NoteEvent(kind=NoteEventKind.CREATED, key="a.md"))
        stats = await service.get_stats()
        assert (stats.indexed, stats.total, stats.percentage) == (1, 2, 50)

        await service.reindex_all()
        assert (await service.get_stats()).percentage == 100

    @pytest.mark.asyncio
    async def test_empty_source(self, helper_config):
        service, _, _ = build(helper_config)
        stats = await service.get_stats()
        assert (stats.indexed, stats.total, stats.percentage) == (0, 0, 0)
