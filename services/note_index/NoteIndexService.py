"""Note index service.

Facade the outer surfaces (HTTP API, runner) talk to. Wires the vector store,
indexing service, similarity engine and error log around one storage client,
one embed client and one note source, and owns the single background reindex
job.
"""

import asyncio
import functools

from services.note_index.ErrorLog import ErrorLog
from services.note_index.IndexingService import IndexingService, ProgressCallback
from services.note_index.SimilarityEngine import SimilarityEngine
from services.note_index.VectorStore import VectorStore
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.source.NoteSourceInterface import NoteSourceInterface
from shared.clients.storage.StorageClientInterface import StorageClientInterface
from shared.errors.IndexErrors import NoteIndexError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexSettings
from shared.models.note import (
    ErrorLogEntry,
    IndexStats,
    NoteEvent,
    NoteEventKind,
    ReindexProgress,
    ReindexResult,
    ReindexStatus,
    SimilarNote,
    UpdateOutcome,
)


class NoteIndexService:
    """Semantic similarity index over a note collection."""

    def __init__(
        self,
        helper_config: HelperConfig,
        settings: IndexSettings,
        storage_client: StorageClientInterface,
        embed_client: EmbedClientInterface,
        note_source: NoteSourceInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._settings = settings
        self._source = note_source

        self.error_log = ErrorLog(helper_config=helper_config, max_entries=settings.max_error_logs)
        self.vector_store = VectorStore(
            helper_config=helper_config,
            storage_client=storage_client,
            store_path=settings.store_path,
        )
        self.indexing_service = IndexingService(
            helper_config=helper_config,
            settings=settings,
            vector_store=self.vector_store,
            embed_client=embed_client,
            error_log=self.error_log,
        )
        self.similarity_engine = SimilarityEngine(
            helper_config=helper_config,
            settings=settings,
            vector_store=self.vector_store,
            indexing_service=self.indexing_service,
            note_source=note_source,
        )

        # cached stats, invalidated by every store update
        self._stats: IndexStats | None = None
        self.vector_store.register_update_callback(self._invalidate_stats)

        # background reindex job
        self._reindex_task: asyncio.Task | None = None
        self._reindex_cancel = asyncio.Event()
        self._reindex_progress = ReindexProgress(processed=0, total=0)
        self._last_reindex_result: ReindexResult | None = None

        # fire-and-forget note event tasks, referenced until done
        self._event_tasks: set[asyncio.Task] = set()

    ##########################################
    ################# QUERY ##################
    ##########################################

    async def find_similar(
        self,
        key: str,
        max_results: int | None = None,
        min_similarity: float | None = None,
    ) -> list[SimilarNote]:
        """Find the notes most similar to ``key``.

        Raises:
            NoteIndexError: If bootstrap indexing of the query note fails or the
                store cannot be read. The failure is also recorded in the error log.
        """
        try:
            return await self.similarity_engine.find_similar(
                key, max_results=max_results, min_similarity=min_similarity
            )
        except NoteIndexError as exc:
            self.error_log.record(f"Error finding similar notes for {key}", exc)
            raise

    ##########################################
    ################ INDEXING ################
    ##########################################

    async def reindex_all(
        self,
        force: bool = False,
        cancel_event: asyncio.Event | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> ReindexResult:
        """Bring every note of the source up to date in the foreground.

        Every note is read from the source on its own, so a note that cannot be
        read is counted as an error without stopping the others.

        Raises:
            SourceError: If the note source cannot be listed.
        """
        keys = await self._source.do_list_keys()
        return await self.indexing_service.reindex_all(
            keys,
            force=force,
            cancel_event=cancel_event,
            progress_callback=progress_callback,
            note_loader=self._source.do_get_note,
        )

    async def handle_note_event(self, event: NoteEvent) -> UpdateOutcome | None:
        """Apply a single change notification of the note host.

        Args:
            event (NoteEvent): What happened to which note.

        Returns:
            UpdateOutcome | None: The indexing outcome for created, modified and
                renamed notes; None for deleted notes or notes that vanished.

        Raises:
            NoteIndexError: If indexing or removal fails. The failure is also
                recorded in the error log.
        """
        self._invalidate_stats()
        try:
            if event.kind is NoteEventKind.DELETED:
                await self.vector_store.remove(event.key)
                return None
            if event.kind is NoteEventKind.RENAMED and event.old_key:
                await self.vector_store.remove(event.old_key)
            return await self._index_note(event.key)
        except NoteIndexError as exc:
            self.error_log.record(f"Error handling {event.kind.value} event for {event.key}", exc)
            raise

    def schedule_note_event(self, event: NoteEvent) -> asyncio.Task:
        """Handle a note event in a background task. Failures land in the error log."""
        task = asyncio.create_task(self.handle_note_event(event))
        self._event_tasks.add(task)
        task.add_done_callback(functools.partial(self._on_event_task_done, event))
        return task

    def _on_event_task_done(self, event: NoteEvent, task: asyncio.Task) -> None:
        self._event_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        # index errors were recorded by handle_note_event already
        if exc is not None and not isinstance(exc, NoteIndexError):
            self.error_log.record(f"Unexpected error handling {event.kind.value} event for {event.key}", exc)

    async def _index_note(self, key: str) -> UpdateOutcome | None:
        note = await self._source.do_get_note(key)
        if note is None:
            # gone before we got to it
            await self.vector_store.remove(key)
            return None
        return await self.indexing_service.ensure_current(note.key, note.content, note.version)

    async def delete_embedding(self, key: str) -> bool:
        """Remove the embedding of one note. Returns False if it had none."""
        return await self.vector_store.remove(key)

    async def clear(self) -> None:
        """Drop every stored embedding."""
        await self.vector_store.clear()

    ##########################################
    ############# BACKGROUND JOB #############
    ##########################################

    def is_reindex_running(self) -> bool:
        return self._reindex_task is not None and not self._reindex_task.done()

    def start_reindex(self, force: bool = False) -> bool:
        """Start a background reindex of the whole note source.

        Returns:
            bool: False if a reindex is already running; nothing is started then.
        """
        if self.is_reindex_running():
            self.logging.warning("Reindex already running, not starting another one.")
            return False

        self._reindex_cancel = asyncio.Event()
        self._reindex_progress = ReindexProgress(processed=0, total=0)
        self._reindex_task = asyncio.create_task(self._run_reindex(force))
        return True

    def cancel_reindex(self) -> bool:
        """Ask the running reindex to stop before its next note.

        Returns:
            bool: False if no reindex is running.
        """
        if not self.is_reindex_running():
            return False
        self.logging.info("Cancelling reindex...")
        self._reindex_cancel.set()
        return True

    def get_reindex_status(self) -> ReindexStatus:
        return ReindexStatus(
            running=self.is_reindex_running(),
            processed=self._reindex_progress.processed,
            total=self._reindex_progress.total,
            last_result=self._last_reindex_result,
        )

    async def wait_for_reindex(self) -> ReindexResult | None:
        """Wait until the background reindex (if any) has finished, then return its result."""
        if self._reindex_task is not None:
            await asyncio.shield(self._reindex_task)
        return self._last_reindex_result

    async def _run_reindex(self, force: bool) -> None:
        try:
            self._last_reindex_result = await self.reindex_all(
                force=force,
                cancel_event=self._reindex_cancel,
                progress_callback=self._set_reindex_progress,
            )
        except NoteIndexError as exc:
            self.error_log.record("Reindex failed", exc)

    def _set_reindex_progress(self, progress: ReindexProgress) -> None:
        self._reindex_progress = progress

    async def close(self) -> None:
        """Stop the background reindex and pending note events."""
        if self.is_reindex_running():
            self._reindex_cancel.set()
            await asyncio.shield(self._reindex_task)
        for task in list(self._event_tasks):
            task.cancel()
        if self._event_tasks:
            await asyncio.gather(*self._event_tasks, return_exceptions=True)
        self.vector_store.unregister_update_callback(self._invalidate_stats)

    ##########################################
    ################# STATS ##################
    ##########################################

    async def get_stats(self) -> IndexStats:
        """How many notes of the source have an embedding.

        Raises:
            StorageError: If the store cannot be read.
        """
        if self._stats is None:
            keys = set(await self._source.do_list_keys())
            records = await self.vector_store.get_all()
            indexed = len(keys.intersection(records))
            total = len(keys)
            percentage = round(indexed / total * 100) if total else 0
            self._stats = IndexStats(indexed=indexed, total=total, percentage=percentage)
        return self._stats

    def _invalidate_stats(self) -> None:
        self._stats = None

    ##########################################
    ################# ERRORS #################
    ##########################################

    def get_error_logs(self) -> list[ErrorLogEntry]:
        return self.error_log.get_entries()

    def clear_error_logs(self) -> None:
        self.error_log.clear()
