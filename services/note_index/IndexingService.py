"""Indexing service.

Decides per note whether its stored embedding is stale and drives
re-embedding through the embedding provider. Staleness is a pure version
comparison: a record is current iff record.source_version >= note version.
The service holds no state of its own; the VectorStore owns the mapping.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable

from services.note_index.ErrorLog import ErrorLog
from services.note_index.VectorStore import VectorStore
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.errors.IndexErrors import EmptyInput, ProviderTimeout
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexSettings
from shared.models.note import NoteDocument, ReindexProgress, ReindexResult, UpdateOutcome

ProgressCallback = Callable[[ReindexProgress], None]
NoteLoader = Callable[[str], Awaitable[NoteDocument | None]]


class IndexingService:
    """Keeps stored embeddings consistent with note versions."""

    def __init__(
        self,
        helper_config: HelperConfig,
        settings: IndexSettings,
        vector_store: VectorStore,
        embed_client: EmbedClientInterface,
        error_log: ErrorLog | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._settings = settings
        self._store = vector_store
        self._embed_client = embed_client
        self._error_log = error_log

    ##########################################
    ############ SINGLE DOCUMENT #############
    ##########################################

    async def is_current(self, key: str, current_version: int) -> bool:
        """Returns True if the stored embedding of a note is not stale."""
        record = await self._store.get(key)
        return record is not None and record.is_current_for(current_version)

    async def ensure_current(
        self,
        key: str,
        content: str,
        current_version: int,
        force: bool = False,
    ) -> UpdateOutcome:
        """Re-embed a note if its stored embedding is missing or stale.

        Args:
            key (str): The note key.
            content (str): Current note content.
            current_version (int): Current note version.
            force (bool): Re-embed even if the stored embedding is current.

        Returns:
            UpdateOutcome: UPDATED if a new embedding was stored, SKIPPED otherwise.

        Raises:
            EmptyInput: If the content is empty. No provider call, no write.
            ProviderError: If the provider call fails or times out. The store is untouched.
            DimensionMismatch: If the new vector does not fit the stored ones.
            StorageError: If the store cannot be read or written.
        """
        if not force and await self.is_current(key, current_version):
            self.logging.debug("Embedding for %r is current (version %d), skipping.", key, current_version)
            return UpdateOutcome.SKIPPED

        text = self._prepare_text(key, content)
        vector = await self._embed(key, text)
        await self._store.put(key, vector, current_version)
        self.logging.info("Updated embedding for %r (version %d).", key, current_version)
        return UpdateOutcome.UPDATED

    ##########################################
    ################# BULK ###################
    ##########################################

    async def reindex_all(
        self,
        notes: Iterable[NoteDocument | str],
        force: bool = False,
        cancel_event: asyncio.Event | None = None,
        progress_callback: ProgressCallback | None = None,
        note_loader: NoteLoader | None = None,
    ) -> ReindexResult:
        """Apply ensure_current to every note independently.

        A failing note is counted, logged and recorded in the error log; it
        never stops the remaining notes. Notes given by key are loaded through
        ``note_loader`` one at a time, so an unreadable note only fails itself.
        Cancellation is checked once per note.

        Args:
            notes (Iterable[NoteDocument | str]): The full note collection, as documents or keys.
            force (bool): Re-embed every note regardless of staleness.
            cancel_event (asyncio.Event | None): Stops the run before the next note once set.
            progress_callback (ProgressCallback | None): Called after every processed note.
            note_loader (NoteLoader | None): Loads a note by key; required when keys are given.

        Returns:
            ReindexResult: Tally of updated, skipped and errored notes. A note that
                vanished before it was loaded counts as skipped.

        Raises:
            ValueError: If keys are given without a note_loader.
        """
        notes = list(notes)
        if note_loader is None and any(isinstance(note, str) for note in notes):
            raise ValueError("A note_loader is required to reindex notes given by key.")

        result = ReindexResult(total=len(notes))
        self.logging.info("Checking %d notes for indexing (force=%s)...", result.total, force)

        for item in notes:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                self.logging.warning("Reindex cancelled after %d of %d notes.", result.processed, result.total)
                break

            key = item if isinstance(item, str) else item.key
            try:
                note = await note_loader(item) if isinstance(item, str) else item
                if note is None:
                    self.logging.debug("Note %r vanished before indexing, skipping.", key)
                    outcome = UpdateOutcome.SKIPPED
                else:
                    outcome = await self.ensure_current(note.key, note.content, note.version, force=force)
            except Exception as exc:
                result.errored += 1
                if self._error_log is not None:
                    self._error_log.record(f"Error indexing {key}", exc)
                else:
                    self.logging.error("Error indexing %s: %s", key, exc)
            else:
                if outcome is UpdateOutcome.UPDATED:
                    result.updated += 1
                else:
                    result.skipped += 1

            result.processed += 1
            if progress_callback is not None:
                progress_callback(ReindexProgress(processed=result.processed, total=result.total))
            # let interleaved work (queries, note edits) run between notes
            await asyncio.sleep(0)

        self.logging.info(
            "Reindex complete: %d updated, %d skipped, %d errors.",
            result.updated, result.skipped, result.errored,
        )
        return result

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _prepare_text(self, key: str, content: str) -> str:
        """Validate and truncate note content to the provider character budget.

        Raises:
            EmptyInput: If the content is empty or whitespace only.
        """
        if not content or not content.strip():
            raise EmptyInput(f"Cannot generate embedding for empty note '{key}'.")
        return content[: self._settings.embed_max_chars]

    async def _embed(self, key: str, text: str) -> list[float]:
        """Request an embedding, bounded by the provider timeout.

        Raises:
            ProviderTimeout: If the provider does not answer in time.
            ProviderError: If the provider call fails.
        """
        try:
            return await asyncio.wait_for(
                self._embed_client.do_embed_text(text),
                timeout=self._settings.provider_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeout(
                f"Embedding for '{key}' timed out after {self._settings.provider_timeout}s."
            ) from exc
