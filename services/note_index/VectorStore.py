"""Vector store.

Persists the whole note-key -> EmbeddingRecord mapping as a single JSON blob
through a StorageClient. Every mutation is a load -> modify -> save cycle of
the entire mapping, serialised through one asyncio.Lock so that interleaved
writers (a note edit firing while a bulk reindex runs) never lose each
other's updates. Reads do not take the lock and return a point-in-time
snapshot.
"""

import asyncio
import json
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from pydantic import ValidationError

from shared.clients.storage.StorageClientInterface import StorageClientInterface
from shared.errors.IndexErrors import DimensionMismatch, StorageNotFound
from shared.helper.HelperConfig import HelperConfig
from shared.models.note import EmbeddingRecord

StoreUpdateCallback = Callable[[], None]


class VectorStore:
    """Durable, mergeable mapping from note key to embedding record."""

    def __init__(
        self,
        helper_config: HelperConfig,
        storage_client: StorageClientInterface,
        store_path: str = "embeddings.json",
    ) -> None:
        self.logging = helper_config.get_logger()
        self._storage = storage_client
        self._store_path = store_path
        self._write_lock = asyncio.Lock()
        self._update_callbacks: list[StoreUpdateCallback] = []

    ##########################################
    ############### OBSERVERS ################
    ##########################################

    def register_update_callback(self, callback: StoreUpdateCallback) -> None:
        """Register a callback invoked synchronously after every successful persist.

        Args:
            callback (StoreUpdateCallback): Zero-argument callable.
        """
        self._update_callbacks.append(callback)

    def unregister_update_callback(self, callback: StoreUpdateCallback) -> None:
        if callback in self._update_callbacks:
            self._update_callbacks.remove(callback)

    def _notify_update_callbacks(self) -> None:
        for callback in list(self._update_callbacks):
            try:
                callback()
            except Exception:
                # the write already landed, a failing observer must not undo it
                self.logging.exception("Store update callback %r failed", callback)

    ##########################################
    ################ READS ###################
    ##########################################

    async def get(self, key: str) -> EmbeddingRecord | None:
        """Returns the record of a note, or None if it has not been embedded."""
        records = await self._load()
        return records.get(key)

    async def get_all(self) -> dict[str, EmbeddingRecord]:
        """Returns a snapshot of the full mapping."""
        return await self._load()

    ##########################################
    ############### MUTATIONS ################
    ##########################################

    async def put(self, key: str, vector: Sequence[float], source_version: int) -> EmbeddingRecord:
        """Set or replace the embedding of a note.

        Args:
            key (str): The note key.
            vector (Sequence[float]): The embedding vector.
            source_version (int): Version of the note the vector was computed from.

        Returns:
            EmbeddingRecord: The stored record.

        Raises:
            ValueError: If the vector is empty.
            DimensionMismatch: If the vector length differs from the other stored records.
            StorageError: If the mapping cannot be loaded or saved. Nothing is written.
        """
        if len(vector) == 0:
            raise ValueError(f"Refusing to store an empty vector for '{key}'.")

        record = EmbeddingRecord(
            vector=[float(v) for v in vector],
            source_version=source_version,
            last_updated=datetime.now(timezone.utc),
        )
        async with self._write_lock:
            records = await self._load()
            self._check_dimension(records, key, len(record.vector))
            records[key] = record
            await self._save(records)

        self.logging.debug("Stored embedding for %r (version %d)", key, source_version)
        return record

    async def remove(self, key: str) -> bool:
        """Remove the embedding of a note. A missing key is a no-op.

        Returns:
            bool: True if a record was removed.

        Raises:
            StorageError: If the mapping cannot be loaded or saved.
        """
        async with self._write_lock:
            records = await self._load()
            if key not in records:
                return False
            del records[key]
            await self._save(records)

        self.logging.debug("Removed embedding for %r", key)
        return True

    async def clear(self) -> None:
        """Replace the mapping with an empty one.

        Raises:
            StorageError: If the empty mapping cannot be saved.
        """
        async with self._write_lock:
            await self._save({})
        self.logging.info("Embedding store cleared.")

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _check_dimension(self, records: dict[str, EmbeddingRecord], key: str, length: int) -> None:
        for other_key, other in records.items():
            if other_key == key:
                continue
            if len(other.vector) != length:
                raise DimensionMismatch(expected=len(other.vector), actual=length, key=key)
            # one record is enough, the store never holds mixed lengths it wrote itself
            return

    async def _load(self) -> dict[str, EmbeddingRecord]:
        """Load and parse the durable mapping.

        A missing blob is an empty mapping. An unparseable blob is logged and
        treated as empty; individual unparseable records are dropped.

        Raises:
            StorageError: If the storage cannot be read.
        """
        try:
            raw = await self._storage.do_read(self._store_path)
        except StorageNotFound:
            return {}

        try:
            data = json.loads(raw)
        except ValueError as exc:
            self.logging.warning("Embedding store %r is corrupt, treating it as empty: %s", self._store_path, exc)
            return {}
        if not isinstance(data, dict):
            self.logging.warning(
                "Embedding store %r does not hold a mapping (got %s), treating it as empty.",
                self._store_path,
                type(data).__name__,
            )
            return {}

        records: dict[str, EmbeddingRecord] = {}
        for key, value in data.items():
            try:
                records[key] = EmbeddingRecord.model_validate(value)
            except ValidationError as exc:
                self.logging.warning("Dropping unreadable embedding record %r: %s", key, exc.errors()[:1])
        return records

    async def _save(self, records: dict[str, EmbeddingRecord]) -> None:
        """Persist the whole mapping, then notify observers.

        Raises:
            StorageError: If the storage cannot be written.
        """
        payload = {key: record.to_store_dict() for key, record in records.items()}
        data = json.dumps(payload, indent=2).encode("utf-8")
        await self._storage.do_write(self._store_path, data)
        self._notify_update_callbacks()
