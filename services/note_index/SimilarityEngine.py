"""Similarity engine.

Exact linear scan: every stored embedding is compared with the query note's
embedding by cosine similarity, filtered by a threshold, ranked by
similarity descending (ties by ascending key) and truncated.
"""

from collections.abc import Mapping, Sequence
from logging import Logger
from pathlib import PurePosixPath

import numpy as np

from services.note_index.IndexingService import IndexingService
from services.note_index.VectorStore import VectorStore
from shared.clients.source.NoteSourceInterface import NoteSourceInterface
from shared.errors.IndexErrors import DimensionMismatch
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexSettings
from shared.models.note import EmbeddingRecord, SimilarNote


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors.

    A zero-norm vector has similarity 0.0 with everything. The result is
    clamped to [-1, 1] to absorb rounding.

    Raises:
        DimensionMismatch: If the vectors differ in length.
    """
    if len(a) != len(b):
        raise DimensionMismatch(expected=len(a), actual=len(b))

    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(vec_a) * np.linalg.norm(vec_b)
    if norm == 0:
        return 0.0
    similarity = float(np.dot(vec_a, vec_b) / norm)
    return max(-1.0, min(1.0, similarity))


def note_title(key: str) -> str:
    """Display title of a note: its file name without the .md suffix."""
    name = PurePosixPath(key).name
    if name.endswith(".md"):
        name = name[: -len(".md")]
    return name or key


def rank_similar_notes(
    query_key: str,
    query_vector: Sequence[float],
    records: Mapping[str, EmbeddingRecord],
    max_results: int,
    min_similarity: float,
    logger: Logger | None = None,
) -> list[SimilarNote]:
    """Rank stored embeddings against a query vector.

    The query key itself is never part of the result. Records whose vector
    length differs from the query vector are skipped with a warning.

    Args:
        query_key (str): Key of the query note, excluded from the results.
        query_vector (Sequence[float]): Embedding of the query note.
        records (Mapping[str, EmbeddingRecord]): All candidate records.
        max_results (int): Upper bound of returned matches.
        min_similarity (float): Matches strictly below this are dropped.
        logger (Logger | None): Receives warnings about skipped records.

    Returns:
        list[SimilarNote]: Matches by similarity descending, ties by ascending key.
    """
    if max_results <= 0:
        return []

    matches: list[SimilarNote] = []
    for key, record in records.items():
        if key == query_key:
            continue
        try:
            similarity = cosine_similarity(query_vector, record.vector)
        except DimensionMismatch as exc:
            if logger is not None:
                logger.warning("Skipping %r during similarity scan: %s", key, exc)
            continue
        if similarity < min_similarity:
            continue
        matches.append(SimilarNote(key=key, title=note_title(key), similarity=similarity))

    matches.sort(key=lambda match: (-match.similarity, match.key))
    return matches[:max_results]


class SimilarityEngine:
    """Answers "notes most similar to X" queries over the vector store."""

    def __init__(
        self,
        helper_config: HelperConfig,
        settings: IndexSettings,
        vector_store: VectorStore,
        indexing_service: IndexingService,
        note_source: NoteSourceInterface | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._settings = settings
        self._store = vector_store
        self._indexing = indexing_service
        self._source = note_source

    async def find_similar(
        self,
        key: str,
        max_results: int | None = None,
        min_similarity: float | None = None,
    ) -> list[SimilarNote]:
        """Find the notes most similar to the note ``key``.

        If the note has no embedding yet it is indexed first (bootstrap). With
        query_bootstrap "empty" the call then returns no results; with "block"
        it ranks against the freshly stored embedding.

        Args:
            key (str): The query note.
            max_results (int | None): Defaults to settings.max_results.
            min_similarity (float | None): Defaults to settings.min_similarity.

        Returns:
            list[SimilarNote]: Ranked matches.

        Raises:
            NoteIndexError: If bootstrap indexing fails, or the store cannot be read.
        """
        max_results = self._settings.max_results if max_results is None else max_results
        min_similarity = self._settings.min_similarity if min_similarity is None else min_similarity

        records = await self._store.get_all()
        query_record = records.get(key)
        if query_record is None:
            self.logging.info("No embedding found for %r, generating...", key)
            if not await self._bootstrap(key) or self._settings.query_bootstrap == "empty":
                return []
            records = await self._store.get_all()
            query_record = records.get(key)
            if query_record is None:
                return []

        matches = rank_similar_notes(
            query_key=key,
            query_vector=query_record.vector,
            records=records,
            max_results=max_results,
            min_similarity=min_similarity,
            logger=self.logging,
        )
        self.logging.debug("Found %d similar notes for %r among %d embeddings.", len(matches), key, len(records))
        return matches

    async def _bootstrap(self, key: str) -> bool:
        """Index a note that has no embedding yet.

        Returns:
            bool: False if the note cannot be found in the note source.
        """
        if self._source is None:
            self.logging.debug("No note source configured, cannot bootstrap %r.", key)
            return False
        note = await self._source.do_get_note(key)
        if note is None:
            self.logging.info("Note %r not found in source, nothing to index.", key)
            return False
        await self._indexing.ensure_current(note.key, note.content, note.version)
        return True
