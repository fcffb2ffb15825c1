"""Note and embedding models shared by the index services, clients and API."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class NoteDocument(BaseModel):
    """A single note as supplied by a note source.

    Attributes:
        key:     Stable logical path of the note, e.g. "projects/alpha.md".
        content: Current text of the note.
        version: Last-modified timestamp in milliseconds. Used for staleness checks.
    """

    key: str
    content: str
    version: int


class NoteEventKind(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class NoteEvent(BaseModel):
    """Change notification emitted by the note host.

    Attributes:
        kind:    What happened to the note.
        key:     Current key of the note.
        old_key: Previous key, only set for renamed notes.
    """

    kind: NoteEventKind
    key: str
    old_key: str | None = None


class EmbeddingRecord(BaseModel):
    """Stored embedding of one note.

    Persisted with the durable field names ``embedding``, ``file_mtime`` and
    ``last_updated``; in code the fields are ``vector``, ``source_version``
    and ``last_updated``.

    Attributes:
        vector:         Embedding vector. Equal length for all records of one store.
        source_version: Version of the note the vector was computed from.
        last_updated:   When the record was written. Informational only.
    """

    model_config = ConfigDict(populate_by_name=True)

    vector: list[float] = Field(alias="embedding")
    source_version: int = Field(alias="file_mtime")
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def is_current_for(self, version: int) -> bool:
        """Returns True if this record was computed from ``version`` or a newer one."""
        return self.source_version >= version

    def to_store_dict(self) -> dict:
        """Serialise to the durable store format."""
        return {
            "embedding": self.vector,
            "last_updated": self.last_updated.isoformat(),
            "file_mtime": self.source_version,
        }


class SimilarNote(BaseModel):
    """A single similarity query result. Never persisted."""

    key: str
    title: str
    similarity: float


class UpdateOutcome(str, Enum):
    UPDATED = "updated"
    SKIPPED = "skipped"


class ReindexProgress(BaseModel):
    """Incremental progress of a bulk reindex."""

    processed: int
    total: int

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        return round(self.processed / self.total * 100)


class ReindexResult(BaseModel):
    """Tally of a bulk reindex."""

    total: int = 0
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    errored: int = 0
    cancelled: bool = False


class IndexStats(BaseModel):
    """How much of the note collection is indexed."""

    indexed: int
    total: int
    percentage: int


class ErrorLogEntry(BaseModel):
    """One entry of the diagnostic error history."""

    timestamp: datetime
    message: str
    details: str | None = None


class ReindexStatus(BaseModel):
    """State of the background reindex job."""

    running: bool
    processed: int = 0
    total: int = 0
    last_result: ReindexResult | None = None
