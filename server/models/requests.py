from pydantic import BaseModel, Field

from shared.models.note import NoteEventKind


class SimilarRequest(BaseModel):
    key: str = Field(min_length=1)
    max_results: int | None = Field(default=None, gt=0)
    min_similarity: float | None = Field(default=None, ge=-1.0, le=1.0)


class ReindexRequest(BaseModel):
    force: bool = False


class NoteWebhookRequest(BaseModel):
    kind: NoteEventKind
    key: str = Field(min_length=1)
    old_key: str | None = None
