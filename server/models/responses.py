from pydantic import BaseModel

from shared.models.note import SimilarNote


class SimilarResponse(BaseModel):
    key: str
    results: list[SimilarNote]
    total: int


class StatusResponse(BaseModel):
    status: str
    detail: str | None = None


class DeleteEmbeddingResponse(BaseModel):
    key: str
    removed: bool
