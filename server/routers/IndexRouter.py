from fastapi import APIRouter, Depends, Request, Response

from server.dependencies.auth import verify_api_key
from server.models.requests import ReindexRequest
from server.models.responses import DeleteEmbeddingResponse, StatusResponse
from shared.models.note import ErrorLogEntry, IndexStats, ReindexStatus

router = APIRouter(tags=["index"], dependencies=[Depends(verify_api_key)])


##########################################
################ REINDEX #################
##########################################

@router.post("/reindex", status_code=202)
async def start_reindex(request: Request, response: Response, body: ReindexRequest | None = None) -> StatusResponse:
    """Start a background reindex of all notes. 409 if one is already running."""
    service = request.app.state.note_index_service
    if not service.start_reindex(force=body.force if body else False):
        response.status_code = 409
        return StatusResponse(status="running", detail="A reindex is already running.")
    return StatusResponse(status="started")


@router.get("/reindex/status")
async def get_reindex_status(request: Request) -> ReindexStatus:
    return request.app.state.note_index_service.get_reindex_status()


@router.post("/reindex/cancel")
async def cancel_reindex(request: Request) -> StatusResponse:
    service = request.app.state.note_index_service
    if service.cancel_reindex():
        return StatusResponse(status="cancelling")
    return StatusResponse(status="idle", detail="No reindex is running.")


##########################################
############### EMBEDDINGS ###############
##########################################

@router.delete("/embeddings")
async def clear_embeddings(request: Request) -> StatusResponse:
    """Drop every stored embedding."""
    await request.app.state.note_index_service.clear()
    return StatusResponse(status="cleared")


@router.delete("/embeddings/{key:path}")
async def delete_embedding(request: Request, key: str) -> DeleteEmbeddingResponse:
    """Drop the stored embedding of one note. Missing keys are not an error."""
    removed = await request.app.state.note_index_service.delete_embedding(key)
    return DeleteEmbeddingResponse(key=key, removed=removed)


##########################################
############### DIAGNOSTICS ##############
##########################################

@router.get("/stats")
async def get_stats(request: Request) -> IndexStats:
    return await request.app.state.note_index_service.get_stats()


@router.get("/errors")
async def get_errors(request: Request) -> list[ErrorLogEntry]:
    """Recent index failures, most recent first."""
    return request.app.state.note_index_service.get_error_logs()


@router.delete("/errors")
async def clear_errors(request: Request) -> StatusResponse:
    request.app.state.note_index_service.clear_error_logs()
    return StatusResponse(status="cleared")
