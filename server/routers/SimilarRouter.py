from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import SimilarRequest
from server.models.responses import SimilarResponse

router = APIRouter(prefix="/similar", tags=["similar"])


@router.post("")
async def find_similar_notes(
    request: Request,
    body: SimilarRequest,
    _: None = Depends(verify_api_key),
) -> SimilarResponse:
    """Find the notes most similar to a given note.

    Args:
        request (Request): FastAPI request (provides app.state.note_index_service).
        body (SimilarRequest): JSON body with the note key and optional overrides.
        _ (None): Auth dependency result (unused).

    Returns:
        SimilarResponse: Matches ordered by similarity, highest first.
    """
    service = request.app.state.note_index_service
    results = await service.find_similar(
        body.key,
        max_results=body.max_results,
        min_similarity=body.min_similarity,
    )
    return SimilarResponse(key=body.key, results=results, total=len(results))
