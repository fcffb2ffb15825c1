from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import NoteWebhookRequest
from server.models.responses import StatusResponse
from shared.models.note import NoteEvent

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("/note", status_code=202)
async def webhook_note(
    request: Request,
    body: NoteWebhookRequest,
    _: None = Depends(verify_api_key),
) -> StatusResponse:
    """Accept a note change notification and index it in the background.

    Failures do not reach the caller; they are recorded in the error log.

    Args:
        request (Request): FastAPI request (provides app.state.note_index_service).
        body (NoteWebhookRequest): JSON body with kind, key and optional old_key.
        _ (None): Auth dependency result (unused).

    Returns:
        StatusResponse: Acknowledgement.
    """
    request.app.state.logging.info("Webhook received: %s %r", body.kind.value, body.key)
    service = request.app.state.note_index_service
    service.schedule_note_event(NoteEvent(kind=body.kind, key=body.key, old_key=body.old_key))
    return StatusResponse(status="accepted", detail=body.key)
