"""FastAPI application entry point for the note index API."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.storage.StorageClientManager import StorageClientManager
from shared.clients.source.vault.NoteSourceVault import NoteSourceVault
from shared.errors.IndexErrors import (
    DimensionMismatch,
    EmptyInput,
    NoteIndexError,
    ProviderError,
    ProviderRateLimited,
    SourceError,
    StorageError,
)
from shared.models.config import IndexSettings
from services.note_index.NoteIndexService import NoteIndexService
from server.routers.SimilarRouter import router as similar_router
from server.routers.IndexRouter import router as index_router
from server.routers.WebhookRouter import router as webhook_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    app.state.helper_config = HelperConfig(logger=logging)
    settings = IndexSettings.from_helper_config(app.state.helper_config)

    storage_client = StorageClientManager(helper_config=app.state.helper_config).get_client()
    embed_client = EmbedClientManager(helper_config=app.state.helper_config).get_client()
    note_source = NoteSourceVault(helper_config=app.state.helper_config)

    logging.info("Booting embed client...")
    await embed_client.boot()
    await check_connections(embed_client)

    app.state.note_index_service = NoteIndexService(
        helper_config=app.state.helper_config,
        settings=settings,
        storage_client=storage_client,
        embed_client=embed_client,
        note_source=note_source,
    )
    if settings.reindex_on_startup:
        logging.info("Starting incremental reindex of '%s'...", note_source.get_engine_name())
        app.state.note_index_service.start_reindex(force=False)

    # while the app is running...
    yield

    # when the app shuts down, stop background work and close the client
    logging.info("Shutting down, stopping background work...")
    await app.state.note_index_service.close()
    await embed_client.close()
    logging.info("Note index API shut down.")


async def check_connections(embed_client: EmbedClientInterface) -> None:
    """Check the embedding provider on startup.

    Failures are non-fatal: similarity queries over already indexed notes
    still work, only (re-)indexing will fail until the provider is back.
    """
    try:
        result = await embed_client.do_healthcheck()
    except httpx.HTTPError as e:
        logging.warning("Embed client '%s' is not reachable: %s. Indexing will fail.", embed_client.get_engine_name(), e)
        return
    if not result.is_success:
        logging.warning(
            "Embed client '%s' is not healthy (status %d). Indexing may fail.",
            embed_client.get_engine_name(),
            result.status_code,
        )


##########################################
############ ERROR HANDLING ##############
##########################################

def get_error_status_code(exc: NoteIndexError) -> int:
    """Map an index error onto the HTTP status returned to the caller."""
    if isinstance(exc, ProviderRateLimited):
        return 429
    if isinstance(exc, ProviderError):
        return 502
    if isinstance(exc, EmptyInput):
        return 422
    if isinstance(exc, DimensionMismatch):
        return 409
    if isinstance(exc, (StorageError, SourceError)):
        return 503
    return 500


async def handle_note_index_error(request: Request, exc: NoteIndexError) -> JSONResponse:
    status_code = get_error_status_code(exc)
    request.app.state.logging.warning("%s %s failed with %d: %s", request.method, request.url.path, status_code, exc)
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


def create_app(app_lifespan: Callable = lifespan) -> FastAPI:
    """Build the API application.

    Args:
        app_lifespan (Callable): Lifespan context that fills app.state
            (logging, helper_config, note_index_service).

    Returns:
        FastAPI: The configured application.
    """
    app = FastAPI(
        title="note_index",
        description=(
            "Semantic similarity index over a markdown note vault. "
            "Notes are embedded via an external embedding provider and related notes "
            "are served via POST /similar. Note changes are pushed via POST /webhook/note."
        ),
        version=app_version,
        lifespan=app_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(NoteIndexError, handle_note_index_error)
    app.include_router(similar_router)
    app.include_router(index_router)
    app.include_router(webhook_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting note index API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
