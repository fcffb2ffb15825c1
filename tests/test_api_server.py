"""Tests for the HTTP API (server/api_server.py and server/routers)."""

import logging
import time
from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from server.api_server import create_app, get_error_status_code
from services.note_index.NoteIndexService import NoteIndexService
from shared.errors.IndexErrors import (
    DimensionMismatch,
    EmptyInput,
    NoteIndexError,
    ProviderRateLimited,
    ProviderServerError,
    ProviderTimeout,
    ProviderUnauthorized,
    SourceError,
    StorageError,
)
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexSettings
from tests.conftest import FakeEmbedClient, FakeNoteSource, FakeStorage

API_KEY = "test-key"
HEADERS = {"X-API-Key": API_KEY}


class Backends:
    def __init__(self):
        self.storage = FakeStorage()
        self.embed_client = FakeEmbedClient(
            vectors={"a text": [1.0, 0.0, 0.0], "b text": [0.0, 1.0, 0.0], "c text": [0.9, 0.1, 0.0]}
        )
        self.source = FakeNoteSource({"A.md": ("a text", 1), "B.md": ("b text", 1), "C.md": ("c text", 1)})


@pytest.fixture
def backends():
    return Backends()


@pytest.fixture
def client(backends, monkeypatch):
    monkeypatch.setenv("APP_API_KEY", API_KEY)

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        logger = logging.getLogger("note_index.tests")
        app.state.logging = logger
        app.state.helper_config = HelperConfig(logger=logger)
        app.state.note_index_service = NoteIndexService(
            helper_config=app.state.helper_config,
            settings=IndexSettings(min_similarity=0.5, query_bootstrap="block"),
            storage_client=backends.storage,
            embed_client=backends.embed_client,
            note_source=backends.source,
        )
        yield
        await app.state.note_index_service.close()

    with TestClient(create_app(app_lifespan=test_lifespan)) as test_client:
        yield test_client


def wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.01)


def reindex_and_wait(client: TestClient, force: bool = False) -> dict:
    assert client.post("/reindex", json={"force": force}, headers=HEADERS).status_code == 202
    wait_until(lambda: not client.get("/reindex/status", headers=HEADERS).json()["running"])
    return client.get("/reindex/status", headers=HEADERS).json()


class TestAuth:

    @pytest.mark.parametrize(
        "method, path",
        [("post", "/similar"), ("post", "/reindex"), ("get", "/stats"), ("get", "/errors"), ("post", "/webhook/note")],
    )
    def test_missing_key(self, client, method, path):
        assert getattr(client, method)(path).status_code == 401

    def test_wrong_key(self, client):
        response = client.post("/similar", json={"key": "A.md"}, headers={"X-API-Key": "nope"})
        assert response.status_code == 401


class TestSimilar:

    def test_similar_notes(self, client):
        reindex_and_wait(client)

        response = client.post("/similar", json={"key": "A.md", "max_results": 2}, headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["key"] == "A.md"
        assert body["total"] == 1
        assert body["results"][0]["key"] == "C.md"
        assert body["results"][0]["title"] == "C"

    def test_bootstrap_blocks(self, client):
        response = client.post("/similar", json={"key": "A.md", "min_similarity": -1.0}, headers=HEADERS)
        assert response.status_code == 200
        # only A itself was indexed
        assert response.json()["results"] == []

    def test_unknown_note(self, client):
        response = client.post("/similar", json={"key": "missing.md"}, headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["total"] == 0

    def test_invalid_request(self, client):
        response = client.post("/similar", json={"key": "A.md", "min_similarity": 3}, headers=HEADERS)
        assert response.status_code == 422

    def test_provider_error_mapped(self, client, backends):
        backends.embed_client.error = ProviderRateLimited("slow down", status_code=429)

        response = client.post("/similar", json={"key": "A.md"}, headers=HEADERS)

        assert response.status_code == 429
        assert response.json()["error"] == "ProviderRateLimited"
        errors = client.get("/errors", headers=HEADERS).json()
        assert errors[0]["message"] == "Error finding similar notes for A.md"

    def test_storage_error_mapped(self, client, backends):
        backends.storage.fail_reads = True
        response = client.post("/similar", json={"key": "A.md"}, headers=HEADERS)
        assert response.status_code == 503


class TestIndex:

    def test_reindex_status(self, client):
        status = reindex_and_wait(client)
        assert status["last_result"]["updated"] == 3
        assert (status["processed"], status["total"]) == (3, 3)

    def test_reindex_without_body(self, client):
        assert client.post("/reindex", headers=HEADERS).status_code == 202

    def test_reindex_conflict(self, client, backends):
        backends.embed_client.delay = 0.05

        assert client.post("/reindex", json={}, headers=HEADERS).status_code == 202
        assert client.post("/reindex", json={}, headers=HEADERS).status_code == 409
        assert client.post("/reindex/cancel", headers=HEADERS).json()["status"] == "cancelling"

        wait_until(lambda: not client.get("/reindex/status", headers=HEADERS).json()["running"])
        assert client.get("/reindex/status", headers=HEADERS).json()["last_result"]["cancelled"] is True

    def test_cancel_when_idle(self, client):
        assert client.post("/reindex/cancel", headers=HEADERS).json()["status"] == "idle"

    def test_delete_embeddings(self, client):
        reindex_and_wait(client)

        response = client.delete("/embeddings/A.md", headers=HEADERS)
        assert response.json() == {"key": "A.md", "removed": True}
        assert client.get("/stats", headers=HEADERS).json() == {"indexed": 2, "total": 3, "percentage": 67}

        assert client.delete("/embeddings", headers=HEADERS).status_code == 200
        assert client.get("/stats", headers=HEADERS).json()["indexed"] == 0

    def test_delete_nested_key(self, client):
        response = client.delete("/embeddings/folder/missing.md", headers=HEADERS)
        assert response.json() == {"key": "folder/missing.md", "removed": False}

    def test_errors_endpoint(self, client, backends):
        backends.embed_client.error = ProviderServerError("down", status_code=500)
        status = reindex_and_wait(client)
        assert status["last_result"]["errored"] == 3

        assert len(client.get("/errors", headers=HEADERS).json()) == 3
        client.delete("/errors", headers=HEADERS)
        assert client.get("/errors", headers=HEADERS).json() == []


class TestWebhook:

    def test_note_event_indexed_in_background(self, client, backends):
        response = client.post("/webhook/note", json={"kind": "created", "key": "B.md"}, headers=HEADERS)

        assert response.status_code == 202
        wait_until(lambda: client.get("/stats", headers=HEADERS).json()["indexed"] == 1)
        assert backends.embed_client.calls == ["b text"]

    def test_invalid_kind(self, client):
        response = client.post("/webhook/note", json={"kind": "exploded", "key": "B.md"}, headers=HEADERS)
        assert response.status_code == 422

    def test_failure_lands_in_error_log(self, client, backends):
        backends.embed_client.error = ProviderUnauthorized("bad key", status_code=401)

        response = client.post("/webhook/note", json={"kind": "modified", "key": "B.md"}, headers=HEADERS)

        assert response.status_code == 202
        wait_until(lambda: len(client.get("/errors", headers=HEADERS).json()) == 1)


class TestErrorStatusCodes:

    @pytest.mark.parametrize(
        "error, status_code",
        [
            (ProviderRateLimited("x"), 429),
            (ProviderUnauthorized("x"), 502),
            (ProviderServerError("x"), 502),
            (ProviderTimeout("x"), 502),
            (EmptyInput("x"), 422),
            (DimensionMismatch(3, 2), 409),
            (StorageError("x"), 503),
            (SourceError("x"), 503),
            (NoteIndexError("x"), 500),
        ],
    )
    def test_mapping(self, error, status_code):
        assert get_error_status_code(error) == status_code
