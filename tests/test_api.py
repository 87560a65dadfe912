"""
Test the HTTP surface.

Verifies:
1. /health requires no auth and returns {ok, ts}
2. /ingest and /upload reject missing, malformed or wrong bearer tokens
3. /ingest/all lists one page and reports {queued, hasMore, failed, message}
4. /ingest/{objectKey} enqueues exactly one document message
5. /upload stores a content-addressed envelope
"""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from archivist.models.envelope import compute_content_id, content_digest, object_key_for


@pytest.fixture
def client(object_store, queue) -> TestClient:
    from archivist.main import create_app

    app = create_app()
    app.state.object_store = object_store
    app.state.message_queue = queue
    return TestClient(app, raise_server_exceptions=False)


def _fill(store, n: int) -> None:
    for i in range(n):
        store.objects[f"doc-{i:05d}.json"] = b"{}"


class TestHealthEndpoint:
    def test_health_without_auth(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert isinstance(data["ts"], int)

    def test_readyz_without_database(self, client: TestClient) -> None:
        response = client.get("/readyz")

        assert response.status_code == 503
        data = response.json()
        assert data["ok"] is False
        assert data["pool_initialized"] is False


class TestBearerAuth:
    @pytest.mark.parametrize(
        "headers",
        [
            {},
            {"Authorization": "test-token-12345"},
            {"Authorization": "Basic dXNlcjpwYXNz"},
            {"Authorization": "Bearer wrong-token"},
        ],
    )
    def test_rejected(self, client: TestClient, queue, headers: dict) -> None:
        response = client.post("/ingest/all", headers=headers)

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["error"] == "unauthorized"
        assert queue.messages == {}

    def test_upload_requires_auth(self, client: TestClient, object_store) -> None:
        response = client.post("/upload", json={"type": "quotes", "data": {}})

        assert response.status_code == 401
        assert object_store.objects == {}

    def test_unset_token_rejects_everything(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from archivist.config import reset_settings

        monkeypatch.delenv("ARCHIVIST_AUTH_TOKEN")
        reset_settings()

        response = client.post("/ingest/all", headers={"Authorization": "Bearer anything"})
        assert response.status_code == 401


class TestIngestAll:
    def test_first_page(self, client: TestClient, queue, object_store, auth_headers) -> None:
        _fill(object_store, 1500)

        response = client.post("/ingest/all", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["queued"] == 1000
        assert data["hasMore"] is True
        assert data["failed"] == 0
        assert data["message"]
        continuations = [b for b in queue.bodies if "kind" in b]
        assert continuations == [{"kind": "pagination", "cursor": "after:doc-00999.json", "page": 2}]

    def test_continuation_page(self, client: TestClient, object_store, auth_headers) -> None:
        _fill(object_store, 1500)

        response = client.post(
            "/ingest/all",
            params={"cursor": "after:doc-00999.json", "page": 2},
            headers=auth_headers,
        )

        data = response.json()
        assert data["queued"] == 500
        assert data["hasMore"] is False
        assert "haltedReason" not in data

    def test_halted_run_has_no_more(
        self, client: TestClient, queue, object_store, auth_headers, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from archivist.config import reset_settings

        _fill(object_store, 2500)
        monkeypatch.setenv("INGEST_MAX_PAGES", "2")
        reset_settings()

        response = client.post(
            "/ingest/all",
            params={"cursor": "after:doc-00999.json", "page": 2},
            headers=auth_headers,
        )

        data = response.json()
        assert data["queued"] == 1000
        assert data["hasMore"] is False
        assert data["haltedReason"] == "max_pages"
        assert not any("kind" in b for b in queue.bodies)

    def test_listing_failure_is_500(self, client: TestClient, object_store, queue, auth_headers) -> None:
        object_store.fail_list = ConnectionError("store down")

        response = client.post("/ingest/all", headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["error"] == "listing_failed"
        assert queue.messages == {}

    def test_failed_chunks_reported(self, client: TestClient, object_store, queue, auth_headers) -> None:
        _fill(object_store, 300)
        queue.fail_batches = {2}

        data = client.post("/ingest/all", headers=auth_headers).json()

        assert data["queued"] == 200
        assert data["failed"] == 100


class TestIngestOne:
    def test_enqueues_one_message(self, client: TestClient, queue, auth_headers) -> None:
        response = client.post("/ingest/sha256_abc.json", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"queued": 1, "objectKey": "sha256_abc.json"}
        assert queue.bodies == [{"objectKey": "sha256_abc.json"}]

    def test_key_with_slashes(self, client: TestClient, queue, auth_headers) -> None:
        response = client.post("/ingest/2024/01/sha256_abc.json", headers=auth_headers)

        assert response.json()["objectKey"] == "2024/01/sha256_abc.json"
        assert queue.bodies == [{"objectKey": "2024/01/sha256_abc.json"}]

    def test_queue_failure(self, client: TestClient, queue, auth_headers) -> None:
        queue.fail_send = ConnectionError("queue down")

        response = client.post("/ingest/sha256_abc.json", headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["error"] == "enqueue_failed"


class TestUpload:
    def test_stores_envelope(self, client: TestClient, object_store, auth_headers, quote_data) -> None:
        response = client.post(
            "/upload", json={"type": "quotes", "data": quote_data}, headers=auth_headers
        )

        assert response.status_code == 201
        body = response.json()
        assert body["id"] == compute_content_id(quote_data)
        assert body["objectKey"] == object_key_for(body["id"])

        stored = json.loads(object_store.objects[body["objectKey"]])
        assert stored == {"type": "quotes", "id": body["id"], "data": quote_data}
        assert object_store.metadata[body["objectKey"]] == {"sha256-hex": content_digest(quote_data)}

    def test_same_data_same_key(self, client: TestClient, auth_headers) -> None:
        first = client.post("/upload", json={"type": "quotes", "data": {"a": 1, "b": 2}}, headers=auth_headers)
        second = client.post("/upload", json={"type": "quotes", "data": {"b": 2, "a": 1}}, headers=auth_headers)

        assert first.json() == second.json()

    @pytest.mark.parametrize("payload", [{"data": {}}, {"type": "quotes"}, {"type": "", "data": {}}])
    def test_invalid_body(self, client: TestClient, auth_headers, payload: dict) -> None:
        response = client.post("/upload", json=payload, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"
