from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app
from src.api.responses import CORS_HEADERS
from src.config.load_config import load_app_config
from src.storage.dataset_store import BackendError, DatasetRecord
from src.storage.memory_store import InMemoryDatasetStore


pytestmark = pytest.mark.usefixtures("clean_config_env")


def _make_app(store: InMemoryDatasetStore | None = None, *, unmatched_status: int = 400):
    cfg = load_app_config()
    cfg = replace(cfg, api=replace(cfg.api, unmatched_status=unmatched_status))
    return create_app(config=cfg, store=store if store is not None else InMemoryDatasetStore())


def _assert_cors(resp) -> None:  # noqa: ANN001
    for name, value in CORS_HEADERS.items():
        assert resp.headers.get(name) == value
    assert resp.headers.get("content-type", "").startswith("application/json")


class _FailingStore(InMemoryDatasetStore):
    def get(self, key_id: str):  # noqa: ANN201
        return BackendError(error=RuntimeError("disk unavailable"), operation="get")

    def update_existing(self, key_id, *, payload, meta, updated_at):  # noqa: ANN001, ANN201
        return BackendError(error=RuntimeError("disk unavailable"), operation="update_existing")


class _ExplodingStore(InMemoryDatasetStore):
    def delete_existing(self, key_id: str):  # noqa: ANN201
        raise RuntimeError("unexpected driver bug")


def test_full_lifecycle_scenario() -> None:
    with TestClient(_make_app()) as client:
        created = client.post("/data", json={"payload": "hello"})
        assert created.status_code == 201
        body = created.json()
        assert set(body) == {"keyId", "version", "updatedAt"}
        assert body["version"] == 1
        key_id = body["keyId"]

        got = client.get(f"/data/{key_id}")
        assert got.status_code == 200
        assert got.json() == {
            "keyId": key_id,
            "version": 1,
            "payload": "hello",
            "meta": None,
            "updatedAt": body["updatedAt"],
        }

        put = client.put(f"/data/{key_id}", json={"payload": "world"})
        assert put.status_code == 200
        assert put.json()["keyId"] == key_id
        assert put.json()["version"] == 2
        assert put.json()["updatedAt"] >= body["updatedAt"]

        got2 = client.get(f"/data/{key_id}")
        assert got2.json()["payload"] == "world"
        assert got2.json()["version"] == 2

        deleted = client.delete(f"/data/{key_id}")
        assert deleted.status_code == 200
        assert deleted.json() == {"message": "Dataset deleted successfully", "keyId": key_id}

        gone = client.get(f"/data/{key_id}")
        assert gone.status_code == 404
        assert gone.json()["error"] == "Dataset not found"


def test_create_then_read_returns_submitted_meta() -> None:
    meta = {"enc": "AES-GCM", "nested": {"a": [1, 2.5, "x"]}, "flag": True}
    with TestClient(_make_app()) as client:
        key_id = client.post("/data", json={"payload": "opaque==", "meta": meta}).json()["keyId"]
        got = client.get(f"/data/{key_id}").json()
        assert got["payload"] == "opaque=="
        assert got["meta"] == meta
        assert got["version"] == 1


def test_update_without_meta_clears_meta() -> None:
    with TestClient(_make_app()) as client:
        key_id = client.post("/data", json={"payload": "a", "meta": {"k": "v"}}).json()["keyId"]
        assert client.put(f"/data/{key_id}", json={"payload": "b"}).status_code == 200
        assert client.get(f"/data/{key_id}").json()["meta"] is None


def test_n_updates_yield_version_one_plus_n() -> None:
    with TestClient(_make_app()) as client:
        key_id = client.post("/data", json={"payload": "v1"}).json()["keyId"]
        for i in range(5):
            resp = client.put(f"/data/{key_id}", json={"payload": f"v{i + 2}"})
            assert resp.json()["version"] == i + 2
        assert client.get(f"/data/{key_id}").json()["version"] == 6


def test_update_and_delete_of_unknown_key_are_404_without_writes() -> None:
    store = InMemoryDatasetStore()
    with TestClient(_make_app(store)) as client:
        put = client.put("/data/does-not-exist", json={"payload": "x"})
        assert put.status_code == 404
        assert put.json()["code"] == "not_found"
        _assert_cors(put)

        deleted = client.delete("/data/does-not-exist")
        assert deleted.status_code == 404
        assert deleted.json()["error"] == "Dataset not found"

        assert client.get("/data/does-not-exist").status_code == 404
    assert len(store) == 0


def test_delete_twice_second_is_404() -> None:
    with TestClient(_make_app()) as client:
        key_id = client.post("/data", json={"payload": "x"}).json()["keyId"]
        assert client.delete(f"/data/{key_id}").status_code == 200
        assert client.delete(f"/data/{key_id}").status_code == 404


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"payload": ""},
        {"payload": None},
        {"payload": 123},
        {"meta": {"enc": "AES-GCM"}},
    ],
)
def test_create_with_missing_or_invalid_payload_is_400_and_writes_nothing(body: dict) -> None:
    store = InMemoryDatasetStore()
    with TestClient(_make_app(store)) as client:
        resp = client.post("/data", json=body)
        assert resp.status_code == 400
        payload = resp.json()
        assert payload["code"] == "invalid_argument"
        assert "payload" in payload["error"]
        assert "payload" in payload["details"]["fields"]
        _assert_cors(resp)
    assert len(store) == 0


def test_create_rejects_non_object_meta() -> None:
    with TestClient(_make_app()) as client:
        resp = client.post("/data", json={"payload": "x", "meta": "not-an-object"})
        assert resp.status_code == 400
        assert resp.json()["details"]["fields"] == ["meta"]


def test_create_rejects_malformed_json_and_missing_body() -> None:
    with TestClient(_make_app()) as client:
        bad = client.post("/data", content=b"{not json", headers={"Content-Type": "application/json"})
        assert bad.status_code == 400
        assert "valid JSON" in bad.json()["error"]

        missing = client.post("/data")
        assert missing.status_code == 400
        assert missing.json()["error"] == "payload: Field required"
        assert missing.json()["details"]["fields"] == ["payload"]


@pytest.mark.parametrize("token", ["NaN", "Infinity", "-Infinity"])
def test_non_finite_meta_numbers_are_rejected(token: str) -> None:
    store = InMemoryDatasetStore()
    with TestClient(_make_app(store)) as client:
        raw = f'{{"payload": "x", "meta": {{"a": {{"b": [1, {token}]}}}}}}'.encode()
        resp = client.post("/data", content=raw, headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json()["details"]["fields"] == ["meta"]
        assert resp.json()["error"].startswith("meta: numbers must be finite")
        assert len(store) == 0

        key_id = client.post("/data", json={"payload": "x"}).json()["keyId"]
        raw = f'{{"payload": "y", "meta": {{"a": {token}}}}}'.encode()
        resp = client.put(f"/data/{key_id}", content=raw, headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert client.get(f"/data/{key_id}").json()["version"] == 1


def test_update_validates_body() -> None:
    with TestClient(_make_app()) as client:
        key_id = client.post("/data", json={"payload": "x"}).json()["keyId"]
        resp = client.put(f"/data/{key_id}", json={"payload": ""})
        assert resp.status_code == 400
        assert client.get(f"/data/{key_id}").json()["version"] == 1


@pytest.mark.parametrize("method", ["get", "delete"])
def test_missing_key_id_is_400(method: str) -> None:
    with TestClient(_make_app()) as client:
        resp = getattr(client, method)("/data/")
        assert resp.status_code == 400
        assert resp.json()["error"] == "keyId is required"

        blank = getattr(client, method)("/data/%20")
        assert blank.status_code == 400
        assert blank.json()["error"] == "keyId is required"


def test_put_without_key_id_is_400() -> None:
    with TestClient(_make_app()) as client:
        resp = client.put("/data/", json={"payload": "x"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "keyId is required"


def test_create_key_collision_is_409(monkeypatch: pytest.MonkeyPatch) -> None:
    store = InMemoryDatasetStore()
    store.put_new(
        DatasetRecord(key_id="fixed-key", version=3, payload="old", meta=None, updated_at="2026-01-01T00:00:00.000Z")
    )
    monkeypatch.setattr("src.api.routers.datasets.new_key_id", lambda: "fixed-key")

    with TestClient(_make_app(store)) as client:
        resp = client.post("/data", json={"payload": "new"})
        assert resp.status_code == 409
        assert resp.json() == {"error": "Dataset already exists", "code": "conflict"}
        _assert_cors(resp)

        # The existing record is untouched.
        got = client.get("/data/fixed-key").json()
        assert got["payload"] == "old"
        assert got["version"] == 3


def test_backend_error_is_500_without_internal_detail() -> None:
    with TestClient(_make_app(_FailingStore())) as client:
        resp = client.get("/data/any")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal Server Error", "code": "internal"}
        assert "disk" not in resp.text
        _assert_cors(resp)

        put = client.put("/data/any", json={"payload": "x"})
        assert put.status_code == 500


def test_uncaught_exception_is_500_with_cors_headers() -> None:
    app = _make_app(_ExplodingStore())
    with TestClient(app, raise_server_exceptions=False) as client:
        resp = client.delete("/data/any")
        assert resp.status_code == 500
        assert resp.json()["error"] == "Internal Server Error"
        assert "driver bug" not in resp.text
        _assert_cors(resp)


@pytest.mark.parametrize("path", ["/data", "/data/some-key", "/anything/else"])
def test_options_short_circuits_with_cors_headers(path: str) -> None:
    with TestClient(_make_app(_FailingStore())) as client:
        resp = client.options(path)
        assert resp.status_code == 200
        assert resp.json() == {}
        _assert_cors(resp)


def test_every_response_carries_cors_headers() -> None:
    with TestClient(_make_app()) as client:
        created = client.post("/data", json={"payload": "x"})
        key_id = created.json()["keyId"]
        responses = [
            created,
            client.get(f"/data/{key_id}"),
            client.put(f"/data/{key_id}", json={"payload": "y"}),
            client.delete(f"/data/{key_id}"),
            client.get(f"/data/{key_id}"),
            client.post("/data", json={}),
            client.patch(f"/data/{key_id}", json={}),
            client.get("/healthz"),
        ]
        for resp in responses:
            _assert_cors(resp)


@pytest.mark.parametrize(
    "method, path",
    [("get", "/data"), ("patch", "/data/abc"), ("post", "/data/abc"), ("get", "/unknown")],
)
def test_unmatched_route_is_400_by_default(method: str, path: str) -> None:
    with TestClient(_make_app()) as client:
        resp = getattr(client, method)(path)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Unsupported method or path", "code": "unsupported_route"}


def test_unmatched_route_can_be_405() -> None:
    with TestClient(_make_app(unmatched_status=405)) as client:
        resp = client.patch("/data/abc", json={})
        assert resp.status_code == 405
        assert resp.json()["error"] == "Method PATCH not allowed"
        _assert_cors(resp)


def test_healthz_reports_backend() -> None:
    with TestClient(_make_app()) as client:
        resp = client.get("/healthz")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "backend": "memory"}

        version = client.get("/version").json()
        assert version["service"] == "atlas-sync"
        assert isinstance(version["schema_version"], int)
