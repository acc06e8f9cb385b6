"""Stored-item execution through the public API."""

import httpx
import pytest
from fastapi.testclient import TestClient

from blink.db.connection import get_conn
from blink.db.queries import insert_collection, insert_item
from blink.execution.engine import ExecutionEngine
from blink.main import app
from blink.ratelimit import TokenBucketLimiter
from blink.security.url_guard import UrlPolicy

HOSTS = {"api.example.com": ["93.184.216.34"], "intranet.example.com": ["10.20.30.40"]}


class Target:
    """Mock upstream that records every request it receives."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/bounce":
            return httpx.Response(302, headers={"Location": "http://intranet.example.com/admin"})
        if request.url.path == "/down":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(
            200,
            headers={"X-Upstream": "yes"},
            json={"method": request.method, "body": request.content.decode()},
        )


@pytest.fixture
def target(monkeypatch: pytest.MonkeyPatch) -> Target:
    upstream = Target()
    engine = ExecutionEngine(
        transport=httpx.MockTransport(upstream),
        url_policy=UrlPolicy(resolver=lambda host: HOSTS.get(host, [host])),
    )
    monkeypatch.setattr(app.state, "engine", engine)
    return upstream


def _stored_request(
    url: str = "https://api.example.com/pets",
    method: str = "POST",
    body: str = '{"name":"rex"}',
    headers: list[dict[str, object]] | None = None,
) -> int:
    with get_conn() as conn:
        collection_id = insert_collection(conn, "Pets")
        return insert_item(
            conn,
            collection_id=collection_id,
            parent_id=None,
            name="Add pet",
            item_type="request",
            sort_order=0,
            method=method,
            url=url,
            headers=headers
            or [
                {"key": "Content-Type", "value": "application/json", "disabled": False},
                {"key": "X-Debug", "value": "1", "disabled": True},
            ],
            body=body,
        )


def test_execute_stored_request(target: Target) -> None:
    item_id = _stored_request()
    response = TestClient(app).post(f"/api/v1/items/{item_id}/execute")

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["status"] == 200
    assert data["statusText"] == "OK"
    assert data["headers"]["X-Upstream"] == ["yes"]
    assert data["truncated"] is False
    assert "error" not in data
    sent = target.requests[0]
    assert sent.content == b'{"name":"rex"}'
    assert sent.headers["content-type"] == "application/json"
    assert "x-debug" not in sent.headers


def test_execute_with_overrides(target: Target) -> None:
    item_id = _stored_request()
    response = TestClient(app).post(
        f"/api/v1/items/{item_id}/execute",
        json={"url": "https://api.example.com/other", "headers": {"X-Trace": "t1"}, "body": "{}"},
    )

    assert response.status_code == 200
    sent = target.requests[0]
    assert sent.url.path == "/other"
    assert sent.headers["x-trace"] == "t1"
    assert "content-type" not in sent.headers
    assert sent.content == b"{}"


def test_execute_rejects_unknown_override_fields(target: Target) -> None:
    item_id = _stored_request()
    response = TestClient(app).post(
        f"/api/v1/items/{item_id}/execute", json={"method": "DELETE"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"
    assert target.requests == []


def test_execute_private_target_is_ssrf_rejection(target: Target) -> None:
    item_id = _stored_request(url="http://intranet.example.com/admin", method="GET", body="")
    response = TestClient(app).post(f"/api/v1/items/{item_id}/execute")

    assert response.status_code == 403
    data = response.json()
    assert data["error"] == "ssrf_protection"
    assert data["reason"] == "blocked_ip"
    assert data["message"].startswith("URL blocked by SSRF protection:")
    assert target.requests == []


def test_execute_metadata_override_is_blocked(target: Target) -> None:
    item_id = _stored_request()
    response = TestClient(app).post(
        f"/api/v1/items/{item_id}/execute",
        json={"url": "http://169.254.169.254/latest/meta-data"},
    )
    assert response.status_code == 403
    assert target.requests == []


def test_execute_redirect_into_private_space_is_execution_error(target: Target) -> None:
    item_id = _stored_request(url="https://api.example.com/bounce", method="GET", body="")
    response = TestClient(app).post(f"/api/v1/items/{item_id}/execute")

    assert response.status_code == 502
    data = response.json()
    assert data["error"] == "execution_error"
    assert data["reason"] == "redirect_blocked"
    assert [str(req.url) for req in target.requests] == ["https://api.example.com/bounce"]


def test_execute_network_failure_is_502(target: Target) -> None:
    item_id = _stored_request(url="https://api.example.com/down", method="GET", body="")
    response = TestClient(app).post(f"/api/v1/items/{item_id}/execute")

    assert response.status_code == 502
    assert response.json()["reason"] == "network_error"
    assert response.json()["message"].startswith("failed to execute request:")


def test_execute_folder_is_invalid_item_type(target: Target) -> None:
    with get_conn() as conn:
        collection_id = insert_collection(conn, "Pets")
        folder_id = insert_item(
            conn,
            collection_id=collection_id,
            parent_id=None,
            name="Folder",
            item_type="folder",
            sort_order=0,
        )
    response = TestClient(app).post(f"/api/v1/items/{folder_id}/execute")
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_item_type"


def test_execute_missing_item_is_404(target: Target) -> None:
    response = TestClient(app).post("/api/v1/items/12345/execute")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_execute_is_rate_limited_per_client(target: Target) -> None:
    app.state.execute_limiter = TokenBucketLimiter(1, 1)
    item_id = _stored_request(method="GET", body="")
    client = TestClient(app)

    first = client.post(f"/api/v1/items/{item_id}/execute")
    second = client.post(f"/api/v1/items/{item_id}/execute")

    assert first.status_code == 200
    assert second.status_code == 429
    assert second.json()["error"] == "rate_limited"
    assert second.headers["Retry-After"] == "1"
    assert len(target.requests) == 1


def test_rate_limit_applies_only_to_execute(target: Target) -> None:
    app.state.execute_limiter = TokenBucketLimiter(1, 1)
    client = TestClient(app)
    for _ in range(3):
        assert client.get("/api/v1/collections").status_code == 200
