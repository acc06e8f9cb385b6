"""Tests for the execution engine against mocked targets."""

import asyncio
import json

import httpx
import pytest

from blink.execution.engine import ExecutionEngine, flatten_headers, read_capped
from blink.execution.types import RequestDescriptor
from blink.security.url_guard import UrlPolicy, Verdict

PUBLIC_HOSTS = {"api.example.com": ["93.184.216.34"], "other.example.com": ["93.184.216.35"]}


def _policy() -> UrlPolicy:
    return UrlPolicy(resolver=lambda host: PUBLIC_HOSTS.get(host, [host]))


def _engine(handler, **kwargs) -> ExecutionEngine:
    kwargs.setdefault("url_policy", _policy())
    return ExecutionEngine(transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_post_roundtrip_returns_normalized_result() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, headers={"X-Test": "ok"}, json={"id": 1})

    engine = _engine(handler)
    result = await engine.execute(
        RequestDescriptor(
            method="POST",
            url="http://api.example.com/items",
            headers={"Content-Type": "application/json"},
            body='{"name":"a"}',
        )
    )

    assert result.ok
    assert result.status == 201
    assert result.status_text == "Created"
    assert result.headers["X-Test"] == ["ok"]
    assert json.loads(result.body) == {"id": 1}
    assert result.duration_ms >= 0
    assert result.truncated is False
    assert seen[0].content == b'{"name":"a"}'
    assert seen[0].headers["content-type"] == "application/json"


@pytest.mark.asyncio
async def test_redirect_limit_stops_before_extra_hop() -> None:
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        step = int(request.url.path.lstrip("/r"))
        if step < 6:
            return httpx.Response(302, headers={"Location": f"/r{step + 1}"})
        return httpx.Response(200, text="done")

    engine = _engine(handler, max_redirects=5)
    result = await engine.execute(RequestDescriptor(method="GET", url="http://api.example.com/r0"))

    assert not result.ok
    assert result.error_kind == "redirect_limit_exceeded"
    assert result.status == 0
    assert requested == ["/r0", "/r1", "/r2", "/r3", "/r4", "/r5"]
    assert "/r6" not in requested


@pytest.mark.asyncio
async def test_redirect_to_loopback_blocked_at_third_hop() -> None:
    requested: list[str] = []
    chain = {
        "/a": "http://api.example.com/b",
        "/b": "http://other.example.com/c",
        "/c": "http://127.0.0.1/admin",
    }

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        location = chain.get(request.url.path)
        if location is not None:
            return httpx.Response(302, headers={"Location": location})
        return httpx.Response(200, text="internal secrets")

    engine = _engine(handler)
    result = await engine.execute(RequestDescriptor(method="GET", url="http://api.example.com/a"))

    assert result.error_kind == "redirect_blocked"
    assert result.verdict is not None
    assert result.verdict.outcome is Verdict.BLOCKED_HOST
    assert "redirect blocked" in (result.error or "")
    assert len(requested) == 3
    assert all("127.0.0.1" not in url for url in requested)


@pytest.mark.asyncio
async def test_blocked_initial_url_never_reaches_transport() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected request to {request.url}")

    engine = _engine(handler)
    result = await engine.execute(
        RequestDescriptor(method="GET", url="http://169.254.169.254/latest/meta-data")
    )

    assert result.error_kind == "ssrf_protection"
    assert result.verdict is not None
    assert result.verdict.outcome is Verdict.BLOCKED_IP


@pytest.mark.asyncio
async def test_agent_engine_without_policy_reaches_loopback() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "127.0.0.1"
        return httpx.Response(200, text="local")

    engine = _engine(handler, url_policy=None)
    result = await engine.execute(RequestDescriptor(method="GET", url="http://127.0.0.1:3000/"))

    assert result.ok
    assert result.body == "local"


@pytest.mark.asyncio
async def test_response_body_truncated_at_cap() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"x" * 25)

    engine = _engine(handler, max_response_bytes=10)
    result = await engine.execute(RequestDescriptor(method="GET", url="http://api.example.com/"))

    assert result.ok
    assert result.body == "x" * 10
    assert result.truncated is True


@pytest.mark.asyncio
async def test_get_request_drops_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    engine = _engine(handler)
    result = await engine.execute(
        RequestDescriptor(method="GET", url="http://api.example.com/", body="ignored")
    )

    assert result.status == 204
    assert seen[0].content == b""


@pytest.mark.asyncio
async def test_request_headers_override_client_defaults() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    engine = _engine(handler)
    await engine.execute(
        RequestDescriptor(
            method="GET",
            url="http://api.example.com/",
            headers={"user-agent": "first", "User-Agent": "custom/1"},
        )
    )

    assert seen[0].headers.get_list("user-agent") == ["custom/1"]


@pytest.mark.asyncio
async def test_target_error_status_is_a_normal_result() -> None:
    engine = _engine(lambda _request: httpx.Response(500, text="boom"))
    descriptor = RequestDescriptor(method="DELETE", url="http://api.example.com/x")
    result = await engine.execute(descriptor)

    assert result.ok
    assert result.status == 500
    assert result.status_text == "Internal Server Error"


@pytest.mark.asyncio
async def test_transport_timeout_maps_to_timeout_kind() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    engine = _engine(handler)
    result = await engine.execute(RequestDescriptor(method="GET", url="http://api.example.com/"))

    assert result.error_kind == "timeout"
    assert result.status == 0


@pytest.mark.asyncio
async def test_overall_deadline_covers_slow_targets() -> None:
    async def handler(_request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1.0)
        return httpx.Response(200)

    engine = _engine(handler, timeout_s=0.05)
    result = await engine.execute(RequestDescriptor(method="GET", url="http://api.example.com/"))

    assert result.error_kind == "timeout"
    assert "timed out" in (result.error or "")


@pytest.mark.asyncio
async def test_connect_failure_maps_to_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    engine = _engine(handler)
    result = await engine.execute(RequestDescriptor(method="GET", url="http://api.example.com/"))

    assert result.error_kind == "network_error"
    assert result.to_payload()["error"] == result.error


def test_flatten_headers_keeps_repeats_and_casing() -> None:
    headers = httpx.Headers([("Set-Cookie", "a=1"), ("Set-Cookie", "b=2"), ("X-Id", "7")])
    assert flatten_headers(headers) == {"Set-Cookie": ["a=1", "b=2"], "X-Id": ["7"]}


@pytest.mark.asyncio
async def test_read_capped_exact_size_not_truncated() -> None:
    response = httpx.Response(200, content=b"abcd")
    body, truncated = await read_capped(response, 4)
    assert body == b"abcd"
    assert truncated is False
