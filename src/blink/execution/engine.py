"""HTTP execution engine shared by the public service and the local agent."""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from blink import __version__
from blink.config import Settings
from blink.errors import BlinkError, MalformedTargetError, NetworkError, RequestTimeout
from blink.execution.redirects import RedirectGuard
from blink.execution.types import ExecutionResult, RequestDescriptor
from blink.security.url_guard import UrlPolicy

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RESPONSE_BYTES = 50 * 1024 * 1024
DEFAULT_MAX_REDIRECTS = 5


def _elapsed_ms(started: float) -> int:
    return max(0, int((time.perf_counter() - started) * 1000))


def flatten_headers(headers: httpx.Headers) -> dict[str, list[str]]:
    flattened: dict[str, list[str]] = {}
    for raw_name, raw_value in headers.raw:
        name = raw_name.decode(headers.encoding)
        flattened.setdefault(name, []).append(raw_value.decode(headers.encoding))
    return flattened


async def read_capped(response: httpx.Response, max_bytes: int) -> tuple[bytes, bool]:
    """Read at most ``max_bytes`` of the body; report whether anything was dropped."""
    buffer = bytearray()
    async for chunk in response.aiter_bytes():
        remaining = max_bytes - len(buffer)
        if len(chunk) > remaining:
            buffer.extend(chunk[: max(0, remaining)])
            return bytes(buffer), True
        buffer.extend(chunk)
    return bytes(buffer), False


class ExecutionEngine:
    """Send one request descriptor and normalize what comes back.

    No retries: a failure while sending or receiving ends the call and is
    reported in the result. Target HTTP error statuses are ordinary results.
    """

    def __init__(
        self,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_SECONDS,
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        url_policy: UrlPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        user_agent: str = f"blink/{__version__}",
    ) -> None:
        self.timeout_s = timeout_s
        self.max_response_bytes = max_response_bytes
        self.max_redirects = max_redirects
        self.url_policy = url_policy
        self.user_agent = user_agent
        self._transport = transport

    async def execute(self, descriptor: RequestDescriptor) -> ExecutionResult:
        started = time.perf_counter()
        try:
            # one deadline covers validation, connect, every hop and the body read
            result = await asyncio.wait_for(self._send(descriptor), timeout=self.timeout_s)
        except TimeoutError:
            exc = RequestTimeout(f"request timed out after {self.timeout_s:g}s")
            result = ExecutionResult.failure(exc, duration_ms=0)
        except BlinkError as exc:
            result = ExecutionResult.failure(exc, duration_ms=0)
        result.duration_ms = _elapsed_ms(started)

        if result.ok:
            logger.info(
                "executed %s %s -> %d in %dms%s",
                descriptor.method,
                descriptor.url,
                result.status,
                result.duration_ms,
                " (truncated)" if result.truncated else "",
            )
        else:
            logger.warning(
                "execution failed %s %s [%s]: %s",
                descriptor.method,
                descriptor.url,
                result.error_kind,
                result.error,
            )
        return result

    async def _send(self, descriptor: RequestDescriptor) -> ExecutionResult:
        guard = RedirectGuard(self.max_redirects, self.url_policy)
        await guard.admit(descriptor.url)

        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self.timeout_s,
            follow_redirects=False,
            headers={"User-Agent": self.user_agent},
        ) as client:
            try:
                request = client.build_request(
                    descriptor.method,
                    descriptor.url,
                    headers=descriptor.headers,
                    content=descriptor.outbound_body,
                )
            except (httpx.InvalidURL, ValueError) as exc:
                raise MalformedTargetError(f"failed to create request: {exc}") from exc

            try:
                response = await client.send(request, stream=True)
                while response.next_request is not None:
                    next_request = response.next_request
                    await response.aclose()
                    await guard.follow(str(next_request.url))
                    response = await client.send(next_request, stream=True)
                try:
                    body, truncated = await read_capped(response, self.max_response_bytes)
                finally:
                    await response.aclose()
            except httpx.UnsupportedProtocol as exc:
                raise MalformedTargetError(f"request failed: {exc}") from exc
            except httpx.TimeoutException as exc:
                raise RequestTimeout(f"request timed out: {exc}") from exc
            except httpx.HTTPError as exc:
                raise NetworkError(f"request failed: {exc}") from exc

        return ExecutionResult(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=flatten_headers(response.headers),
            body=body.decode("utf-8", errors="replace"),
            truncated=truncated,
        )


def build_service_engine(
    settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None
) -> ExecutionEngine:
    """Engine for the network-exposed service: SSRF policy on every hop."""
    return ExecutionEngine(
        timeout_s=settings.request_timeout,
        max_response_bytes=settings.max_response_size,
        max_redirects=settings.max_redirects,
        url_policy=UrlPolicy(
            allow_localhost=settings.allow_localhost,
            allow_private_ips=settings.allow_private_ips,
        ),
        transport=transport,
    )
