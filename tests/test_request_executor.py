"""Retry/backoff behaviour of the authenticated GET executor."""

from __future__ import annotations

import httpx
import pytest

from compra_agil.core.errors import (
    AuthExpired,
    ClientError,
    ErrorKind,
    HttpError,
    MalformedResponse,
    ServerError,
    TransientNetworkError,
)
from compra_agil.utils.http import RetryPolicy, execute

URL = "https://api.example/v1/compra-agil-busqueda/buscar"


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _scripted(responses):
    """Transport answering with the given callables/responses in order."""
    calls: list[httpx.Request] = []
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    return httpx.MockTransport(handler), calls


def test_backoff_doubles_per_attempt() -> None:
    policy = RetryPolicy(backoff_base_ms=1000)
    assert [policy.backoff_seconds(n) for n in range(3)] == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_retries_server_errors_then_succeeds() -> None:
    transport, calls = _scripted(
        [
            httpx.Response(503, text="busy"),
            httpx.Response(503, text="busy"),
            httpx.Response(200, json={"payload": {"ok": True}}),
        ]
    )
    sleep = RecordingSleep()

    async with httpx.AsyncClient(transport=transport) as client:
        body = await execute(
            client,
            URL,
            auth_token="tok",
            policy=RetryPolicy(max_retries=3, backoff_base_ms=1000),
            sleep=sleep,
        )

    assert body == {"payload": {"ok": True}}
    assert len(calls) == 3
    assert sleep.delays == [1.0, 2.0]
    assert calls[0].headers["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_exhausted_retries_raise_last_error() -> None:
    transport, calls = _scripted([httpx.Response(503, text="down")] * 3)
    sleep = RecordingSleep()

    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(ServerError) as excinfo:
            await execute(
                client,
                URL,
                auth_token="tok",
                policy=RetryPolicy(max_retries=2),
                sleep=sleep,
            )

    assert len(calls) == 3
    assert sleep.delays == [1.0, 2.0]
    assert excinfo.value.status_code == 503
    assert excinfo.value.kind is ErrorKind.TRANSIENT


@pytest.mark.asyncio
async def test_unauthorized_is_not_retried() -> None:
    transport, calls = _scripted([httpx.Response(401, text="nope")])
    sleep = RecordingSleep()

    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(AuthExpired) as excinfo:
            await execute(client, URL, auth_token="tok", sleep=sleep)

    assert len(calls) == 1
    assert sleep.delays == []
    assert excinfo.value.requires_reauth


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("response", "error_type"),
    [
        (httpx.Response(400, text="bad filter"), ClientError),
        (httpx.Response(404, text="missing"), HttpError),
        (httpx.Response(200, text="<html>not json</html>"), MalformedResponse),
    ],
)
async def test_fatal_responses_fail_on_first_attempt(response, error_type) -> None:
    transport, calls = _scripted([response])

    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(error_type) as excinfo:
            await execute(client, URL, auth_token="tok", sleep=RecordingSleep())

    assert len(calls) == 1
    assert not excinfo.value.retryable


@pytest.mark.asyncio
async def test_http_error_keeps_status_and_truncated_body() -> None:
    transport, _ = _scripted([httpx.Response(418, text="x" * 500)])

    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(HttpError) as excinfo:
            await execute(client, URL, auth_token="tok", sleep=RecordingSleep())

    assert excinfo.value.status_code == 418
    assert len(excinfo.value.body) == 200


@pytest.mark.asyncio
async def test_timeouts_are_transient() -> None:
    request = httpx.Request("GET", URL)
    transport, calls = _scripted(
        [
            httpx.ReadTimeout("slow", request=request),
            httpx.Response(200, json={"payload": {}}),
        ]
    )
    sleep = RecordingSleep()

    async with httpx.AsyncClient(transport=transport) as client:
        body = await execute(
            client, URL, auth_token="tok", policy=RetryPolicy(max_retries=1), sleep=sleep
        )

    assert body == {"payload": {}}
    assert len(calls) == 2
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_connection_errors_exhaust_as_transient() -> None:
    request = httpx.Request("GET", URL)
    transport, calls = _scripted([httpx.ConnectError("refused", request=request)])

    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(TransientNetworkError):
            await execute(
                client,
                URL,
                auth_token="tok",
                policy=RetryPolicy(max_retries=0),
                sleep=RecordingSleep(),
            )

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_undecodable_body_is_malformed_and_not_retried() -> None:
    transport, calls = _scripted(
        [
            httpx.Response(
                200,
                headers={"Content-Encoding": "gzip"},
                stream=httpx.ByteStream(b"not-gzip"),
            )
        ]
    )
    sleep = RecordingSleep()

    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(MalformedResponse) as excinfo:
            await execute(
                client, URL, auth_token="tok", policy=RetryPolicy(max_retries=2), sleep=sleep
            )

    assert len(calls) == 1
    assert sleep.delays == []
    assert excinfo.value.kind is ErrorKind.FATAL_PARSE


@pytest.mark.asyncio
async def test_other_request_errors_stay_in_taxonomy() -> None:
    request = httpx.Request("GET", URL)
    transport, calls = _scripted([httpx.TooManyRedirects("loop", request=request)])

    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(ClientError) as excinfo:
            await execute(
                client, URL, auth_token="tok", policy=RetryPolicy(max_retries=2), sleep=RecordingSleep()
            )

    assert len(calls) == 1
    assert excinfo.value.kind is ErrorKind.FATAL_CLIENT
