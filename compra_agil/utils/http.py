"""HTTP utilities providing authenticated GETs with retry/backoff semantics."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from compra_agil.core.errors import (
    AuthExpired,
    ClientError,
    HttpError,
    MalformedResponse,
    ProcurementAPIError,
    ServerError,
    TransientNetworkError,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

_BODY_PREVIEW_CHARS = 200


@dataclass(frozen=True)
class RetryPolicy:
    """Timeout and retry budget for a single logical request."""

    timeout_ms: int = 15000
    max_retries: int = 3
    backoff_base_ms: int = 1000

    def backoff_seconds(self, attempt: int) -> float:
        """Delay before retrying after ``attempt`` (0-based) failed."""
        return self.backoff_base_ms * (2**attempt) / 1000


def classify_response(response: httpx.Response) -> Any:
    """Return the parsed JSON body or raise the matching pipeline error."""
    status = response.status_code
    if status == HTTPStatus.OK:
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponse(
                f"Failed to parse JSON from {response.request.url.path}: {exc}",
                status_code=status,
            ) from exc

    preview = response.text[:_BODY_PREVIEW_CHARS]
    if status == HTTPStatus.UNAUTHORIZED:
        raise AuthExpired(
            f"HTTP 401 for {response.request.url.path}. "
            "Session refresh failed or expired.",
            status_code=status,
        )
    if status == HTTPStatus.BAD_REQUEST:
        raise ClientError(f"HTTP 400: {preview}", status_code=status)
    if 500 <= status < 600:
        raise ServerError(f"HTTP {status}: {preview}", status_code=status)
    raise HttpError(status, preview)


async def execute(
    client: httpx.AsyncClient,
    url: str,
    *,
    auth_token: str,
    policy: RetryPolicy | None = None,
    params: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
    sleep: Sleep = asyncio.sleep,
) -> Any:
    """Issue one authenticated GET, retrying transient failures with backoff.

    Attempts run ``0..max_retries``. Fatal failures propagate on the attempt
    they occur; exhausting the budget re-raises the last transient failure.
    """
    config = policy or RetryPolicy()
    request_headers = {"Authorization": f"Bearer {auth_token}"}
    if headers:
        request_headers.update(headers)

    last_error: ProcurementAPIError | None = None
    for attempt in range(config.max_retries + 1):
        try:
            try:
                response = await client.get(
                    url,
                    params=params,
                    headers=request_headers,
                    timeout=config.timeout_ms / 1000,
                )
            except httpx.TimeoutException as exc:
                raise TransientNetworkError(
                    f"Request timed out after {config.timeout_ms / 1000:g}s"
                ) from exc
            except httpx.TransportError as exc:
                raise TransientNetworkError(f"Connection error: {exc}") from exc
            except httpx.DecodingError as exc:
                raise MalformedResponse(f"Failed to decode response body: {exc}") from exc
            except httpx.RequestError as exc:
                raise ClientError(f"Request failed: {exc}") from exc
            return classify_response(response)
        except ProcurementAPIError as exc:
            if not exc.retryable:
                raise
            last_error = exc
            if attempt >= config.max_retries:
                break
            delay = config.backoff_seconds(attempt)
            logger.warning(
                "Attempt %d failed: %s. Retrying in %.1fs...",
                attempt + 1,
                exc.message,
                delay,
            )
            await sleep(delay)

    if last_error is not None:
        raise last_error
    raise RuntimeError("Request failed without raising an exception")


__all__ = ["RetryPolicy", "Sleep", "classify_response", "execute"]
