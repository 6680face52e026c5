"""
Error taxonomy shared by the token manager, request executor and pipelines.

Every failure raised by the acquisition pipeline carries an ``ErrorKind`` so
callers branch on the kind instead of probing ad hoc attributes.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Tagged classification of a pipeline failure."""

    TRANSIENT = "transient"
    FATAL_CLIENT = "fatal_client"
    FATAL_AUTH = "fatal_auth"
    FATAL_PARSE = "fatal_parse"


class ProcurementAPIError(Exception):
    """Base error for every failure talking to the procurement API."""

    kind: ErrorKind = ErrorKind.FATAL_CLIENT

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.TRANSIENT

    @property
    def requires_reauth(self) -> bool:
        return self.kind is ErrorKind.FATAL_AUTH


class TransientNetworkError(ProcurementAPIError):
    """Timeout or connection fault; worth retrying."""

    kind = ErrorKind.TRANSIENT


class ServerError(ProcurementAPIError):
    """5xx response from the remote service; worth retrying."""

    kind = ErrorKind.TRANSIENT


class ClientError(ProcurementAPIError):
    """400 response, the request itself is malformed."""

    kind = ErrorKind.FATAL_CLIENT


class HttpError(ProcurementAPIError):
    """Unexpected status code that fits no other class."""

    kind = ErrorKind.FATAL_CLIENT

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"HTTP {status_code}: {body}", status_code=status_code)
        self.body = body


class AuthExpired(ProcurementAPIError):
    """Credentials are no longer usable; manual re-authentication is required."""

    kind = ErrorKind.FATAL_AUTH

    def __init__(
        self,
        message: str = "Session token expired or missing. Manual re-auth required.",
        *,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, status_code=status_code)


class MalformedResponse(ProcurementAPIError):
    """Response body could not be parsed or had an unexpected shape."""

    kind = ErrorKind.FATAL_PARSE


class CredentialStoreError(Exception):
    """Raised when the persisted credential bundle cannot be read or written."""


__all__ = [
    "AuthExpired",
    "ClientError",
    "CredentialStoreError",
    "ErrorKind",
    "HttpError",
    "MalformedResponse",
    "ProcurementAPIError",
    "ServerError",
    "TransientNetworkError",
]
