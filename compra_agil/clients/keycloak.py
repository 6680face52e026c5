"""
Keycloak token endpoint client.

Performs the refresh-token grant against the identity provider that issues
the procurement API bearer tokens.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from compra_agil.core.config import CredentialSettings
from compra_agil.core.errors import AuthExpired


class RefreshGrant(BaseModel):
    """Successful token endpoint response."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    refresh_expires_in: Optional[int] = None


class KeycloakTokenClient:
    """Exchange a refresh token for a new access token."""

    def __init__(
        self,
        settings: CredentialSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    async def refresh(self, refresh_token: str) -> RefreshGrant:
        """Run one refresh grant; every failure means manual re-auth."""
        payload = {
            "grant_type": "refresh_token",
            "client_id": self._settings.client_id,
            "refresh_token": refresh_token,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self._settings.refresh_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(self._settings.token_url, data=payload)
        except httpx.TimeoutException as exc:
            raise AuthExpired("Token refresh request timed out.") from exc
        except httpx.HTTPError as exc:
            raise AuthExpired(f"Token refresh request failed: {exc}") from exc

        if response.status_code != HTTPStatus.OK:
            raise AuthExpired(
                f"Token endpoint returned HTTP {response.status_code}: "
                f"{response.text[:300]}",
                status_code=response.status_code,
            )

        try:
            token_payload = response.json()
        except ValueError as exc:
            raise AuthExpired(
                f"Failed to parse token refresh response: {exc}"
            ) from exc

        if not isinstance(token_payload, dict) or not token_payload.get("access_token"):
            raise AuthExpired("Token refresh response did not include access_token.")

        try:
            return RefreshGrant.model_validate(token_payload)
        except ValidationError as exc:
            raise AuthExpired(f"Unexpected token refresh payload: {exc}") from exc


__all__ = ["KeycloakTokenClient", "RefreshGrant"]
