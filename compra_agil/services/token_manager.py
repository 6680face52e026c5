"""
Access token lifecycle management.

The credential file is the only source of truth. ``TokenManager`` keeps an
in-memory copy of the last token it handed out purely as a cache; callers
invalidate it when the API rejects the token.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from compra_agil.clients.credential_store import CredentialStore
from compra_agil.clients.keycloak import KeycloakTokenClient, RefreshGrant
from compra_agil.core.errors import AuthExpired, CredentialStoreError
from compra_agil.models.credentials import (
    CredentialBundle,
    CredentialRecord,
    normalize_epoch_seconds,
    token_expiry,
)
from compra_agil.schemas.auth import TokenInspection, TokenState
from compra_agil.services.progress import NullProgressSink, ProgressSink

logger = logging.getLogger(__name__)

ACCESS_TOKEN_NAMES = ("access_token_ccr", "access_token")
REFRESH_TOKEN_NAMES = ("refresh_token",)
ACCESS_TEMPLATE_NAMES = ("access_token_ccr", "access_token", "KEYCLOAK_IDENTITY")


def build_token_state(
    record: Optional[CredentialRecord],
    *,
    min_validity_seconds: int,
    now: float,
) -> TokenState:
    """Derive validity for a stored record, preferring the JWT ``exp`` claim."""
    if record is None:
        return TokenState()

    expires_at_epoch = record.expires_at_epoch
    remaining = int(expires_at_epoch - now) if expires_at_epoch else None
    return TokenState(
        record_name=record.name,
        present=bool(record.value),
        expires_at_epoch=expires_at_epoch,
        expires_at=(
            datetime.fromtimestamp(expires_at_epoch, tz=timezone.utc)
            if expires_at_epoch
            else None
        ),
        seconds_remaining=remaining,
        is_expired=remaining <= 0 if remaining is not None else None,
        is_expiring_soon=(
            remaining <= min_validity_seconds if remaining is not None else None
        ),
    )


class TokenManager:
    """Hand out access tokens with a guaranteed minimum remaining validity."""

    def __init__(
        self,
        store: CredentialStore,
        token_client: KeycloakTokenClient,
        *,
        min_validity_seconds: int = 300,
        assumed_access_lifetime_seconds: int = 900,
        progress: ProgressSink | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._client = token_client
        self._min_validity = min_validity_seconds
        self._assumed_lifetime = assumed_access_lifetime_seconds
        self._progress = progress or NullProgressSink()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._cached: Optional[Tuple[str, int]] = None

    @property
    def min_validity_seconds(self) -> int:
        return self._min_validity

    @property
    def store(self) -> CredentialStore:
        return self._store

    def invalidate(self) -> None:
        """Drop the cached token so the next call re-reads the credential file."""
        self._cached = None

    async def get_valid_token(self) -> str:
        """Return an access token valid for more than the configured minimum.

        Refreshes at most once per call and never retries a failed refresh:
        replaying a rotated refresh token can revoke it.
        """
        async with self._lock:
            now = self._clock()
            if self._cached is not None:
                token, expires_at = self._cached
                if expires_at - now > self._min_validity:
                    return token
                self._cached = None

            bundle = self._load_bundle()
            access_record = bundle.find(ACCESS_TOKEN_NAMES)
            state = build_token_state(
                access_record, min_validity_seconds=self._min_validity, now=now
            )
            if (
                access_record is not None
                and access_record.value
                and state.seconds_remaining is not None
                and state.seconds_remaining > self._min_validity
            ):
                self._cached = (access_record.value, state.expires_at_epoch or 0)
                return access_record.value

            refresh_record = bundle.find(REFRESH_TOKEN_NAMES)
            if refresh_record is None or not refresh_record.value:
                raise AuthExpired(
                    "No refresh_token found in the credential file. "
                    "Manual re-auth required."
                )

            logger.info(
                "Access token %s (remaining=%s s); refreshing",
                "missing" if not state.present else "expiring",
                state.seconds_remaining,
            )
            grant = await self._client.refresh(refresh_record.value)
            access_exp = self._persist_grant(bundle, grant, refresh_record)
            self._progress.emit(
                "token_refreshed",
                expires_at=access_exp,
                rotated=bool(grant.refresh_token),
            )

            remaining = access_exp - self._clock()
            if remaining <= self._min_validity:
                raise AuthExpired(
                    f"Refreshed access token only valid for {int(remaining)}s."
                )
            self._cached = (grant.access_token, access_exp)
            return grant.access_token

    def inspect_token(self) -> TokenInspection:
        """Report stored token state without refreshing. Never raises."""
        now = self._clock()
        error: Optional[str] = None
        try:
            bundle = self._store.load()
        except CredentialStoreError as exc:
            bundle = CredentialBundle()
            error = str(exc)

        return TokenInspection(
            session_path=str(self._store.path),
            inspected_at=datetime.fromtimestamp(now, tz=timezone.utc),
            min_access_validity_seconds=self._min_validity,
            access_token=build_token_state(
                bundle.find(ACCESS_TOKEN_NAMES),
                min_validity_seconds=self._min_validity,
                now=now,
            ),
            refresh_token=build_token_state(
                bundle.find(REFRESH_TOKEN_NAMES),
                min_validity_seconds=self._min_validity,
                now=now,
            ),
            error=error,
        )

    def _load_bundle(self) -> CredentialBundle:
        try:
            return self._store.load()
        except CredentialStoreError as exc:
            raise AuthExpired(f"{exc}. Manual re-auth required.") from exc

    def _persist_grant(
        self,
        bundle: CredentialBundle,
        grant: RefreshGrant,
        refresh_record: CredentialRecord,
    ) -> int:
        """Write refreshed tokens back and return the new access expiry.

        A grant with neither a JWT ``exp`` nor ``expires_in`` is recorded with
        the assumed access lifetime so later calls reuse it instead of
        refreshing again.
        """
        now = int(self._clock())
        # Keep the prior refresh token when the provider does not rotate it.
        refresh_token = grant.refresh_token or refresh_record.value
        prior_refresh_exp = normalize_epoch_seconds(refresh_record.expires)

        access_exp = token_expiry(grant.access_token) or (
            now + grant.expires_in
            if grant.expires_in is not None
            else now + self._assumed_lifetime
        )
        refresh_exp = token_expiry(refresh_token) or (
            now + grant.refresh_expires_in
            if grant.refresh_expires_in is not None
            else prior_refresh_exp
        )

        template = bundle.find(ACCESS_TEMPLATE_NAMES)
        for name in ACCESS_TOKEN_NAMES:
            bundle.upsert(name, grant.access_token, expires=access_exp, template=template)
        bundle.upsert(
            refresh_record.name, refresh_token, expires=refresh_exp, template=refresh_record
        )

        try:
            self._store.save(bundle)
        except CredentialStoreError as exc:
            raise AuthExpired(f"Refreshed tokens could not be persisted: {exc}") from exc
        return access_exp


__all__ = [
    "ACCESS_TOKEN_NAMES",
    "REFRESH_TOKEN_NAMES",
    "TokenManager",
    "build_token_state",
]
