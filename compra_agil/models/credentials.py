"""
Domain models for the persisted credential bundle.

The bundle mirrors the browser storage-state document produced by the login
helper: a list of cookie-like records plus whatever other top-level keys the
browser wrote (kept untouched on rewrite).
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from jose import jwt
from jose.exceptions import JWTError
from pydantic import BaseModel, ConfigDict, Field


def token_expiry(token: Optional[str]) -> Optional[int]:
    """Return the ``exp`` claim of a JWT without verifying its signature."""
    if not token or not isinstance(token, str):
        return None
    try:
        claims = jwt.get_unverified_claims(token)
    except (JWTError, ValueError, TypeError):
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return normalize_epoch_seconds(exp)


def normalize_epoch_seconds(value: object) -> Optional[int]:
    """Coerce an epoch timestamp; session-scoped (-1) or empty values map to None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return None
    return seconds if seconds > 0 else None


class CredentialRecord(BaseModel):
    """One named token or cookie record."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    value: str = ""
    domain: Optional[str] = None
    path: str = "/"
    expires: Optional[float] = Field(
        None, description="Epoch seconds; -1 for session-scoped records."
    )
    http_only: Optional[bool] = Field(None, alias="httpOnly")
    secure: Optional[bool] = None
    same_site: Optional[str] = Field(None, alias="sameSite")

    @property
    def expires_at_epoch(self) -> Optional[int]:
        """Expiry preferring the token's own ``exp`` over the record attribute."""
        return token_expiry(self.value) or normalize_epoch_seconds(self.expires)


class CredentialBundle(BaseModel):
    """The full persisted set of auth records."""

    model_config = ConfigDict(extra="allow")

    cookies: List[CredentialRecord] = Field(default_factory=list)

    def find(self, names: Iterable[str]) -> Optional[CredentialRecord]:
        """Return the first record matching the alias priority list."""
        for name in names:
            for record in self.cookies:
                if record.name == name:
                    return record
        return None

    def upsert(
        self,
        name: str,
        value: str,
        *,
        expires: Optional[int],
        template: Optional[CredentialRecord] = None,
        default_domain: str = "heimdall.mercadopublico.cl",
    ) -> CredentialRecord:
        """Update a record in place or append one shaped like ``template``."""
        existing = self.find([name])
        if existing is not None:
            existing.value = value
            if expires:
                existing.expires = expires
            return existing

        record = CredentialRecord(
            name=name,
            value=value,
            domain=template.domain if template and template.domain else default_domain,
            path=template.path if template else "/",
            http_only=(
                template.http_only
                if template and template.http_only is not None
                else True
            ),
            secure=template.secure if template and template.secure is not None else True,
            same_site=template.same_site if template and template.same_site else "Lax",
            expires=expires or -1,
        )
        self.cookies.append(record)
        return record

    def to_document(self) -> dict:
        """Serialize back to the on-disk JSON layout."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


__all__ = [
    "CredentialBundle",
    "CredentialRecord",
    "normalize_epoch_seconds",
    "token_expiry",
]
