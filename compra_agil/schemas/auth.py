"""Schemas describing token and session health state."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class TokenState(BaseModel):
    """Derived validity of one stored token."""

    record_name: Optional[str] = None
    present: bool = False
    expires_at_epoch: Optional[int] = None
    expires_at: Optional[datetime] = None
    seconds_remaining: Optional[int] = None
    is_expired: Optional[bool] = None
    is_expiring_soon: Optional[bool] = None

    @property
    def hours_left(self) -> Optional[float]:
        if self.seconds_remaining is None:
            return None
        return self.seconds_remaining / 3600


class TokenInspection(BaseModel):
    """Read-only report over the stored access and refresh tokens."""

    session_path: str
    inspected_at: datetime
    min_access_validity_seconds: int
    access_token: TokenState = Field(default_factory=TokenState)
    refresh_token: TokenState = Field(default_factory=TokenState)
    error: Optional[str] = None


class HealthLevel(str, Enum):
    OK = "OK"
    WARN = "WARN"
    CRITICAL = "CRITICAL"

    @property
    def exit_code(self) -> int:
        return {"OK": 0, "WARN": 1, "CRITICAL": 2}[self.value]


class ProbeResult(BaseModel):
    ok: bool
    status: int = 0
    error: Optional[str] = None


class HealthVerdict(BaseModel):
    """Outcome of the session health classifier."""

    level: HealthLevel
    reason: str
    min_hours: Optional[float] = None
    signals: Dict[str, Optional[float]] = Field(default_factory=dict)
    probe: Optional[ProbeResult] = None

    @property
    def exit_code(self) -> int:
        return self.level.exit_code


__all__ = [
    "HealthLevel",
    "HealthVerdict",
    "ProbeResult",
    "TokenInspection",
    "TokenState",
]
