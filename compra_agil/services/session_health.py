"""
Session health classification.

No single stored signal proves the session is usable, so the classifier takes
the most pessimistic of the signals it can parse. A live probe, when enabled,
outranks every predicted expiry.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Iterable, Optional

from compra_agil.clients.compra_agil_api import CompraAgilAPIClient
from compra_agil.clients.credential_store import CredentialStore
from compra_agil.core.errors import CredentialStoreError, ProcurementAPIError
from compra_agil.models.credentials import (
    CredentialBundle,
    normalize_epoch_seconds,
    token_expiry,
)
from compra_agil.schemas.auth import HealthLevel, HealthVerdict, ProbeResult
from compra_agil.services.token_manager import ACCESS_TOKEN_NAMES

logger = logging.getLogger(__name__)

IDENTITY_RECORD = "KEYCLOAK_IDENTITY"
SESSION_RECORD = "KEYCLOAK_SESSION"


def format_hours(hours: Optional[float]) -> str:
    return "unknown" if hours is None else f"{hours:.1f}h"


def classify(
    hours_left: Iterable[Optional[float]],
    *,
    warn_hours: float = 24.0,
    crit_hours: float = 6.0,
) -> HealthVerdict:
    """Map the minimum remaining hours across signals to a verdict."""
    known = [value for value in hours_left if value is not None]
    if not known:
        # Ambiguous rather than proven broken.
        return HealthVerdict(
            level=HealthLevel.WARN, reason="No parseable expiry timestamps"
        )

    min_hours = min(known)
    if min_hours <= 0:
        level, reason = HealthLevel.CRITICAL, "Session/token expired"
    elif min_hours <= crit_hours:
        level, reason = (
            HealthLevel.CRITICAL,
            f"Expiring very soon ({format_hours(min_hours)})",
        )
    elif min_hours <= warn_hours:
        level, reason = HealthLevel.WARN, f"Expiring soon ({format_hours(min_hours)})"
    else:
        level, reason = (
            HealthLevel.OK,
            f"Healthy ({format_hours(min_hours)} min remaining signal)",
        )
    return HealthVerdict(level=level, reason=reason, min_hours=min_hours)


class SessionHealthClassifier:
    """Produce an OK / WARN / CRITICAL verdict for the stored session."""

    def __init__(
        self,
        store: CredentialStore,
        *,
        warn_hours: float = 24.0,
        crit_hours: float = 6.0,
        api: CompraAgilAPIClient | None = None,
        probe_timeout_ms: int = 10000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._warn_hours = warn_hours
        self._crit_hours = crit_hours
        self._api = api
        self._probe_timeout_ms = probe_timeout_ms
        self._clock = clock

    def read_signals(self, bundle: CredentialBundle) -> Dict[str, Optional[float]]:
        """Hours left per signal; ``None`` where the signal cannot be parsed."""
        now = self._clock()

        def hours_until(epoch: Optional[int]) -> Optional[float]:
            return (epoch - now) / 3600 if epoch else None

        access = bundle.find(ACCESS_TOKEN_NAMES)
        identity = bundle.find([IDENTITY_RECORD])
        session = bundle.find([SESSION_RECORD])
        return {
            "access_token": hours_until(access.expires_at_epoch) if access else None,
            IDENTITY_RECORD: hours_until(token_expiry(identity.value)) if identity else None,
            SESSION_RECORD: (
                hours_until(normalize_epoch_seconds(session.expires)) if session else None
            ),
        }

    async def check(
        self, *, probe: bool = False, api: CompraAgilAPIClient | None = None
    ) -> HealthVerdict:
        if not self._store.exists():
            return HealthVerdict(
                level=HealthLevel.CRITICAL,
                reason=f"{self._store.path.name} not found",
            )
        try:
            bundle = self._store.load()
        except CredentialStoreError as exc:
            return HealthVerdict(
                level=HealthLevel.CRITICAL, reason=f"invalid credential file ({exc})"
            )

        signals = self.read_signals(bundle)
        verdict = classify(
            signals.values(),
            warn_hours=self._warn_hours,
            crit_hours=self._crit_hours,
        )
        verdict.signals = signals

        if probe:
            access = bundle.find(ACCESS_TOKEN_NAMES)
            result = await self._probe(access.value if access else None, api or self._api)
            verdict.probe = result
            if not result.ok:
                verdict.level = HealthLevel.CRITICAL
                verdict.reason = (
                    f"API probe failed ({result.status}): {result.error or 'unknown error'}"
                )
        logger.info("Session health %s: %s", verdict.level.value, verdict.reason)
        return verdict

    async def _probe(
        self, bearer_token: Optional[str], api: CompraAgilAPIClient | None
    ) -> ProbeResult:
        if not bearer_token:
            return ProbeResult(ok=False, error="Missing bearer token")
        if api is None:
            return ProbeResult(ok=False, error="No API client configured for probe")
        try:
            await api.probe(bearer_token, timeout_ms=self._probe_timeout_ms)
        except ProcurementAPIError as exc:
            return ProbeResult(ok=False, status=exc.status_code or 0, error=exc.message[:180])
        return ProbeResult(ok=True, status=200)


__all__ = ["SessionHealthClassifier", "classify", "format_hours"]
