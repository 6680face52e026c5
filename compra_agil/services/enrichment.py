"""
Detail enrichment for listings about to close with no offers yet.

Eligible listings are fetched in fixed-size windows. Every task of a window
settles before the next window starts; there is no continuously fed pool.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from compra_agil.clients.compra_agil_api import CompraAgilAPIClient
from compra_agil.core.errors import AuthExpired
from compra_agil.schemas.opportunity import (
    EnrichedOpportunity,
    Opportunity,
    OpportunityDetail,
)
from compra_agil.services.progress import NullProgressSink, ProgressSink
from compra_agil.utils.http import RetryPolicy

logger = logging.getLogger(__name__)

_DMY_PATTERN = re.compile(
    r"^(\d{2})/(\d{2})/(\d{4})(?:\s+(\d{2}):(\d{2})(?::(\d{2}))?)?$"
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_closing_date(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 or ``DD/MM/YYYY[ HH:MM[:SS]]``; naive values are local time."""
    if not value or not isinstance(value, str):
        return None

    parsed: Optional[datetime]
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        parsed = None

    if parsed is None:
        match = _DMY_PATTERN.match(value.strip())
        if not match:
            return None
        dd, mm, yyyy, hh, minute, ss = match.groups()
        try:
            parsed = datetime(
                int(yyyy),
                int(mm),
                int(dd),
                int(hh or 0),
                int(minute or 0),
                int(ss or 0),
            )
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def is_eligible(
    opportunity: Opportunity,
    now: datetime,
    *,
    window: timedelta = timedelta(hours=72),
) -> bool:
    """No offers at all and closing within ``[now, now + window]``."""
    if opportunity.own_offers != 0 or opportunity.total_offers != 0:
        return False

    closing = parse_closing_date(opportunity.closing_date)
    if closing is None:
        return False

    delta = closing - now
    return timedelta(0) <= delta <= window


def map_detail(opportunity: Opportunity, detail: Dict[str, Any]) -> EnrichedOpportunity:
    """Combine a listing with the fields kept from its detail payload."""
    products = detail.get("productos")
    return EnrichedOpportunity(
        code=opportunity.code,
        name=opportunity.name,
        organization=opportunity.organization,
        available_amount=opportunity.available_amount,
        closing_date=opportunity.closing_date,
        detail=OpportunityDetail.model_validate(
            {
                "descripcion": detail.get("descripcion"),
                "moneda": detail.get("moneda"),
                "montoMoneda": detail.get("montoMoneda"),
                "montoTotalEstimado": detail.get("montoTotalEstimado"),
                "plazoEntrega": detail.get("plazoEntrega"),
                "direccion": detail.get("direccion"),
                "productos": products if isinstance(products, list) else [],
                "institucion": detail.get("institucion") or {},
            }
        ),
    )


def batch_windows(items: Sequence[Opportunity], size: int) -> List[List[Opportunity]]:
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


class EnrichmentBatcher:
    """Fetch detail for eligible listings in barrier-synchronized windows."""

    def __init__(
        self,
        api: CompraAgilAPIClient,
        *,
        concurrency: int = 5,
        policy: RetryPolicy | None = None,
        window_hours: float = 72.0,
        progress: ProgressSink | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._api = api
        self._concurrency = concurrency
        self._policy = policy or RetryPolicy(timeout_ms=15000, max_retries=3)
        self._window = timedelta(hours=window_hours)
        self._progress = progress or NullProgressSink()
        self._clock = clock

    def select(
        self, opportunities: Iterable[Opportunity], now: Optional[datetime] = None
    ) -> List[Opportunity]:
        reference = now or self._clock()
        return [
            item
            for item in opportunities
            if is_eligible(item, reference, window=self._window)
        ]

    async def enrich(self, opportunities: Sequence[Opportunity]) -> List[EnrichedOpportunity]:
        """Return enriched eligible listings; order within a window is not guaranteed.

        ``AuthExpired`` from any item aborts the run once its window settles.
        Every other per-item failure drops that item.
        """
        eligible = self.select(opportunities)
        self._progress.emit(
            "enrichment_started", eligible=len(eligible), total=len(opportunities)
        )
        if not eligible:
            return []

        enriched: List[EnrichedOpportunity] = []
        position = 0
        for window_index, window in enumerate(batch_windows(eligible, self._concurrency)):
            outcomes = await asyncio.gather(
                *(self._enrich_one(item) for item in window),
                return_exceptions=True,
            )

            auth_failure: Optional[AuthExpired] = None
            for item, outcome in zip(window, outcomes):
                position += 1
                if isinstance(outcome, EnrichedOpportunity):
                    enriched.append(outcome)
                    self._progress.emit(
                        "item_enriched",
                        code=item.code,
                        index=position,
                        total=len(eligible),
                    )
                    continue
                if isinstance(outcome, AuthExpired):
                    auth_failure = auth_failure or outcome
                    continue
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("Skipping %s after retries: %s", item.code, outcome)
                self._progress.emit(
                    "item_skipped",
                    code=item.code,
                    index=position,
                    total=len(eligible),
                    error=str(outcome),
                )

            self._progress.emit(
                "window_settled", window=window_index + 1, size=len(window)
            )
            if auth_failure is not None:
                logger.error("Authentication expired during enrichment; aborting run")
                raise auth_failure

        self._progress.emit(
            "enrichment_finished", enriched=len(enriched), eligible=len(eligible)
        )
        return enriched

    async def _enrich_one(self, opportunity: Opportunity) -> EnrichedOpportunity:
        detail = await self._api.fetch_detail(opportunity.code, policy=self._policy)
        return map_detail(opportunity, detail)


__all__ = [
    "EnrichmentBatcher",
    "batch_windows",
    "is_eligible",
    "map_detail",
    "parse_closing_date",
]
