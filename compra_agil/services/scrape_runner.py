"""
End-to-end scrape run: crawl listings, then optionally enrich them.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from compra_agil.clients.compra_agil_api import CompraAgilAPIClient
from compra_agil.core.config import AppSettings
from compra_agil.schemas.opportunity import (
    CrawlFilters,
    EnrichedOpportunity,
    Opportunity,
)
from compra_agil.services.crawler import CrawlController, StopReason
from compra_agil.services.enrichment import EnrichmentBatcher
from compra_agil.services.progress import NullProgressSink, ProgressSink
from compra_agil.services.token_manager import TokenManager
from compra_agil.utils.http import RetryPolicy, Sleep

logger = logging.getLogger(__name__)

REGION_METROPOLITANA = 13


class ScrapeOptions(BaseModel):
    """Options for a single run; bounds match the configuration limits."""

    region: Optional[int] = None
    mis_rubros: bool = False
    max_pages: int = Field(10, ge=1, le=50)
    days_back: int = Field(7, ge=1, le=90)
    enrich: bool = False


class ScrapeRunResult(BaseModel):
    options: ScrapeOptions
    opportunities: List[Opportunity] = Field(default_factory=list)
    enriched: List[EnrichedOpportunity] = Field(default_factory=list)
    pages_fetched: int = 0
    stop_reason: StopReason = StopReason.MAX_PAGES

    def summary(self) -> List[Dict[str, Any]]:
        return [item.summary() for item in self.opportunities]


class SingleFlightGuard:
    """Reject a second run while one is in flight in this process."""

    def __init__(self) -> None:
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    def try_acquire(self) -> bool:
        if self._busy:
            return False
        self._busy = True
        return True

    def release(self) -> None:
        self._busy = False


class ScrapeRunner:
    """Wire token manager, API client, crawler and enrichment for one run."""

    def __init__(
        self,
        settings: AppSettings,
        token_manager: TokenManager,
        *,
        progress: ProgressSink | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._tokens = token_manager
        self._progress = progress or NullProgressSink()
        self._transport = transport
        self._sleep = sleep

    def default_options(self) -> ScrapeOptions:
        crawl = self._settings.crawl
        return ScrapeOptions(
            region=crawl.region,
            mis_rubros=crawl.mis_rubros,
            max_pages=crawl.max_pages,
            days_back=crawl.days_back,
            enrich=self._settings.enrichment.enabled,
        )

    def build_filters(self, options: ScrapeOptions, *, today: date | None = None) -> CrawlFilters:
        until = today or date.today()
        return CrawlFilters(
            since=until - timedelta(days=options.days_back),
            until=until,
            size=self._settings.api.page_size,
            region=options.region,
            mis_rubros=options.mis_rubros,
        )

    async def run(
        self,
        options: ScrapeOptions | None = None,
        *,
        progress: ProgressSink | None = None,
    ) -> ScrapeRunResult:
        opts = options or self.default_options()
        sink = progress or self._progress
        filters = self.build_filters(opts)
        sink.emit(
            "run_started",
            region=opts.region,
            mis_rubros=opts.mis_rubros,
            days_back=opts.days_back,
            max_pages=opts.max_pages,
            enrich=opts.enrich,
        )

        async with httpx.AsyncClient(transport=self._transport) as http_client:
            api = CompraAgilAPIClient(
                self._settings.api,
                http_client,
                token_manager=self._tokens,
                sleep=self._sleep,
            )
            crawler = CrawlController(
                api,
                page_delay_seconds=self._settings.crawl.page_delay_seconds,
                progress=sink,
                sleep=self._sleep,
            )
            crawl = await crawler.crawl(filters, opts.max_pages)
            result = ScrapeRunResult(
                options=opts,
                opportunities=crawl.items,
                pages_fetched=crawl.pages_fetched,
                stop_reason=crawl.stop_reason,
            )

            if opts.enrich:
                enrichment = self._settings.enrichment
                batcher = EnrichmentBatcher(
                    api,
                    concurrency=enrichment.concurrency,
                    policy=RetryPolicy(
                        timeout_ms=enrichment.timeout_ms,
                        max_retries=enrichment.max_retries,
                        backoff_base_ms=enrichment.backoff_base_ms,
                    ),
                    window_hours=enrichment.window_hours,
                    progress=sink,
                )
                result.enriched = await batcher.enrich(crawl.items)

        logger.info(
            "Run finished: %d opportunities, %d enriched",
            len(result.opportunities),
            len(result.enriched),
        )
        return result


__all__ = [
    "REGION_METROPOLITANA",
    "ScrapeOptions",
    "ScrapeRunResult",
    "ScrapeRunner",
    "SingleFlightGuard",
]
