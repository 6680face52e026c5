"""
Paginated listing crawl.

Pages are fetched strictly one at a time so results stay in server order and
the remote service sees bounded load.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import List

from pydantic import BaseModel, Field

from compra_agil.clients.compra_agil_api import CompraAgilAPIClient
from compra_agil.core.errors import AuthExpired
from compra_agil.schemas.opportunity import CrawlFilters, Opportunity, PageResult
from compra_agil.services.progress import NullProgressSink, ProgressSink
from compra_agil.utils.http import Sleep

logger = logging.getLogger(__name__)


class StopReason(str, Enum):
    NO_DATA = "no_data"
    EMPTY_PAGE = "empty_page"
    LAST_PAGE = "last_page"
    MAX_PAGES = "max_pages"


class CrawlResult(BaseModel):
    items: List[Opportunity] = Field(default_factory=list)
    pages: List[PageResult] = Field(default_factory=list)
    stop_reason: StopReason = StopReason.MAX_PAGES

    @property
    def pages_fetched(self) -> int:
        return len(self.pages)


class CrawlController:
    """Drive a sequential page-by-page pull until a termination condition."""

    def __init__(
        self,
        api: CompraAgilAPIClient,
        *,
        page_delay_seconds: float = 1.0,
        progress: ProgressSink | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._api = api
        self._page_delay = page_delay_seconds
        self._progress = progress or NullProgressSink()
        self._sleep = sleep

    async def crawl(self, filters: CrawlFilters, max_pages: int) -> CrawlResult:
        """Fetch pages ``1..max_pages``; ``AuthExpired`` aborts the whole run."""
        result = CrawlResult()
        for page in range(1, max_pages + 1):
            if page > 1:
                await self._sleep(self._page_delay)

            self._progress.emit("page_requested", page=page)
            try:
                page_result = await self._api.search(filters, page=page)
            except AuthExpired:
                logger.error("Authentication expired on page %d; aborting crawl", page)
                raise

            if page_result is None:
                logger.warning("No data in response for page %d", page)
                result.stop_reason = StopReason.NO_DATA
                break

            result.pages.append(page_result)
            result.items.extend(page_result.items)
            self._progress.emit(
                "page_fetched",
                page=page,
                items=len(page_result.items),
                page_count=page_result.page_count,
            )

            if not page_result.items:
                result.stop_reason = StopReason.EMPTY_PAGE
                break
            if page_result.page_count is not None and page >= page_result.page_count:
                result.stop_reason = StopReason.LAST_PAGE
                break

        self._progress.emit(
            "crawl_finished",
            total=len(result.items),
            pages=result.pages_fetched,
            stop_reason=result.stop_reason.value,
        )
        return result


__all__ = ["CrawlController", "CrawlResult", "StopReason"]
