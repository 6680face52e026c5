"""Client for the Compra Agil listing search and detail endpoints."""

from __future__ import annotations

import asyncio
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any, Dict, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from compra_agil.core.config import ApiSettings
from compra_agil.core.errors import AuthExpired, MalformedResponse
from compra_agil.schemas.opportunity import CrawlFilters, PageResult
from compra_agil.utils.http import RetryPolicy, Sleep, execute

if TYPE_CHECKING:
    from compra_agil.services.token_manager import TokenManager


class CompraAgilAPIClient:
    """Authenticated access to the listing API through the retrying executor."""

    def __init__(
        self,
        settings: ApiSettings,
        http_client: httpx.AsyncClient,
        *,
        token_manager: TokenManager | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._tokens = token_manager
        self._sleep = sleep

    @property
    def search_policy(self) -> RetryPolicy:
        return RetryPolicy(
            timeout_ms=self._settings.search_timeout_ms,
            max_retries=self._settings.search_max_retries,
            backoff_base_ms=self._settings.backoff_base_ms,
        )

    @property
    def default_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json, text/plain, */*",
            "Origin": self._settings.origin,
            "Referer": self._settings.referer,
            "User-Agent": self._settings.user_agent,
        }

    async def search(
        self,
        filters: CrawlFilters,
        *,
        page: int,
        policy: RetryPolicy | None = None,
    ) -> Optional[PageResult]:
        """Fetch one search page; ``None`` when the payload carries no results."""
        body = await self._get(
            self._settings.search_path,
            params=filters.to_query(page),
            policy=policy or self.search_policy,
        )
        payload = body.get("payload") if isinstance(body, dict) else None
        if not isinstance(payload, dict) or not isinstance(
            payload.get("resultados"), list
        ):
            return None

        try:
            return PageResult(
                page_number=page,
                items=payload["resultados"],
                page_count=payload.get("pageCount"),
                total=payload.get("totalRegistros"),
            )
        except ValidationError as exc:
            raise MalformedResponse(
                f"Unexpected listing shape on page {page}: {exc}"
            ) from exc

    async def fetch_detail(
        self, code: str, *, policy: RetryPolicy | None = None
    ) -> Dict[str, Any]:
        """Return ``payload.detalleSolicitud`` for one listing code."""
        path = f"{self._settings.detail_path.rstrip('/')}/{quote(str(code), safe='')}"
        body = await self._get(path, policy=policy or self.search_policy)
        payload = body.get("payload") if isinstance(body, dict) else None
        detail = payload.get("detalleSolicitud") if isinstance(payload, dict) else None
        if not isinstance(detail, dict):
            raise MalformedResponse(f"Missing payload.detalleSolicitud for {code}")
        return detail

    async def probe(self, auth_token: str, *, timeout_ms: int = 10000) -> None:
        """One single-result search for the last day, never retried."""
        today = date.today()
        filters = CrawlFilters(since=today - timedelta(days=1), until=today, size=1)
        await execute(
            self._http,
            self._url(self._settings.search_path),
            auth_token=auth_token,
            policy=RetryPolicy(timeout_ms=timeout_ms, max_retries=0),
            params=filters.to_query(1),
            headers=self.default_headers,
            sleep=self._sleep,
        )

    async def _get(
        self,
        path: str,
        *,
        policy: RetryPolicy,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if self._tokens is None:
            raise RuntimeError("No token manager configured for authenticated calls.")
        token = await self._tokens.get_valid_token()
        try:
            return await execute(
                self._http,
                self._url(path),
                auth_token=token,
                policy=policy,
                params=params,
                headers=self.default_headers,
                sleep=self._sleep,
            )
        except AuthExpired:
            self._tokens.invalidate()
            raise

    def _url(self, path: str) -> str:
        return f"{self._settings.base_url.rstrip('/')}{path}"


__all__ = ["CompraAgilAPIClient"]
