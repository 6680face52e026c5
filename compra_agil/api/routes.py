"""
FastAPI routes exposing token status, session health and scrape runs.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query

from compra_agil.clients import CompraAgilAPIClient
from compra_agil.core.errors import AuthExpired, ProcurementAPIError
from compra_agil.dependencies import (
    get_app_settings,
    get_http_transport,
    get_result_writer,
    get_run_guard,
    get_scrape_runner,
    get_session_health_classifier,
    get_token_manager,
)
from compra_agil.schemas import TokenState
from compra_agil.services import (
    CollectingProgressSink,
    LoggingProgressSink,
    ScrapeOptions,
)
from compra_agil.services.results import InvalidResultName
from compra_agil.services.scrape_runner import REGION_METROPOLITANA

router = APIRouter()
logger = logging.getLogger(__name__)


def _bounded_int(value: Optional[str], default: int, low: int, high: int) -> int:
    """Out-of-range or unparseable values fall back to the default."""
    try:
        parsed = int(str(value))
    except (TypeError, ValueError):
        return default
    if parsed < low or parsed > high:
        return default
    return parsed


def _hours_left(state: TokenState) -> Optional[str]:
    hours = state.hours_left
    return f"{hours:.1f}" if hours is not None else None


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/status", status_code=HTTPStatus.OK)
async def auth_status(
    token_manager: Annotated[Any, Depends(get_token_manager)],
) -> dict:
    """Report stored token validity without refreshing anything."""
    inspection = token_manager.inspect_token()
    access = inspection.access_token
    refresh = inspection.refresh_token
    return {
        "accessToken": {
            "present": access.present,
            "hoursLeft": _hours_left(access),
            "isExpired": access.is_expired is True,
            "isExpiringSoon": access.is_expiring_soon is True,
        },
        "refreshToken": {
            "present": refresh.present,
            "hoursLeft": _hours_left(refresh),
            "isExpired": refresh.is_expired is True,
        },
        "error": inspection.error,
    }


@router.get("/session/health", status_code=HTTPStatus.OK)
async def session_health(
    classifier: Annotated[Any, Depends(get_session_health_classifier)],
    settings: Annotated[Any, Depends(get_app_settings)],
    transport: Annotated[Any, Depends(get_http_transport)],
    probe: bool = Query(
        default=False, description="Issue one live authenticated request."
    ),
) -> dict:
    """Classify the stored session as OK, WARN or CRITICAL."""
    probe = probe or settings.health.probe_enabled
    if probe:
        async with httpx.AsyncClient(transport=transport) as http_client:
            verdict = await classifier.check(
                probe=True, api=CompraAgilAPIClient(settings.api, http_client)
            )
    else:
        verdict = await classifier.check(probe=False)

    return {
        "level": verdict.level.value,
        "exitCode": verdict.exit_code,
        **verdict.model_dump(mode="json", exclude={"level"}),
    }


@router.post("/scrape/run", status_code=HTTPStatus.OK)
async def run_scrape(
    runner: Annotated[Any, Depends(get_scrape_runner)],
    guard: Annotated[Any, Depends(get_run_guard)],
    writer: Annotated[Any, Depends(get_result_writer)],
    region: bool = Query(default=False, description="Restrict to Region Metropolitana."),
    mis_rubros: bool = Query(default=False, alias="misRubros"),
    days: Optional[str] = Query(default=None),
    pages: Optional[str] = Query(default=None),
    enrich: bool = Query(default=False),
) -> dict:
    """Run one crawl (and optional enrichment); only one run at a time."""
    if not guard.try_acquire():
        raise HTTPException(
            status_code=HTTPStatus.TOO_MANY_REQUESTS,
            detail="A scrape is already running",
        )

    options = ScrapeOptions(
        region=REGION_METROPOLITANA if region else None,
        mis_rubros=mis_rubros,
        days_back=_bounded_int(days, 7, 1, 90),
        max_pages=_bounded_int(pages, 10, 1, 50),
        enrich=enrich,
    )
    progress = CollectingProgressSink(forward_to=LoggingProgressSink())
    try:
        result = await runner.run(options, progress=progress)
    except AuthExpired as exc:
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail=f"Manual re-authentication required: {exc.message}",
        ) from exc
    except ProcurementAPIError as exc:
        logger.exception("Scrape run failed")
        raise HTTPException(status_code=HTTPStatus.BAD_GATEWAY, detail=exc.message) from exc
    finally:
        guard.release()

    files = writer.write(result)
    return {
        "opportunities": len(result.opportunities),
        "enriched": len(result.enriched),
        "pagesFetched": result.pages_fetched,
        "stopReason": result.stop_reason.value,
        "summary": result.summary(),
        "files": {kind: path.name for kind, path in files.items()},
        "events": [event.as_dict() for event in progress.events],
    }


@router.get("/results/files", status_code=HTTPStatus.OK)
async def list_result_files(
    writer: Annotated[Any, Depends(get_result_writer)],
) -> dict:
    """List previously written result files, newest first."""
    return {"files": writer.list_files()}


@router.get("/results/file/{filename}", status_code=HTTPStatus.OK)
async def read_result_file(
    filename: str,
    writer: Annotated[Any, Depends(get_result_writer)],
) -> Any:
    """Return the parsed content of one result file."""
    try:
        return writer.read(filename)
    except InvalidResultName as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Invalid filename"
        ) from exc
    except FileNotFoundError as exc:
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND, detail="File not found"
        ) from exc
    except (OSError, ValueError) as exc:
        logger.exception("Failed to read result file %s", filename)
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail=f"Failed to read result file: {exc}",
        ) from exc


__all__ = ["router"]
