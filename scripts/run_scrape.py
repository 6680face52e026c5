"""Run one Compra Agil scrape from the command line.

Crawls the listing search, optionally enriches listings closing within the
eligibility window, and writes the JSON result files.

Example usages::

    python -m scripts.run_scrape --region-metropolitana --mis-rubros --days=1
    python -m scripts.run_scrape --pages=5 --enrich

Exit codes: 0 success, 1 generic failure, 2 manual re-authentication required.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from compra_agil.clients import CredentialStore, KeycloakTokenClient
from compra_agil.core.config import AppSettings, get_settings
from compra_agil.core.errors import AuthExpired
from compra_agil.core.logging import configure_logging
from compra_agil.services import (
    LoggingProgressSink,
    ResultWriter,
    ScrapeOptions,
    ScrapeRunner,
    TokenManager,
)
from compra_agil.services.scrape_runner import REGION_METROPOLITANA

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_REAUTH_REQUIRED = 2

logger = logging.getLogger("compra_agil.scripts.run_scrape")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scrape Compra Agil listings.")
    parser.add_argument(
        "--region-metropolitana",
        action="store_true",
        help="Only listings for Region Metropolitana (region 13).",
    )
    parser.add_argument(
        "--mis-rubros",
        action="store_true",
        help="Only listings matching the account's registered categories.",
    )
    parser.add_argument("--pages", type=int, default=None, help="Max pages (1-50).")
    parser.add_argument("--days", type=int, default=None, help="Days back (1-90).")
    parser.add_argument(
        "--enrich",
        action="store_true",
        help="Fetch detail for listings with no offers closing within 72h.",
    )
    parser.add_argument(
        "--session-path",
        type=Path,
        default=None,
        help="Credential file (default: COMPRA_AGIL_SESSION_PATH or session.json).",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for result files (default: APP_RESULTS_DIR).",
    )
    return parser


def _options(args: argparse.Namespace, settings: AppSettings) -> ScrapeOptions:
    crawl = settings.crawl
    return ScrapeOptions(
        region=REGION_METROPOLITANA if args.region_metropolitana else crawl.region,
        mis_rubros=args.mis_rubros or crawl.mis_rubros,
        max_pages=args.pages if args.pages is not None else crawl.max_pages,
        days_back=args.days if args.days is not None else crawl.days_back,
        enrich=args.enrich or settings.enrichment.enabled,
    )


def build_runner(settings: AppSettings, session_path: Optional[Path] = None) -> ScrapeRunner:
    progress = LoggingProgressSink()
    store = CredentialStore(session_path or settings.credentials.session_path)
    token_manager = TokenManager(
        store,
        KeycloakTokenClient(settings.credentials),
        min_validity_seconds=settings.credentials.min_validity_seconds,
        assumed_access_lifetime_seconds=settings.credentials.assumed_access_lifetime_seconds,
        progress=progress,
    )
    return ScrapeRunner(settings, token_manager, progress=progress)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
        configure_logging(settings.log_level)
        options = _options(args, settings)
    except ValidationError as exc:
        print(f"Invalid options:\n{exc}", file=sys.stderr)
        return EXIT_FAILURE

    runner = build_runner(settings, args.session_path)
    try:
        result = asyncio.run(runner.run(options))
    except AuthExpired as exc:
        logger.error("Session token is invalid or expired: %s", exc.message)
        print(
            "Re-auth required: run the login helper and replace the credential file.",
            file=sys.stderr,
        )
        return EXIT_REAUTH_REQUIRED
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Scrape failed: %s", exc)
        return EXIT_FAILURE

    writer = ResultWriter(args.output_dir or settings.results_dir)
    for kind, path in writer.write(result).items():
        print(f"{kind}: {path}")
    print(f"Total: {len(result.opportunities)} opportunities, {len(result.enriched)} enriched")
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
