"""Session/token expiry monitor for the Compra Agil scraper.

Reads the expiry signals stored in the credential file and, with ``--probe``,
issues one live authenticated request.

Exit codes: 0 healthy, 1 warning (expiring soon or ambiguous), 2 critical.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

import httpx

from compra_agil.clients import CompraAgilAPIClient, CredentialStore
from compra_agil.core.config import AppSettings, get_settings
from compra_agil.schemas import HealthVerdict
from compra_agil.services import SessionHealthClassifier
from compra_agil.services.session_health import format_hours


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Check credential expiry signals.")
    parser.add_argument(
        "--probe",
        action="store_true",
        help="Also issue one authenticated API request; failure is CRITICAL.",
    )
    parser.add_argument("--session-path", type=Path, default=None)
    return parser


async def _check(
    settings: AppSettings,
    store: CredentialStore,
    *,
    probe: bool,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HealthVerdict:
    classifier = SessionHealthClassifier(
        store,
        warn_hours=settings.health.warn_hours,
        crit_hours=settings.health.crit_hours,
        probe_timeout_ms=settings.health.probe_timeout_ms,
    )
    if not probe:
        return await classifier.check()
    async with httpx.AsyncClient(transport=transport) as http_client:
        api = CompraAgilAPIClient(settings.api, http_client)
        return await classifier.check(probe=True, api=api)


def _print_report(verdict: HealthVerdict, *, probe: bool) -> None:
    print(f"[{verdict.level.value}] {verdict.reason}")
    for name, hours in verdict.signals.items():
        print(f"- {name}: {format_hours(hours)}")
    print(f"- probe: {'enabled' if probe else 'disabled'}")


def main(argv: list[str] | None = None, *, transport: httpx.AsyncBaseTransport | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    store = CredentialStore(args.session_path or settings.credentials.session_path)
    probe = args.probe or settings.health.probe_enabled

    verdict = asyncio.run(_check(settings, store, probe=probe, transport=transport))
    _print_report(verdict, probe=probe)
    return verdict.exit_code


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
