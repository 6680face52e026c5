"""Print the stored access/refresh token state as JSON. Never refreshes."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from compra_agil.clients import CredentialStore, KeycloakTokenClient
from compra_agil.core.config import get_settings
from compra_agil.services import TokenManager


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Inspect stored token validity.")
    parser.add_argument("--session-path", type=Path, default=None)
    args = parser.parse_args(argv)

    settings = get_settings()
    manager = TokenManager(
        CredentialStore(args.session_path or settings.credentials.session_path),
        KeycloakTokenClient(settings.credentials),
        min_validity_seconds=settings.credentials.min_validity_seconds,
    )
    print(manager.inspect_token().model_dump_json(indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
