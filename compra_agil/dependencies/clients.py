"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache
from typing import Optional

import httpx

from compra_agil.clients import CredentialStore, KeycloakTokenClient
from compra_agil.core.config import AppSettings, get_settings
from compra_agil.services import (
    ResultWriter,
    ScrapeRunner,
    SessionHealthClassifier,
    SingleFlightGuard,
    TokenManager,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning application settings."""
    return _settings()


def get_http_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Transport for outbound API calls; ``None`` uses the httpx default."""
    return None


@lru_cache()
def get_credential_store() -> CredentialStore:
    """Provide the file-backed credential store."""
    settings = _settings()
    return CredentialStore(settings.credentials.session_path)


@lru_cache()
def get_keycloak_client() -> KeycloakTokenClient:
    """Create a singleton token endpoint client."""
    settings = _settings()
    return KeycloakTokenClient(settings.credentials)


@lru_cache()
def get_token_manager() -> TokenManager:
    """Provide the process-wide token manager."""
    settings = _settings()
    return TokenManager(
        store=get_credential_store(),
        token_client=get_keycloak_client(),
        min_validity_seconds=settings.credentials.min_validity_seconds,
        assumed_access_lifetime_seconds=settings.credentials.assumed_access_lifetime_seconds,
    )


def get_session_health_classifier() -> SessionHealthClassifier:
    """Build a classifier without a probe client; probes are wired per request."""
    settings = _settings()
    return SessionHealthClassifier(
        get_credential_store(),
        warn_hours=settings.health.warn_hours,
        crit_hours=settings.health.crit_hours,
        probe_timeout_ms=settings.health.probe_timeout_ms,
    )


def get_scrape_runner() -> ScrapeRunner:
    """Build a scrape runner sharing the process token manager."""
    return ScrapeRunner(
        _settings(), get_token_manager(), transport=get_http_transport()
    )


@lru_cache()
def get_run_guard() -> SingleFlightGuard:
    """Single-flight guard shared by every scrape request in this process."""
    return SingleFlightGuard()


@lru_cache()
def get_result_writer() -> ResultWriter:
    """Provide the JSON result writer."""
    settings = _settings()
    return ResultWriter(settings.results_dir)


__all__ = [
    "get_app_settings",
    "get_credential_store",
    "get_http_transport",
    "get_keycloak_client",
    "get_result_writer",
    "get_run_guard",
    "get_scrape_runner",
    "get_session_health_classifier",
    "get_token_manager",
]
