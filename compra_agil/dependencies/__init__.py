"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_app_settings,
    get_credential_store,
    get_http_transport,
    get_keycloak_client,
    get_result_writer,
    get_run_guard,
    get_scrape_runner,
    get_session_health_classifier,
    get_token_manager,
)

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
