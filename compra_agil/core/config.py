"""
Application configuration models and helpers.

Centralizes settings so the CLI scripts, the status API and the pipeline
services share one configuration surface. Every group reads its own
environment prefix; a local ``.env`` file is honoured as well.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import os

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file into the process env."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class CredentialSettings(BaseSettings):
    """Where the credential bundle lives and how tokens are refreshed."""

    model_config = SettingsConfigDict(env_prefix="COMPRA_AGIL_", extra="ignore")

    session_path: Path = Field(
        Path("session.json"),
        description="Credential bundle written by the interactive login helper.",
    )
    token_url: str = Field(
        "https://heimdall.mercadopublico.cl/auth/realms/chilecomprarealm"
        "/protocol/openid-connect/token",
    )
    client_id: str = Field("mercadoPublicoClient")
    min_validity_seconds: int = Field(
        300,
        ge=0,
        description="Access tokens with less remaining validity are refreshed.",
    )
    refresh_timeout_seconds: float = Field(20.0, gt=0)
    assumed_access_lifetime_seconds: int = Field(
        900,
        gt=0,
        description="Lifetime recorded for refreshed tokens that carry no expiry.",
    )

    @model_validator(mode="after")
    def _check_lifetimes(self) -> "CredentialSettings":
        if self.assumed_access_lifetime_seconds <= self.min_validity_seconds:
            raise ValueError(
                "COMPRA_AGIL_ASSUMED_ACCESS_LIFETIME_SECONDS must exceed "
                "COMPRA_AGIL_MIN_VALIDITY_SECONDS"
            )
        return self


class ApiSettings(BaseSettings):
    """Remote listing API endpoints and request defaults."""

    model_config = SettingsConfigDict(env_prefix="COMPRA_AGIL_API_", extra="ignore")

    base_url: str = Field("https://servicios-compra-agil.mercadopublico.cl")
    search_path: str = Field("/v1/compra-agil-busqueda/buscar")
    detail_path: str = Field("/v1/compra-agil/solicitud")
    origin: str = Field("https://compra-agil.mercadopublico.cl")
    referer: str = Field("https://compra-agil.mercadopublico.cl/")
    user_agent: str = Field(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    )
    page_size: int = Field(20, ge=1, le=100)
    search_timeout_ms: int = Field(30000, gt=0)
    search_max_retries: int = Field(2, ge=0)
    backoff_base_ms: int = Field(1000, ge=0)


class CrawlSettings(BaseSettings):
    """Defaults for the paginated listing crawl."""

    model_config = SettingsConfigDict(env_prefix="CRAWL_", extra="ignore")

    max_pages: int = Field(10, ge=1, le=50)
    days_back: int = Field(7, ge=1, le=90)
    page_delay_seconds: float = Field(1.0, ge=0)
    region: Optional[int] = Field(
        None, description="Region code filter, 13 is Region Metropolitana."
    )
    mis_rubros: bool = Field(False)


class EnrichmentSettings(BaseSettings):
    """Detail enrichment batching and per-item retry policy."""

    model_config = SettingsConfigDict(env_prefix="ENRICH_", extra="ignore")

    enabled: bool = Field(False)
    concurrency: int = Field(5, ge=1)
    timeout_ms: int = Field(15000, gt=0)
    max_retries: int = Field(3, ge=0)
    backoff_base_ms: int = Field(1000, ge=0)
    window_hours: float = Field(
        72.0, gt=0, description="Only listings closing within this window qualify."
    )


class HealthSettings(BaseSettings):
    """Thresholds for the session health classifier."""

    model_config = SettingsConfigDict(env_prefix="SESSION_", extra="ignore")

    warn_hours: float = Field(24.0, ge=0)
    crit_hours: float = Field(6.0, ge=0)
    probe_enabled: bool = Field(False)
    probe_timeout_ms: int = Field(10000, gt=0)

    @model_validator(mode="after")
    def _check_thresholds(self) -> "HealthSettings":
        if self.crit_hours > self.warn_hours:
            raise ValueError("SESSION_CRIT_HOURS must not exceed SESSION_WARN_HOURS")
        return self


class AppSettings(BaseSettings):
    """Root settings object shared by the API and the CLI scripts."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field("development")
    log_level: str = Field("INFO")
    results_dir: Path = Field(
        Path("."), description="Directory receiving the JSON result files."
    )
    credentials: CredentialSettings = Field(default_factory=CredentialSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    crawl: CrawlSettings = Field(default_factory=CrawlSettings)
    enrichment: EnrichmentSettings = Field(default_factory=EnrichmentSettings)
    health: HealthSettings = Field(default_factory=HealthSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()


__all__ = [
    "ApiSettings",
    "AppSettings",
    "CrawlSettings",
    "CredentialSettings",
    "EnrichmentSettings",
    "HealthSettings",
    "get_settings",
]
