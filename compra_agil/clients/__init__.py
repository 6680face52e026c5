"""Expose constructed client wrappers."""

from .credential_store import CredentialStore
from .keycloak import KeycloakTokenClient, RefreshGrant
from .compra_agil_api import CompraAgilAPIClient

__all__ = [
    "CompraAgilAPIClient",
    "CredentialStore",
    "KeycloakTokenClient",
    "RefreshGrant",
]
