"""Token refresh, single-flight and persistence behaviour."""

from __future__ import annotations

import asyncio
import json
import time
from urllib.parse import parse_qs

import httpx
import pytest

from compra_agil.clients import CredentialStore, KeycloakTokenClient
from compra_agil.core.config import CredentialSettings
from compra_agil.core.errors import AuthExpired
from compra_agil.services import CollectingProgressSink, TokenManager


class RecordingTokenEndpoint:
    def __init__(self, *, status: int = 200, payload: dict | None = None, delay: float = 0) -> None:
        self.status = status
        self.payload = payload or {}
        self.delay = delay
        self.forms: list[dict] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.forms.append({k: v[0] for k, v in parse_qs(request.content.decode()).items()})
        if self.delay:
            await asyncio.sleep(self.delay)
        return httpx.Response(self.status, json=self.payload)


def _manager(path, endpoint, progress=None) -> TokenManager:
    client = KeycloakTokenClient(
        CredentialSettings(), transport=httpx.MockTransport(endpoint)
    )
    return TokenManager(
        CredentialStore(path),
        client,
        min_validity_seconds=300,
        progress=progress,
    )


def _names(path) -> dict:
    document = json.loads(path.read_text(encoding="utf-8"))
    return {record["name"]: record for record in document["cookies"]}


@pytest.mark.asyncio
async def test_valid_stored_token_is_used_without_refresh(make_token, write_session) -> None:
    access = make_token(3600)
    path = write_session(
        [
            {"name": "access_token", "value": access},
            {"name": "refresh_token", "value": "refresh-1"},
        ]
    )
    endpoint = RecordingTokenEndpoint()

    token = await _manager(path, endpoint).get_valid_token()

    assert token == access
    assert endpoint.forms == []


@pytest.mark.asyncio
async def test_ccr_alias_takes_priority(make_token, write_session) -> None:
    preferred = make_token(7200)
    path = write_session(
        [
            {"name": "access_token", "value": make_token(3600)},
            {"name": "access_token_ccr", "value": preferred},
        ]
    )

    assert await _manager(path, RecordingTokenEndpoint()).get_valid_token() == preferred


@pytest.mark.asyncio
async def test_expiring_token_is_refreshed_and_persisted(make_token, write_session) -> None:
    new_access = make_token(3600)
    path = write_session(
        [
            {
                "name": "KEYCLOAK_IDENTITY",
                "value": make_token(3600),
                "domain": "heimdall.example",
                "path": "/auth",
                "httpOnly": True,
                "secure": True,
                "sameSite": "None",
            },
            {"name": "access_token", "value": make_token(60), "domain": "heimdall.example"},
            {"name": "refresh_token", "value": "refresh-1", "expires": 9999999999},
        ],
        origins=[{"origin": "https://compra-agil.example"}],
    )
    endpoint = RecordingTokenEndpoint(
        payload={"access_token": new_access, "refresh_token": "refresh-2", "expires_in": 3600}
    )
    progress = CollectingProgressSink()

    token = await _manager(path, endpoint, progress).get_valid_token()

    assert token == new_access
    assert len(endpoint.forms) == 1
    assert endpoint.forms[0]["grant_type"] == "refresh_token"
    assert endpoint.forms[0]["refresh_token"] == "refresh-1"

    records = _names(path)
    assert records["access_token"]["value"] == new_access
    assert records["access_token_ccr"]["value"] == new_access
    assert records["access_token_ccr"]["domain"] == "heimdall.example"
    assert records["refresh_token"]["value"] == "refresh-2"
    assert json.loads(path.read_text())["origins"] == [{"origin": "https://compra-agil.example"}]
    assert progress.names() == ["token_refreshed"]


@pytest.mark.asyncio
async def test_unrotated_refresh_token_is_kept(make_token, write_session) -> None:
    path = write_session(
        [
            {"name": "access_token", "value": make_token(-10)},
            {"name": "refresh_token", "value": "refresh-1"},
        ]
    )
    endpoint = RecordingTokenEndpoint(payload={"access_token": make_token(3600)})

    await _manager(path, endpoint).get_valid_token()

    assert _names(path)["refresh_token"]["value"] == "refresh-1"


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh(make_token, write_session) -> None:
    new_access = make_token(3600)
    path = write_session(
        [
            {"name": "access_token", "value": make_token(10)},
            {"name": "refresh_token", "value": "refresh-1"},
        ]
    )
    endpoint = RecordingTokenEndpoint(payload={"access_token": new_access}, delay=0.01)
    manager = _manager(path, endpoint)

    tokens = await asyncio.gather(*(manager.get_valid_token() for _ in range(3)))

    assert tokens == [new_access] * 3
    assert len(endpoint.forms) == 1


@pytest.mark.asyncio
async def test_failed_refresh_is_not_retried(make_token, write_session) -> None:
    path = write_session(
        [
            {"name": "access_token", "value": make_token(-10)},
            {"name": "refresh_token", "value": "refresh-1"},
        ]
    )
    endpoint = RecordingTokenEndpoint(status=400, payload={"error": "invalid_grant"})

    with pytest.raises(AuthExpired) as excinfo:
        await _manager(path, endpoint).get_valid_token()

    assert len(endpoint.forms) == 1
    assert "400" in excinfo.value.message


@pytest.mark.asyncio
async def test_missing_refresh_token_requires_reauth(make_token, write_session) -> None:
    path = write_session([{"name": "access_token", "value": make_token(-10)}])

    with pytest.raises(AuthExpired):
        await _manager(path, RecordingTokenEndpoint()).get_valid_token()


@pytest.mark.asyncio
async def test_missing_credential_file_requires_reauth(tmp_path) -> None:
    with pytest.raises(AuthExpired):
        await _manager(tmp_path / "absent.json", RecordingTokenEndpoint()).get_valid_token()


@pytest.mark.asyncio
async def test_short_lived_refreshed_token_is_rejected(make_token, write_session) -> None:
    path = write_session(
        [
            {"name": "access_token", "value": make_token(-10)},
            {"name": "refresh_token", "value": "refresh-1"},
        ]
    )
    endpoint = RecordingTokenEndpoint(payload={"access_token": make_token(100)})

    with pytest.raises(AuthExpired):
        await _manager(path, endpoint).get_valid_token()


@pytest.mark.asyncio
async def test_invalidate_forces_file_reread(make_token, write_session) -> None:
    first = make_token(3600)
    path = write_session([{"name": "access_token", "value": first}])
    manager = _manager(path, RecordingTokenEndpoint())
    assert await manager.get_valid_token() == first

    second = make_token(7200)
    write_session([{"name": "access_token", "value": second}])
    assert await manager.get_valid_token() == first

    manager.invalidate()
    assert await manager.get_valid_token() == second


def test_inspect_token_reports_state_without_refreshing(make_token, write_session) -> None:
    path = write_session(
        [
            {"name": "access_token", "value": make_token(120)},
            {"name": "refresh_token", "value": make_token(36000)},
        ]
    )
    endpoint = RecordingTokenEndpoint()

    report = _manager(path, endpoint).inspect_token()

    assert report.error is None
    assert report.access_token.present
    assert report.access_token.is_expiring_soon is True
    assert report.access_token.is_expired is False
    assert report.refresh_token.is_expiring_soon is False
    assert endpoint.forms == []


def test_inspect_token_never_raises(tmp_path) -> None:
    report = _manager(tmp_path / "absent.json", RecordingTokenEndpoint()).inspect_token()

    assert report.error is not None
    assert report.access_token.present is False


@pytest.mark.asyncio
async def test_grant_without_expiry_records_assumed_lifetime(make_token, write_session) -> None:
    path = write_session(
        [
            {"name": "access_token", "value": make_token(-10), "expires": 1},
            {"name": "refresh_token", "value": "refresh-1"},
        ]
    )
    endpoint = RecordingTokenEndpoint(payload={"access_token": "opaque-access"})
    before = time.time()

    assert await _manager(path, endpoint).get_valid_token() == "opaque-access"

    recorded = _names(path)["access_token"]["expires"]
    assert before + 900 - 5 <= recorded <= time.time() + 900
    assert await _manager(path, endpoint).get_valid_token() == "opaque-access"
    assert len(endpoint.forms) == 1


def test_assumed_lifetime_must_exceed_min_validity() -> None:
    with pytest.raises(ValueError):
        CredentialSettings(min_validity_seconds=600, assumed_access_lifetime_seconds=600)
