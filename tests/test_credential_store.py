"""Credential file reading, validation and atomic rewrite."""

from __future__ import annotations

import json

import pytest

from compra_agil.clients import CredentialStore
from compra_agil.core.errors import CredentialStoreError
from compra_agil.models.credentials import (
    CredentialBundle,
    normalize_epoch_seconds,
    token_expiry,
)


def test_missing_file_raises(tmp_path) -> None:
    with pytest.raises(CredentialStoreError):
        CredentialStore(tmp_path / "session.json").load()


def test_invalid_json_raises(tmp_path) -> None:
    path = tmp_path / "session.json"
    path.write_text("[1, 2", encoding="utf-8")

    with pytest.raises(CredentialStoreError) as excinfo:
        CredentialStore(path).load()

    assert "Invalid session.json format" in str(excinfo.value)


def test_missing_records_list_loads_empty(tmp_path) -> None:
    path = tmp_path / "session.json"
    path.write_text(json.dumps({"origins": []}), encoding="utf-8")

    bundle = CredentialStore(path).load()

    assert bundle.cookies == []


def test_save_round_trips_unknown_fields(write_session) -> None:
    path = write_session(
        [
            {
                "name": "refresh_token",
                "value": "r-1",
                "domain": "heimdall.example",
                "expires": 1900000000,
                "httpOnly": True,
                "sameSite": "Lax",
                "partitionKey": "keep-me",
            }
        ],
        origins=[{"origin": "https://compra-agil.example", "localStorage": []}],
    )
    store = CredentialStore(path)

    bundle = store.load()
    bundle.upsert("refresh_token", "r-2", expires=None)
    store.save(bundle)

    document = json.loads(path.read_text(encoding="utf-8"))
    record = document["cookies"][0]
    assert record["value"] == "r-2"
    assert record["expires"] == 1900000000
    assert record["httpOnly"] is True
    assert record["partitionKey"] == "keep-me"
    assert document["origins"][0]["origin"] == "https://compra-agil.example"
    assert [p.name for p in path.parent.iterdir() if p.name.endswith(".tmp")] == []


def test_upsert_appends_record_shaped_like_template() -> None:
    bundle = CredentialBundle.model_validate(
        {
            "cookies": [
                {
                    "name": "KEYCLOAK_IDENTITY",
                    "value": "x",
                    "domain": "heimdall.example",
                    "path": "/auth/realms/x",
                    "secure": False,
                }
            ]
        }
    )

    record = bundle.upsert(
        "access_token", "new", expires=1900000000, template=bundle.find(["KEYCLOAK_IDENTITY"])
    )

    assert record.domain == "heimdall.example"
    assert record.path == "/auth/realms/x"
    assert record.secure is False
    assert record.http_only is True
    assert bundle.find(["access_token"]).expires == 1900000000


def test_upsert_without_template_uses_defaults() -> None:
    record = CredentialBundle().upsert("access_token", "new", expires=None)

    assert record.domain == "heimdall.mercadopublico.cl"
    assert record.expires == -1


def test_token_expiry_reads_exp_claim(make_token) -> None:
    assert token_expiry(make_token(3600)) is not None
    assert token_expiry("not-a-jwt") is None
    assert token_expiry(None) is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [(1900000000, 1900000000), ("1900000000.5", 1900000000), (-1, None), (0, None), ("x", None), (None, None)],
)
def test_normalize_epoch_seconds(value, expected) -> None:
    assert normalize_epoch_seconds(value) == expected
