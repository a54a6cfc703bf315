"""Tests for organization API keys.

The unit tests exercise hashing, minting and matching. The integration
tests drive the X-API-Key dependency through the FastAPI app: 401
envelopes, tenant resolution, the auth-disabled default organization
and key rotation.
"""

import json
from pathlib import Path

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from conftest import VALID_KEY, _make_config
from promptdesk import app as app_module
from promptdesk.app import app
from promptdesk.auth import (
    KEY_PREFIX,
    AuthenticationError,
    generate_api_key,
    hash_api_key,
    validate_api_key,
)
from promptdesk.provider import ProviderClient

KEYRING = [
    ("acme", hash_api_key("acme-secret")),
    ("globex", hash_api_key("globex-secret")),
]


def test_hash_is_stable_hex_digest() -> None:
    digest = hash_api_key("pd-abc")
    assert digest == hash_api_key("pd-abc")
    assert len(digest) == 64
    assert digest != hash_api_key("pd-abd")


def test_generated_keys_are_unique_and_prefixed() -> None:
    first_raw, first_hash = generate_api_key()
    second_raw, _ = generate_api_key()

    assert first_raw.startswith(KEY_PREFIX)
    assert first_raw != second_raw
    assert first_hash == hash_api_key(first_raw)


@pytest.mark.parametrize("raw, tenant", [("acme-secret", "acme"), ("globex-secret", "globex")])
def test_key_resolves_owning_tenant(raw: str, tenant: str) -> None:
    assert validate_api_key(raw, KEYRING) == tenant


@pytest.mark.parametrize("header", [None, ""])
def test_absent_key_rejected(header) -> None:
    with pytest.raises(AuthenticationError, match="Missing API key"):
        validate_api_key(header, KEYRING)


def test_unknown_key_rejected() -> None:
    with pytest.raises(AuthenticationError, match="Invalid API key"):
        validate_api_key("initech-secret", KEYRING)


def test_no_organizations_rejects_everything() -> None:
    with pytest.raises(AuthenticationError):
        validate_api_key("acme-secret", [])


# --- Integration tests against the FastAPI app ---


def _reset(monkeypatch: pytest.MonkeyPatch, config_path: str) -> None:
    monkeypatch.setattr(app_module, "CONFIG_PATH", config_path)
    monkeypatch.setattr(app_module, "_config", None)
    monkeypatch.setattr(app_module, "_stores", None)
    monkeypatch.setattr(app_module, "_log_store", None)
    monkeypatch.setattr(app_module, "_orchestrator", None)
    monkeypatch.setattr(
        app_module,
        "_provider",
        ProviderClient(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"text": "summary"})
            )
        ),
    )


@pytest.fixture(autouse=True)
def _reset_app_with_auth(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset app state and configure auth-enabled test config."""
    _reset(monkeypatch, _make_config(tmp_path))


def _body() -> dict:
    return {"prompt_id": "summarize", "variables": {"text": "hello"}}


@pytest.mark.asyncio
async def test_missing_api_key_returns_401() -> None:
    """Request without X-API-Key header returns 401."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/generate", json=_body())

    assert resp.status_code == 401
    data = resp.json()
    assert data["error"] is True
    assert "Missing" in data["message"]


@pytest.mark.asyncio
async def test_invalid_api_key_returns_401() -> None:
    """Request with wrong X-API-Key returns 401."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/api/generate",
            json=_body(),
            headers={"X-API-Key": "wrong-key"},
        )

    assert resp.status_code == 401
    assert "Invalid" in resp.json()["message"]


@pytest.mark.asyncio
async def test_valid_api_key_passes_auth() -> None:
    """Request with valid X-API-Key passes auth check."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/api/generate",
            json=_body(),
            headers={"X-API-Key": VALID_KEY},
        )

    assert resp.status_code == 200
    assert resp.json()["message"] == "summary"


@pytest.mark.asyncio
async def test_auth_disabled_uses_default_organization(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """When auth.enabled is false, requests run as the default organization."""
    config_path = _make_config(
        tmp_path, {"auth": {"enabled": False, "default_organization": "acme"}}
    )
    _reset(monkeypatch, config_path)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/generate", json=_body())

    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_auth_failure_does_not_reach_generation(tmp_path: Path) -> None:
    """Unauthenticated calls never produce an execution log entry."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        await client.post("/api/generate", json=_body())

    log_file = tmp_path / "generations.jsonl"
    assert not log_file.exists() or log_file.read_text().strip() == ""


@pytest.mark.asyncio
async def test_rotated_key_authenticates() -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(
            "/api/organization/keys",
            json={"description": "default"},
            headers={"X-API-Key": VALID_KEY},
        )
        assert resp.status_code == 200
        new_key = resp.json()["key"]

        old = await client.get("/api/ping", headers={"X-API-Key": VALID_KEY})
        new = await client.get("/api/ping", headers={"X-API-Key": new_key})

    assert old.status_code == 401
    assert new.status_code == 200
    assert new.text == "pong"
    assert json.loads(resp.text)["description"] == "default"
