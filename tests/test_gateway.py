"""
Tests for the API key gateway.

Tests cover:
- Protected prefix and excluded paths
- Missing, invalid and valid API keys
- Encryption key resolution (setting, secret store, missing, malformed)
- Store failures and malformed stored entries
- Forwarding to the upstream origin
"""
import pytest
import httpx
from httpx import AsyncClient, ASGITransport
from unittest.mock import Mock

from keygate.adapters.base import KeyStore
from keygate.adapters.memory import InMemoryKeyStore, InMemorySecretStore
from keygate.config import Settings
from keygate.main import create_app
from keygate.services.crypto import (
    EncryptionKeyCodec,
    EnvelopeCodec,
    StoreUnavailable,
)

ENCRYPTION_KEY = EncryptionKeyCodec.generate()
VALID_TOKEN = "media-api-3f9a1c2e-7b4d8e01"


def upstream_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json={"path": request.url.path, "query": str(request.url.query, "ascii")},
        headers={"x-upstream": "origin"},
    )


def make_settings(**overrides) -> Settings:
    values = {
        "ENCRYPTION_KEY": ENCRYPTION_KEY,
        "PROTECTED_PATH_PREFIX": "/media/",
        "EXCLUDED_PATHS": "/media/icons/,/media/designer-images/",
        "LOG_JSON": False,
    }
    values.update(overrides)
    return Settings(**values)


def seeded_store(*tokens: str) -> InMemoryKeyStore:
    store = InMemoryKeyStore("API_KEYS")
    key = EncryptionKeyCodec.normalize(ENCRYPTION_KEY)
    for token in tokens:
        store.put(EnvelopeCodec.encrypt(token, key), "true")
    return store


def build_client(settings=None, key_store=None, secret_store=None, upstream=True) -> AsyncClient:
    upstream_client = None
    if upstream:
        upstream_client = httpx.AsyncClient(
            transport=httpx.MockTransport(upstream_handler),
            base_url="http://upstream",
        )
    app = create_app(
        settings=settings or make_settings(),
        key_store=key_store if key_store is not None else seeded_store(VALID_TOKEN),
        secret_store=secret_store or InMemorySecretStore(),
        upstream_client=upstream_client,
    )
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_missing_key_rejected():
    """Test that a protected path without a key is rejected."""
    async with build_client() as client:
        response = await client.get("/media/x.png")

    assert response.status_code == 403
    data = response.json()
    assert data["message"] == "Unauthorized: Missing API key"
    assert data["status_code"] == 403
    assert data["path"] == "/media/x.png"


@pytest.mark.asyncio
async def test_empty_key_rejected():
    async with build_client() as client:
        response = await client.get("/media/x.png", headers={"x-api-key": ""})

    assert response.status_code == 403
    assert response.json()["message"] == "Unauthorized: Missing API key"


@pytest.mark.asyncio
async def test_invalid_key_rejected():
    async with build_client() as client:
        response = await client.get("/media/x.png", headers={"x-api-key": "not-a-real-key"})

    assert response.status_code == 403
    assert response.json()["message"] == "Unauthorized: Invalid API key"


@pytest.mark.asyncio
async def test_valid_key_forwarded():
    """Test that a valid key reaches the upstream origin."""
    async with build_client() as client:
        response = await client.get(
            "/media/photos/x.png?size=large",
            headers={"x-api-key": VALID_TOKEN},
        )

    assert response.status_code == 200
    assert response.json() == {"path": "/media/photos/x.png", "query": "size=large"}
    assert response.headers["x-upstream"] == "origin"


@pytest.mark.asyncio
async def test_valid_key_among_many():
    store = seeded_store("other-1", "other-2", VALID_TOKEN, "other-3")

    async with build_client(key_store=store) as client:
        response = await client.get("/media/x.png", headers={"x-api-key": VALID_TOKEN})

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_excluded_path_bypasses_gate():
    """Test that excluded prefixes pass without a key."""
    async with build_client() as client:
        icons = await client.get("/media/icons/logo.svg")
        designer = await client.get("/media/designer-images/a.png")

    assert icons.status_code == 200
    assert designer.status_code == 200


@pytest.mark.asyncio
async def test_unprotected_path_bypasses_gate():
    async with build_client() as client:
        response = await client.get("/public/readme.txt")

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_prefix_match_is_literal():
    """Test that /media without the trailing slash is not protected."""
    async with build_client() as client:
        response = await client.get("/mediafiles/x.png")

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_empty_prefix_protects_everything():
    settings = make_settings(PROTECTED_PATH_PREFIX="", EXCLUDED_PATHS="")

    async with build_client(settings=settings) as client:
        response = await client.get("/anything")

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_custom_header_name():
    settings = make_settings(API_KEY_HEADER="x-media-key")

    async with build_client(settings=settings) as client:
        wrong_header = await client.get("/media/x.png", headers={"x-api-key": VALID_TOKEN})
        right_header = await client.get("/media/x.png", headers={"x-media-key": VALID_TOKEN})

    assert wrong_header.status_code == 403
    assert right_header.status_code == 200


@pytest.mark.asyncio
async def test_missing_encryption_key():
    """Test that a missing encryption key is a server error."""
    settings = make_settings(ENCRYPTION_KEY=None)

    async with build_client(settings=settings) as client:
        response = await client.get("/media/x.png", headers={"x-api-key": VALID_TOKEN})

    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "ConfigurationError"
    assert data["message"].startswith("Server configuration error:")


@pytest.mark.asyncio
async def test_malformed_encryption_key():
    settings = make_settings(ENCRYPTION_KEY="abc123")

    async with build_client(settings=settings) as client:
        response = await client.get("/media/x.png", headers={"x-api-key": VALID_TOKEN})

    assert response.status_code == 500
    assert response.json()["error"] == "ConfigurationError"


@pytest.mark.asyncio
async def test_encryption_key_from_secret_store():
    """Test fallback to the secret store when the setting is absent."""
    settings = make_settings(ENCRYPTION_KEY=None)
    secrets = InMemorySecretStore()
    secrets.put_secret("ENCRYPTION_KEY", ENCRYPTION_KEY)

    async with build_client(settings=settings, secret_store=secrets) as client:
        response = await client.get("/media/x.png", headers={"x-api-key": VALID_TOKEN})

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_encryption_key_picked_up_without_restart():
    settings = make_settings(ENCRYPTION_KEY=None)
    secrets = InMemorySecretStore()

    async with build_client(settings=settings, secret_store=secrets) as client:
        before = await client.get("/media/x.png", headers={"x-api-key": VALID_TOKEN})
        secrets.put_secret("ENCRYPTION_KEY", ENCRYPTION_KEY)
        after = await client.get("/media/x.png", headers={"x-api-key": VALID_TOKEN})

    assert before.status_code == 500
    assert after.status_code == 200


@pytest.mark.asyncio
async def test_store_unavailable():
    """Test that a store failure is reported as 503."""
    store = Mock(spec=KeyStore)
    store.list_names.side_effect = StoreUnavailable("redis down")

    async with build_client(key_store=store) as client:
        response = await client.get("/media/x.png", headers={"x-api-key": VALID_TOKEN})

    assert response.status_code == 503
    assert response.json()["error"] == "ServiceUnavailable"


@pytest.mark.asyncio
async def test_malformed_entries_tolerated():
    """Test that garbage and foreign entries do not break validation."""
    store = seeded_store(VALID_TOKEN)
    store.put("definitely-not-an-envelope", "true")
    store.put("00" * 20, "true")
    foreign_key = EncryptionKeyCodec.normalize(EncryptionKeyCodec.generate())
    store.put(EnvelopeCodec.encrypt("foreign", foreign_key), "true")

    async with build_client(key_store=store) as client:
        valid = await client.get("/media/x.png", headers={"x-api-key": VALID_TOKEN})
        foreign = await client.get("/media/x.png", headers={"x-api-key": "foreign"})

    assert valid.status_code == 200
    assert foreign.status_code == 403


@pytest.mark.asyncio
async def test_newly_stored_key_accepted():
    """Test that envelopes are re-read per request."""
    store = seeded_store()
    key = EncryptionKeyCodec.normalize(ENCRYPTION_KEY)

    async with build_client(key_store=store) as client:
        before = await client.get("/media/x.png", headers={"x-api-key": "late-token"})
        store.put(EnvelopeCodec.encrypt("late-token", key), "true")
        after = await client.get("/media/x.png", headers={"x-api-key": "late-token"})

    assert before.status_code == 403
    assert after.status_code == 200


@pytest.mark.asyncio
async def test_upstream_not_configured():
    async with build_client(upstream=False) as client:
        response = await client.get("/media/x.png", headers={"x-api-key": VALID_TOKEN})

    assert response.status_code == 502
    assert response.json()["message"] == "Upstream not configured"


@pytest.mark.asyncio
async def test_upstream_failure():
    def failing_handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    app = create_app(
        settings=make_settings(),
        key_store=seeded_store(VALID_TOKEN),
        secret_store=InMemorySecretStore(),
        upstream_client=httpx.AsyncClient(
            transport=httpx.MockTransport(failing_handler),
            base_url="http://upstream",
        ),
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/media/x.png", headers={"x-api-key": VALID_TOKEN})

    assert response.status_code == 502
    assert response.json()["message"] == "Upstream request failed"


@pytest.mark.asyncio
async def test_error_carries_correlation_id():
    async with build_client() as client:
        response = await client.get(
            "/media/x.png",
            headers={"x-correlation-id": "gate-correlation-1"},
        )

    assert response.status_code == 403
    assert response.headers["x-correlation-id"] == "gate-correlation-1"
    assert response.json()["correlation_id"] == "gate-correlation-1"


@pytest.mark.asyncio
async def test_gate_decisions_counted():
    async with build_client() as client:
        await client.get("/media/x.png")
        await client.get("/media/x.png", headers={"x-api-key": "wrong"})
        await client.get("/media/x.png", headers={"x-api-key": VALID_TOKEN})
        response = await client.get("/metrics/")

    content = response.text
    assert 'keygate_validations_total{outcome="missing_key"} 1.0' in content
    assert 'keygate_validations_total{outcome="denied"} 1.0' in content
    assert 'keygate_validations_total{outcome="allowed"} 1.0' in content
    assert "keygate_stored_envelopes 1.0" in content
