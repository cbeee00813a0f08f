"""Tests for the ApiKeyGate decision logic."""
import pytest
from pydantic import SecretStr
from unittest.mock import Mock

from keygate.adapters.memory import InMemoryKeyStore, InMemorySecretStore
from keygate.auth.api_key import ApiKeyGate
from keygate.config import Settings
from keygate.services.crypto import (
    EncryptionKeyCodec,
    EnvelopeCodec,
    InvalidKeyFormat,
    MissingCandidateToken,
    MissingEncryptionKey,
    Validator,
)

ENCRYPTION_KEY = EncryptionKeyCodec.generate()


def make_gate(store=None, secrets=None, **overrides) -> ApiKeyGate:
    values = {
        "ENCRYPTION_KEY": ENCRYPTION_KEY,
        "EXCLUDED_PATHS": "/media/icons/, /media/designer-images/",
    }
    values.update(overrides)
    return ApiKeyGate(
        store if store is not None else InMemoryKeyStore("API_KEYS"),
        secrets or InMemorySecretStore(),
        Settings(**values),
    )


def test_is_protected():
    gate = make_gate()

    assert gate.is_protected("/media/x.png") is True
    assert gate.is_protected("/media/") is True
    assert gate.is_protected("/media/icons/a.svg") is False
    assert gate.is_protected("/media/designer-images/a.png") is False
    assert gate.is_protected("/public/x.png") is False
    assert gate.is_protected("/media") is False


def test_excluded_paths_parsing():
    settings = Settings(EXCLUDED_PATHS=" /a/ ,, /b/ ")
    assert settings.excluded_paths == ["/a/", "/b/"]
    assert Settings(EXCLUDED_PATHS="").excluded_paths == []


def test_check_requires_candidate():
    gate = make_gate()

    with pytest.raises(MissingCandidateToken):
        gate.check(None)

    with pytest.raises(MissingCandidateToken):
        gate.check("")


def test_check_reports_scan_size():
    store = InMemoryKeyStore("API_KEYS")
    key = EncryptionKeyCodec.normalize(ENCRYPTION_KEY)
    for token in ["a-1", "b-2", "c-3"]:
        store.put(EnvelopeCodec.encrypt(token, key), "true")

    gate = make_gate(store)

    assert gate.check("b-2") == (True, 3)
    assert gate.check("d-4") == (False, 3)


def test_resolve_prefers_setting():
    secrets = InMemorySecretStore()
    secrets.put_secret("ENCRYPTION_KEY", EncryptionKeyCodec.generate())

    gate = make_gate(secrets=secrets)

    assert gate.resolve_encryption_key() == EncryptionKeyCodec.normalize(ENCRYPTION_KEY)


def test_resolve_from_custom_secret_name():
    secrets = InMemorySecretStore()
    secrets.put_secret("MEDIA_KEY", ENCRYPTION_KEY)

    gate = make_gate(secrets=secrets, ENCRYPTION_KEY=None, ENCRYPTION_KEY_SECRET_NAME="MEDIA_KEY")

    assert gate.resolve_encryption_key() == EncryptionKeyCodec.normalize(ENCRYPTION_KEY)


def test_resolve_missing():
    gate = make_gate(ENCRYPTION_KEY=None)

    with pytest.raises(MissingEncryptionKey):
        gate.resolve_encryption_key()


def test_resolve_malformed():
    gate = make_gate(ENCRYPTION_KEY=SecretStr("not-a-key"))

    with pytest.raises(InvalidKeyFormat):
        gate.resolve_encryption_key()


def test_key_resolved_before_store_read():
    store = Mock(spec=InMemoryKeyStore)
    gate = make_gate(store, ENCRYPTION_KEY=None)

    with pytest.raises(MissingEncryptionKey):
        gate.check("token")

    store.list_names.assert_not_called()


def test_custom_validator_used():
    validator = Mock(spec=Validator)
    validator.validate.return_value = True
    gate = ApiKeyGate(
        InMemoryKeyStore("API_KEYS"),
        InMemorySecretStore(),
        Settings(ENCRYPTION_KEY=ENCRYPTION_KEY),
        validator=validator,
    )

    assert gate.check("anything") == (True, 0)
    validator.validate.assert_called_once()
