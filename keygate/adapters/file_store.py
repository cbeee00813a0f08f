"""JSON file backed envelope store and secret store.

Useful for operating the CLI without a Redis instance. The key store file maps
namespace -> {envelope: marker}; the secret file maps name -> value.
"""
import os
from pathlib import Path
from typing import Any

import orjson
import structlog

from .base import KeyStore, SecretStore
from ..services.crypto.errors import PersistenceFailure, StoreUnavailable

log = structlog.get_logger()


def _load(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    data = orjson.loads(path.read_bytes())
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return data


def _dump(path: Path, data: dict[str, Any]) -> None:
    # Replace the file in one step so readers never see a partial write
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2))
    os.replace(tmp, path)


class JsonFileKeyStore(KeyStore):
    """Envelope store persisted in a JSON file, one object per namespace."""

    def __init__(self, path: str | os.PathLike, namespace: str):
        self.path = Path(path)
        self.namespace = namespace

    def _entries(self) -> dict[str, str]:
        try:
            return dict(_load(self.path).get(self.namespace, {}))
        except (OSError, ValueError) as e:
            log.error("file_store.read_failed", path=str(self.path), error=str(e))
            raise StoreUnavailable(f"Cannot read key store {self.path}: {e}") from e

    def list_names(self) -> list[str]:
        return list(self._entries())

    def put(self, name: str, value: str) -> None:
        try:
            data = _load(self.path)
            data.setdefault(self.namespace, {})[name] = value
            _dump(self.path, data)
        except (OSError, ValueError) as e:
            log.error("file_store.write_failed", path=str(self.path), error=str(e))
            raise PersistenceFailure(f"Cannot write key store {self.path}: {e}") from e

    def exists(self, name: str) -> bool:
        return name in self._entries()

    def health_check(self) -> bool:
        try:
            self._entries()
            return True
        except StoreUnavailable:
            return False


class JsonFileSecretStore(SecretStore):
    """Secret store persisted in a JSON file."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def put_secret(self, name: str, value: str) -> None:
        try:
            data = _load(self.path)
            data[name] = value
            _dump(self.path, data)
        except (OSError, ValueError) as e:
            raise PersistenceFailure(f"Cannot write secret store {self.path}: {e}") from e
        log.info("secret.stored", name=name, adapter="file", path=str(self.path))

    def get_secret(self, name: str) -> str | None:
        try:
            value = _load(self.path).get(name)
        except (OSError, ValueError) as e:
            raise StoreUnavailable(f"Cannot read secret store {self.path}: {e}") from e
        return value if isinstance(value, str) else None
