"""In-memory envelope store and secret store."""
import threading

import structlog

from .base import KeyStore, SecretStore

log = structlog.get_logger()


class InMemoryKeyStore(KeyStore):
    """In-memory implementation of the envelope store.

    Insertion order is preserved, so list_names() is deterministic.
    """

    def __init__(self, namespace: str = "default"):
        self.namespace = namespace
        self._entries: dict[str, str] = {}
        self._lock = threading.RLock()

    def list_names(self) -> list[str]:
        """List envelopes from memory."""
        with self._lock:
            return list(self._entries)

    def put(self, name: str, value: str) -> None:
        """Store envelope in memory."""
        with self._lock:
            self._entries[name] = value
        log.debug("envelope.stored", namespace=self.namespace, adapter="memory")

    def exists(self, name: str) -> bool:
        with self._lock:
            return name in self._entries

    def health_check(self) -> bool:
        """In-memory store is always healthy."""
        return True

    def __len__(self) -> int:
        return len(self._entries)


class InMemorySecretStore(SecretStore):
    """In-memory secret store, mostly for tests and local runs."""

    def __init__(self):
        self._secrets: dict[str, str] = {}

    def put_secret(self, name: str, value: str) -> None:
        self._secrets[name] = value
        log.info("secret.stored", name=name, adapter="memory")

    def get_secret(self, name: str) -> str | None:
        return self._secrets.get(name)
