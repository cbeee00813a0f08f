"""Store selection from configuration."""
import structlog

from .base import KeyStore, SecretStore
from .file_store import JsonFileKeyStore, JsonFileSecretStore
from .memory import InMemoryKeyStore, InMemorySecretStore
from .redis_store import RedisKeyStore, RedisSecretStore
from ..config import Settings, get_settings

log = structlog.get_logger()

# Memory stores are process-wide so the gateway and in-process callers share them
_memory_key_stores: dict[str, InMemoryKeyStore] = {}
_memory_secret_store = InMemorySecretStore()


def _resolve_adapter(requested: str, settings: Settings, store: str) -> str:
    if requested == "redis" and not settings.REDIS_URL:
        log.warning(
            "adapter.fallback",
            store=store,
            requested="redis",
            actual="file",
            reason="REDIS_URL not configured"
        )
        return "file"
    return requested


def create_key_store(namespace: str, settings: Settings | None = None) -> KeyStore:
    """
    Create the envelope store for a namespace based on configuration.

    Args:
        namespace: Store namespace
        settings: Settings to use (defaults to get_settings())

    Returns:
        KeyStore instance based on the STORE_ADAPTER setting
    """
    settings = settings or get_settings()
    adapter = _resolve_adapter(settings.STORE_ADAPTER, settings, "keys")

    if adapter == "redis":
        log.debug("adapter.selected", store="keys", type="redis", namespace=namespace)
        return RedisKeyStore(namespace, redis_url=str(settings.REDIS_URL))

    if adapter == "file":
        log.debug("adapter.selected", store="keys", type="file", path=settings.STORE_FILE)
        return JsonFileKeyStore(settings.STORE_FILE, namespace)

    log.debug("adapter.selected", store="keys", type="memory", namespace=namespace)
    return _memory_key_stores.setdefault(namespace, InMemoryKeyStore(namespace))


def create_secret_store(settings: Settings | None = None) -> SecretStore:
    """
    Create the secret store based on the SECRETS_ADAPTER setting.
    """
    settings = settings or get_settings()
    adapter = _resolve_adapter(settings.SECRETS_ADAPTER, settings, "secrets")

    if adapter == "redis":
        return RedisSecretStore(redis_url=str(settings.REDIS_URL))

    if adapter == "file":
        return JsonFileSecretStore(settings.SECRETS_FILE)

    return _memory_secret_store
