"""Redis backed envelope store and secret store."""
import structlog
from redis import Redis
from redis.exceptions import RedisError

from .base import KeyStore, SecretStore
from ..config import get_settings
from ..services.crypto.errors import PersistenceFailure, StoreUnavailable

log = structlog.get_logger()


def _connect(redis_url: str) -> Redis:
    return Redis.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )


class RedisKeyStore(KeyStore):
    """Redis implementation of the envelope store.

    Envelopes of one namespace live as fields of a single hash, so a
    listing is one HKEYS round trip and a consistent snapshot.
    """

    def __init__(self, namespace: str, redis_url: str | None = None, client: Redis | None = None):
        """
        Initialize Redis key store.

        Args:
            namespace: Store namespace (hash key suffix)
            redis_url: Redis connection URL (defaults to settings.REDIS_URL)
            client: Pre-built client, mainly for tests
        """
        self.namespace = namespace
        self.redis_url = redis_url or str(get_settings().REDIS_URL)
        self._client = client
        self._hash_key = f"keygate:{namespace}"

    def _get_client(self) -> Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = _connect(self.redis_url)
        return self._client

    def list_names(self) -> list[str]:
        """
        List envelopes from the namespace hash.

        Raises:
            StoreUnavailable: If Redis cannot be read
        """
        try:
            return list(self._get_client().hkeys(self._hash_key))
        except RedisError as e:
            log.error("redis.list_failed", namespace=self.namespace, error=str(e))
            raise StoreUnavailable(f"Cannot list envelopes: {e}") from e

    def put(self, name: str, value: str) -> None:
        try:
            self._get_client().hset(self._hash_key, name, value)
        except RedisError as e:
            log.error("redis.put_failed", namespace=self.namespace, error=str(e))
            raise PersistenceFailure(f"Cannot store envelope: {e}") from e

    def exists(self, name: str) -> bool:
        try:
            return bool(self._get_client().hexists(self._hash_key, name))
        except RedisError as e:
            raise StoreUnavailable(f"Cannot read envelope: {e}") from e

    def health_check(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if Redis is accessible, False otherwise
        """
        try:
            return bool(self._get_client().ping())
        except Exception as e:
            log.warning("redis.health_check_failed", error=str(e))
            return False

    def close(self):
        """Close Redis connection."""
        if self._client:
            self._client.close()
            self._client = None


class RedisSecretStore(SecretStore):
    """Secret store kept in a Redis hash."""

    def __init__(self, redis_url: str | None = None, client: Redis | None = None):
        self.redis_url = redis_url or str(get_settings().REDIS_URL)
        self._client = client
        self._hash_key = "keygate:secrets"

    def _get_client(self) -> Redis:
        if self._client is None:
            self._client = _connect(self.redis_url)
        return self._client

    def put_secret(self, name: str, value: str) -> None:
        try:
            self._get_client().hset(self._hash_key, name, value)
        except RedisError as e:
            raise PersistenceFailure(f"Cannot store secret {name}: {e}") from e
        log.info("secret.stored", name=name, adapter="redis")

    def get_secret(self, name: str) -> str | None:
        try:
            return self._get_client().hget(self._hash_key, name)
        except RedisError as e:
            raise StoreUnavailable(f"Cannot read secret {name}: {e}") from e
