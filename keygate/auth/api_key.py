"""API key gate for protected path prefixes."""
import time
from typing import Optional

import structlog
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ..adapters.base import KeyStore, SecretStore
from ..config import Settings
from ..metrics import Metrics
from ..middleware import error_response
from ..services.crypto import (
    EncryptionKeyCodec,
    InvalidKeyFormat,
    MissingCandidateToken,
    MissingEncryptionKey,
    StoreUnavailable,
    Validator,
)

log = structlog.get_logger()


class ApiKeyGate:
    """
    Decides whether a request carries a valid API key.

    The encryption key is resolved per request: first from the ENCRYPTION_KEY
    setting, then from the secret store under ENCRYPTION_KEY_SECRET_NAME.
    Envelopes are re-listed from the store for every check, so keys uploaded
    or rotated while the gateway runs take effect immediately.
    """

    def __init__(
        self,
        key_store: KeyStore,
        secret_store: SecretStore,
        settings: Settings,
        validator: Optional[Validator] = None,
    ):
        self.key_store = key_store
        self.secret_store = secret_store
        self.protected_prefix = settings.PROTECTED_PATH_PREFIX
        self.excluded_paths = settings.excluded_paths
        self.header = settings.API_KEY_HEADER
        self._configured_key = settings.ENCRYPTION_KEY
        self._secret_name = settings.ENCRYPTION_KEY_SECRET_NAME
        self._validator = validator or Validator()

    def is_protected(self, path: str) -> bool:
        """True if the path is under the protected prefix and not excluded."""
        if not path.startswith(self.protected_prefix):
            return False
        return not any(path.startswith(excluded) for excluded in self.excluded_paths)

    def resolve_encryption_key(self) -> bytes:
        """
        Find the encryption key.

        Raises:
            MissingEncryptionKey: If neither the setting nor the secret store has it
            InvalidKeyFormat: If the key found is malformed
        """
        raw = None
        if self._configured_key is not None:
            raw = self._configured_key.get_secret_value()
        if not raw:
            raw = self.secret_store.get_secret(self._secret_name)
        if not raw:
            raise MissingEncryptionKey(
                f"Encryption key not configured; set {self._secret_name}"
            )
        return EncryptionKeyCodec.normalize(raw)

    def fetch_envelopes(self) -> list[str]:
        """Snapshot of stored envelopes."""
        return self.key_store.list_names()

    def check(self, candidate: Optional[str]) -> tuple[bool, int]:
        """
        Validate a candidate token against the store.

        Blocking: performs store reads and the full decryption scan.

        Returns:
            (allowed, number of envelopes scanned)

        Raises:
            MissingCandidateToken: If no token was supplied
            MissingEncryptionKey: If the key cannot be found
            InvalidKeyFormat: If the key is malformed
            StoreUnavailable: If the store cannot be listed
        """
        if not candidate:
            raise MissingCandidateToken("Missing API key")

        key = self.resolve_encryption_key()
        envelopes = self.fetch_envelopes()
        return self._validator.validate(candidate, envelopes, key), len(envelopes)


class ApiKeyGateMiddleware(BaseHTTPMiddleware):
    """
    Enforces the API key gate before a request reaches the routes.

    - 403 when the key is missing or does not match
    - 500 when the encryption key is missing or malformed
    - 503 when the envelope store cannot be read
    """

    def __init__(self, app, gate: ApiKeyGate, metrics: Metrics):
        super().__init__(app)
        self.gate = gate
        self.metrics = metrics
        # Metrics label for requests the gate answers before routing
        self.path_template = f"{gate.protected_prefix}{{path:path}}"

    async def dispatch(self, request: Request, call_next):
        if not self.gate.is_protected(request.url.path):
            return await call_next(request)

        request.state.path_template = self.path_template
        candidate = request.headers.get(self.gate.header)
        start_time = time.time()

        try:
            allowed, scanned = await run_in_threadpool(self.gate.check, candidate)
        except MissingCandidateToken:
            log.warning("validation.denied", reason="missing_key")
            self.metrics.record_validation("missing_key")
            return error_response(request, 403, "Unauthorized", "Unauthorized: Missing API key")
        except (MissingEncryptionKey, InvalidKeyFormat) as e:
            log.error("validation.config_error", error_type=type(e).__name__, error=str(e))
            self.metrics.record_validation("config_error")
            return error_response(
                request,
                500,
                "ConfigurationError",
                f"Server configuration error: {e}",
            )
        except StoreUnavailable as e:
            log.error("validation.store_unavailable", error=str(e))
            self.metrics.record_validation("store_unavailable")
            return error_response(request, 503, "ServiceUnavailable", "Key store unavailable")

        duration = time.time() - start_time
        if not allowed:
            log.warning("validation.denied", reason="invalid_key", scanned=scanned)
            self.metrics.record_validation("denied", duration, scanned)
            return error_response(request, 403, "Unauthorized", "Unauthorized: Invalid API key")

        log.info("validation.allowed", scanned=scanned, duration_ms=round(duration * 1000, 2))
        self.metrics.record_validation("allowed", duration, scanned)
        return await call_next(request)
