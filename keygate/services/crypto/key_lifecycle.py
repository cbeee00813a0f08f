"""
KeyLifecycleManager for token generation, upload and rotation
"""

import base64
import math
import secrets
from datetime import datetime
from typing import Callable, Iterable, Optional

import structlog

from ...adapters.base import KeyStore
from .envelope import EnvelopeCodec
from .errors import PersistenceFailure
from .key_codec import EncryptionKeyCodec, group
from .token_models import (
    PersistResult,
    RotationReport,
    RotationState,
    TokenPolicy,
    UploadReport,
    preview,
)

log = structlog.get_logger()

STORED_MARKER = "true"
ROTATION_PREFIX = "rotated-"
DEFAULT_ROTATION_COUNT = 5


class KeyLifecycleManager:
    """
    Manages the life of API tokens

    Provides:
    - Random token generation under a configurable policy
    - Encryption and per-token persistence with continue-on-error
    - Rotation that only appends new tokens to a namespace
    """

    def __init__(
        self,
        store_factory: Callable[[str], KeyStore],
        codec: type[EnvelopeCodec] = EnvelopeCodec,
    ):
        """
        Initialize KeyLifecycleManager

        Args:
            store_factory: Returns the envelope store for a namespace
            codec: Envelope codec used to seal new tokens
        """
        self._store_factory = store_factory
        self._codec = codec
        self._state = RotationState.IDLE

    @property
    def state(self) -> RotationState:
        """Current rotation workflow state"""
        return self._state

    def _transition(self, state: RotationState, **context) -> None:
        log.info("rotation.state", previous=self._state.value, state=state.value, **context)
        self._state = state

    @staticmethod
    def generate_token(policy: TokenPolicy, prefix: str = "") -> str:
        """
        Generate one random token.

        The random part comes from the OS CSPRNG and is rendered as hex, or as
        base64 when the policy allows special characters. Grouping applies to
        the random part; the prefix is kept intact in front of it.

        Args:
            policy: Token generation policy
            prefix: Prefix placed before the random part

        Returns:
            The plaintext token
        """
        raw = secrets.token_bytes(math.ceil(policy.length * 0.75))
        if policy.use_special_chars:
            body = base64.b64encode(raw).decode("ascii")[:policy.length]
        else:
            body = raw.hex()[:policy.length]

        if policy.formatted:
            body = group(body)
        return prefix + body

    def generate_tokens(self, count: int, policy: Optional[TokenPolicy] = None) -> list[str]:
        """
        Generate ``count`` independent random tokens.

        Without an explicit prefix each token is prefixed with its position
        (key0-, key1-, ...). A numbered policy appends the position to its
        prefix instead (rotated-0-, rotated-1-, ...).

        Raises:
            ValueError: If count is negative
        """
        if count < 0:
            raise ValueError("Token count cannot be negative")

        policy = policy or TokenPolicy()
        tokens = []
        for i in range(count):
            if policy.prefix is None:
                prefix = f"key{i}-"
            elif policy.numbered:
                prefix = f"{policy.prefix}{i}-"
            else:
                prefix = policy.prefix
            tokens.append(self.generate_token(policy, prefix))

        log.info("tokens.generated", count=count, length=policy.length)
        return tokens

    def encrypt_and_persist(
        self,
        tokens: Iterable[str],
        key: str | bytes,
        store: KeyStore,
    ) -> UploadReport:
        """
        Encrypt each token and hand its envelope to the store.

        A PersistenceFailure is recorded against its token and the batch
        continues; any other error from the store propagates.

        Args:
            tokens: Plaintext tokens
            key: Encryption key, 32 raw bytes or the external hex form
            store: Destination envelope store

        Returns:
            UploadReport with one PersistResult per token

        Raises:
            InvalidKeyFormat: If the key is unusable (nothing is written)
        """
        key_bytes = EncryptionKeyCodec.coerce(key)
        results: list[PersistResult] = []

        for token in tokens:
            envelope = self._codec.encrypt(token, key_bytes)
            try:
                store.put(envelope, STORED_MARKER)
            except PersistenceFailure as e:
                log.error("token.persist_failed", token=preview(token), error=str(e))
                results.append(PersistResult(token=token, envelope=envelope, success=False, error=str(e)))
                continue

            log.info("token.persisted", token=preview(token))
            results.append(PersistResult(token=token, envelope=envelope, success=True))

        report = UploadReport(results=results)
        log.info(
            "upload.complete",
            succeeded=report.succeeded,
            failed=report.failed,
            status=report.status.value,
        )
        return report

    def rotate(
        self,
        namespace: str,
        key: str | bytes,
        new_count: int = DEFAULT_ROTATION_COUNT,
        policy: Optional[TokenPolicy] = None,
    ) -> RotationReport:
        """
        Introduce new valid tokens without touching existing ones.

        Args:
            namespace: Store namespace receiving the new envelopes
            key: Encryption key, 32 raw bytes or the external hex form
            new_count: Number of tokens to generate
            policy: Generation policy (default: formatted, prefixed rotated-<N>-)

        Returns:
            RotationReport with per-token results and the new plaintext tokens

        Raises:
            InvalidKeyFormat: If the key is unusable
            ValueError: If new_count is not positive
        """
        if new_count < 1:
            raise ValueError("Rotation must generate at least one token")

        key_bytes = EncryptionKeyCodec.coerce(key)
        policy = policy or TokenPolicy(prefix=ROTATION_PREFIX, formatted=True, numbered=True)
        started_at = datetime.utcnow()

        self._transition(RotationState.GENERATING, namespace=namespace, count=new_count)
        tokens = self.generate_tokens(new_count, policy)

        self._transition(RotationState.PERSISTING, namespace=namespace)
        try:
            store = self._store_factory(namespace)
            upload = self.encrypt_and_persist(tokens, key_bytes, store)
        except Exception as e:
            self._transition(RotationState.FAILED, namespace=namespace, error=str(e))
            raise

        report = RotationReport(
            namespace=namespace,
            tokens=tokens,
            results=upload.results,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )
        self._transition(
            report.status,
            namespace=namespace,
            succeeded=report.succeeded,
            failed=report.failed,
        )
        return report
