"""
Token validator

Matches one plaintext candidate against the stored envelope set. GCM
ciphertexts are randomized, so there is no index: every envelope is opened in
turn until one matches.
"""

import secrets
from typing import Iterable

import structlog

from .envelope import EnvelopeCodec
from .errors import DecryptFailure
from .key_codec import EncryptionKeyCodec

log = structlog.get_logger()


class Validator:
    """
    Linear-scan validator over independently encrypted envelopes.

    Entries that fail to decrypt are treated exactly like entries that decrypt
    to a different token.
    """

    def __init__(self, codec: type[EnvelopeCodec] = EnvelopeCodec):
        self._codec = codec

    def validate(self, candidate: str, stored: Iterable[str], key: str | bytes) -> bool:
        """
        Check whether ``candidate`` is one of the stored tokens.

        Args:
            candidate: Plaintext token supplied by the caller
            stored: Envelopes as returned by the store
            key: Encryption key, 32 raw bytes or the external hex form

        Returns:
            True on the first matching envelope, False otherwise

        Raises:
            InvalidKeyFormat: If the key is unusable
        """
        key_bytes = EncryptionKeyCodec.coerce(key)
        snapshot = tuple(stored)
        wanted = candidate.encode("utf-8")
        skipped = 0

        for envelope in snapshot:
            try:
                plaintext = self._codec.decrypt(envelope, key_bytes)
            except DecryptFailure:
                skipped += 1
                continue

            if secrets.compare_digest(plaintext.encode("utf-8"), wanted):
                return True

        log.debug("validation.no_match", scanned=len(snapshot), undecryptable=skipped)
        return False
