"""
Envelope codec for tokens stored at rest

Envelope wire format (single hex string, no delimiters):

    [0:32)   IV, 16 bytes
    [32:64)  GCM authentication tag, 16 bytes
    [64:)    ciphertext, same length as the plaintext

Encryption is AES-256-GCM with empty additional authenticated data and a
128-bit tag. Hex is accepted in either case on decode and emitted lowercase.
"""

import re
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import AuthenticationFailure, InvalidKeyFormat, MalformedEnvelope
from .key_codec import KEY_LENGTH

IV_LENGTH = 16
TAG_LENGTH = 16
IV_HEX_LENGTH = IV_LENGTH * 2
HEADER_HEX_LENGTH = (IV_LENGTH + TAG_LENGTH) * 2
EMPTY_AAD = b""

_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")


class EnvelopeCodec:
    """
    Seals and opens single-token envelopes.

    Features:
    - Fresh 16-byte IV from the OS CSPRNG on every encryption
    - AES-256-GCM, empty AAD, 128-bit tag
    - Structural and authentication failures reported as distinct exceptions
    """

    @staticmethod
    def _cipher(key: bytes) -> AESGCM:
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
            raise InvalidKeyFormat(f"Encryption key must be {KEY_LENGTH} bytes")
        return AESGCM(bytes(key))

    @classmethod
    def encrypt(cls, plaintext: str, key: bytes) -> str:
        """
        Encrypt a plaintext token into an envelope.

        Two calls with the same plaintext and key produce different envelopes.

        Args:
            plaintext: Token to protect
            key: 32-byte encryption key

        Returns:
            Lowercase hex string IV || tag || ciphertext

        Raises:
            InvalidKeyFormat: If the key is not 32 bytes
        """
        iv = secrets.token_bytes(IV_LENGTH)
        # AESGCM appends the tag to the ciphertext
        sealed = cls._cipher(key).encrypt(iv, plaintext.encode("utf-8"), EMPTY_AAD)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return (iv + tag + ciphertext).hex()

    @staticmethod
    def parse(envelope: str) -> tuple[bytes, bytes, bytes]:
        """
        Split an envelope into (iv, tag, ciphertext).

        Raises:
            MalformedEnvelope: If the envelope is too short or not hex
        """
        if not isinstance(envelope, str):
            raise MalformedEnvelope("Envelope must be a string")
        if len(envelope) < HEADER_HEX_LENGTH:
            raise MalformedEnvelope("Envelope shorter than IV and tag")
        if len(envelope) % 2 or not _HEX_RE.match(envelope):
            raise MalformedEnvelope("Envelope is not a hex string")

        raw = bytes.fromhex(envelope)
        iv = raw[:IV_LENGTH]
        tag = raw[IV_LENGTH:IV_LENGTH + TAG_LENGTH]
        ciphertext = raw[IV_LENGTH + TAG_LENGTH:]
        return iv, tag, ciphertext

    @classmethod
    def decrypt(cls, envelope: str, key: bytes) -> str:
        """
        Open an envelope and return the original token.

        Args:
            envelope: Hex envelope as produced by encrypt()
            key: 32-byte encryption key

        Returns:
            Decrypted token text

        Raises:
            MalformedEnvelope: If the envelope is structurally invalid
            AuthenticationFailure: If the tag does not verify
            InvalidKeyFormat: If the key is not 32 bytes
        """
        iv, tag, ciphertext = cls.parse(envelope)
        cipher = cls._cipher(key)

        try:
            plaintext = cipher.decrypt(iv, ciphertext + tag, EMPTY_AAD)
        except InvalidTag:
            raise AuthenticationFailure("Envelope authentication failed")

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedEnvelope("Envelope plaintext is not valid UTF-8")
