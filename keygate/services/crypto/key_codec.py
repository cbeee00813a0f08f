"""
Encryption key codec

The encryption key is 256 bits. Externally it is 64 hex characters, optionally
grouped in chunks of 8 separated by a dash; internally it is 32 raw bytes.
"""

import re
import secrets

from .errors import InvalidKeyFormat

KEY_LENGTH = 32  # 256 bits
KEY_HEX_LENGTH = KEY_LENGTH * 2
SEPARATOR = "-"
GROUP_SIZE = 8

_HEX_KEY_RE = re.compile(r"^[0-9a-fA-F]{%d}$" % KEY_HEX_LENGTH)


def group(text: str, size: int = GROUP_SIZE, separator: str = SEPARATOR) -> str:
    """Insert a separator every ``size`` characters."""
    return separator.join(text[i:i + size] for i in range(0, len(text), size))


class EncryptionKeyCodec:
    """
    Converts encryption keys between their external string form and raw bytes.

    All methods are stateless; the key itself is always passed in explicitly.
    """

    @staticmethod
    def strip(raw: str) -> str:
        """Remove separator characters from a key string"""
        return raw.replace(SEPARATOR, "")

    @classmethod
    def normalize(cls, raw: str) -> bytes:
        """
        Normalize an external key string to 32 bytes.

        Args:
            raw: Hex key, with or without dash separators, any case

        Returns:
            The 32-byte key

        Raises:
            InvalidKeyFormat: If the residue is not exactly 64 hex characters
        """
        if not isinstance(raw, str):
            raise InvalidKeyFormat("Encryption key must be a string")

        residue = cls.strip(raw)
        if not _HEX_KEY_RE.match(residue):
            raise InvalidKeyFormat(
                f"Encryption key must be {KEY_HEX_LENGTH} hexadecimal characters"
            )
        return bytes.fromhex(residue)

    @staticmethod
    def format(key: bytes) -> str:
        """
        Render a 32-byte key as dash-grouped lowercase hex.

        Raises:
            InvalidKeyFormat: If the key is not 32 bytes
        """
        if len(key) != KEY_LENGTH:
            raise InvalidKeyFormat(f"Encryption key must be {KEY_LENGTH} bytes")
        return group(key.hex())

    @classmethod
    def is_valid(cls, raw: str) -> bool:
        """True if ``raw`` normalizes to a 32-byte key"""
        try:
            cls.normalize(raw)
        except InvalidKeyFormat:
            return False
        return True

    @classmethod
    def generate(cls, formatted: bool = True) -> str:
        """
        Generate a new random encryption key in external form.

        Args:
            formatted: Group the hex string with dashes (default: True)
        """
        key = secrets.token_bytes(KEY_LENGTH)
        if formatted:
            return cls.format(key)
        return key.hex()

    @classmethod
    def coerce(cls, key: str | bytes) -> bytes:
        """Accept either the external string form or raw bytes"""
        if isinstance(key, (bytes, bytearray)):
            if len(key) != KEY_LENGTH:
                raise InvalidKeyFormat(f"Encryption key must be {KEY_LENGTH} bytes")
            return bytes(key)
        return cls.normalize(key)
