"""
Error taxonomy for KeyGate

Decrypt failures (malformed envelopes and tag mismatches) are recovered by the
validator and never reach a caller. Key format and missing key errors abort the
current operation. Persistence failures are collected per token.
"""


class KeyGateError(Exception):
    """Base exception for all KeyGate errors"""
    pass


class DecryptFailure(KeyGateError):
    """Raised when an envelope cannot be opened"""
    pass


class MalformedEnvelope(DecryptFailure):
    """Raised when stored data is not a structurally valid envelope"""
    pass


class AuthenticationFailure(DecryptFailure):
    """Raised when the GCM tag does not verify (wrong key or tampering)"""
    pass


class InvalidKeyFormat(KeyGateError, ValueError):
    """Raised when an encryption key string fails normalization"""
    pass


class MissingEncryptionKey(KeyGateError):
    """Raised when no encryption key is available at validation time"""
    pass


class MissingCandidateToken(KeyGateError):
    """Raised when the caller supplied no token"""
    pass


class PersistenceFailure(KeyGateError):
    """Raised when the store rejects a single write"""
    pass


class StoreUnavailable(KeyGateError):
    """Raised when the stored envelope set cannot be read"""
    pass


class KeyFileError(KeyGateError):
    """Raised when a key list file cannot be read or has the wrong shape"""
    pass
