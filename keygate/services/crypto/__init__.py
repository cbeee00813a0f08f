"""
KeyGate Cryptographic Services Module

Provides the core of API key gating:
- Envelope encryption of stored tokens (AES-256-GCM)
- Encryption key normalization and formatting
- Linear-scan validation of a candidate token
- Token generation, upload and rotation
"""

from .envelope import EnvelopeCodec
from .key_codec import EncryptionKeyCodec
from .validator import Validator
from .key_lifecycle import KeyLifecycleManager
from .token_models import (
    TokenPolicy,
    PersistResult,
    UploadReport,
    RotationReport,
    RotationState
)
from .errors import (
    KeyGateError,
    DecryptFailure,
    MalformedEnvelope,
    AuthenticationFailure,
    InvalidKeyFormat,
    MissingEncryptionKey,
    MissingCandidateToken,
    PersistenceFailure,
    StoreUnavailable,
    KeyFileError
)

__all__ = [
    "EnvelopeCodec",
    "EncryptionKeyCodec",
    "Validator",
    "KeyLifecycleManager",
    "TokenPolicy",
    "PersistResult",
    "UploadReport",
    "RotationReport",
    "RotationState",
    "KeyGateError",
    "DecryptFailure",
    "MalformedEnvelope",
    "AuthenticationFailure",
    "InvalidKeyFormat",
    "MissingEncryptionKey",
    "MissingCandidateToken",
    "PersistenceFailure",
    "StoreUnavailable",
    "KeyFileError",
]
