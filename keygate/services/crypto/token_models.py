"""
Token models and reports for key lifecycle management
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field


def preview(token: str) -> str:
    """First three characters of a token, safe for logs and reports"""
    return f"{token[:3]}..."


class TokenPolicy(BaseModel):
    """
    Generation policy for plaintext API tokens
    """
    length: int = Field(default=32, ge=1, le=1024, description="Random part length")
    prefix: Optional[str] = Field(
        default=None,
        description="Prefix for every token; key<N>- when omitted"
    )
    use_special_chars: bool = Field(
        default=False,
        description="Use the base64 alphabet instead of hexadecimal"
    )
    formatted: bool = Field(default=True, description="Group with dashes every 8 characters")
    numbered: bool = Field(
        default=False,
        description="Append the token position to an explicit prefix (prefix<N>-)"
    )


class RotationState(str, Enum):
    """
    Rotation workflow states
    """
    IDLE = "Idle"
    GENERATING = "Generating"
    PERSISTING = "Persisting"
    COMPLETED = "Completed"
    PARTIALLY_FAILED = "PartiallyFailed"
    FAILED = "Failed"


class PersistResult(BaseModel):
    """
    Outcome of encrypting and storing one token
    """
    token: str
    envelope: Optional[str] = None
    success: bool
    error: Optional[str] = None

    @property
    def preview(self) -> str:
        return preview(self.token)


class UploadReport(BaseModel):
    """
    Aggregated result of a batch upload
    """
    results: list[PersistResult] = Field(default_factory=list)

    @computed_field
    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @computed_field
    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @computed_field
    @property
    def status(self) -> RotationState:
        if self.failed == 0:
            return RotationState.COMPLETED
        if self.succeeded == 0:
            return RotationState.FAILED
        return RotationState.PARTIALLY_FAILED

    @property
    def failures(self) -> list[PersistResult]:
        return [r for r in self.results if not r.success]

    @property
    def successes(self) -> list[PersistResult]:
        return [r for r in self.results if r.success]


class RotationReport(UploadReport):
    """
    Result of a rotation: the upload report plus the new plaintext tokens
    for out-of-band distribution
    """
    namespace: str
    tokens: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
