"""Base interfaces for envelope stores and the secret facility."""
from abc import ABC, abstractmethod


class KeyStore(ABC):
    """Abstract interface for the key-value store holding envelopes.

    Each stored name is one serialized envelope. The value is an opaque
    presence marker and is never interpreted.
    """

    @abstractmethod
    def list_names(self) -> list[str]:
        """
        List every stored envelope.

        Returns:
            Snapshot of envelope names

        Raises:
            StoreUnavailable: If the store cannot be read
        """
        pass

    @abstractmethod
    def put(self, name: str, value: str) -> None:
        """
        Store one envelope.

        Args:
            name: Serialized envelope
            value: Presence marker

        Raises:
            PersistenceFailure: If the write fails
        """
        pass

    @abstractmethod
    def exists(self, name: str) -> bool:
        """Check whether an envelope is stored."""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """
        Check if the backend is healthy and accessible.

        Returns:
            True if backend is healthy, False otherwise
        """
        pass


class SecretStore(ABC):
    """Abstract interface for the facility holding the encryption key."""

    @abstractmethod
    def put_secret(self, name: str, value: str) -> None:
        """
        Persist a secret under a well-known name.

        Raises:
            PersistenceFailure: If the write fails
        """
        pass

    @abstractmethod
    def get_secret(self, name: str) -> str | None:
        """Return the secret, or None if it was never set."""
        pass
