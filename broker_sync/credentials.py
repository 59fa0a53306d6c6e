"""
Broker Sync - Stored Credentials.

============================================================
PURPOSE
============================================================
Resolves the credentials stored on a broker connection into a
plain mapping the broker adapter can use.

FORMATS:
- EncryptedCredentials: ciphertext string, decrypted by an
  external capability
- LegacyCredentials: plain object written before encryption
  was introduced, used as-is

Resolution happens once, at the top of a sync run. Migration of
legacy rows is not a precondition for syncing.

============================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping

from .types import CredentialError


logger = logging.getLogger(__name__)


Decryptor = Callable[[str], Mapping[str, Any]]
"""decrypt(stored) -> credentials mapping."""


class StoredCredentials(ABC):
    """Credentials as they sit on a broker connection row."""

    @staticmethod
    def from_stored(stored: Any) -> "StoredCredentials":
        """
        Classify a stored credentials value.

        Raises:
            CredentialError: When the value is neither a string nor an object
        """
        if isinstance(stored, StoredCredentials):
            return stored

        if isinstance(stored, str):
            if not stored.strip():
                raise CredentialError("Stored credentials are empty")
            return EncryptedCredentials(ciphertext=stored)

        if isinstance(stored, Mapping):
            return LegacyCredentials(payload=dict(stored))

        raise CredentialError(
            f"Unsupported stored credentials format: {type(stored).__name__}"
        )

    @abstractmethod
    def resolve(self, decrypt: Decryptor) -> Dict[str, Any]:
        """Return the plain credentials mapping."""
        pass


@dataclass(frozen=True)
class EncryptedCredentials(StoredCredentials):
    """Credentials stored as an encrypted string."""

    ciphertext: str

    def resolve(self, decrypt: Decryptor) -> Dict[str, Any]:
        try:
            resolved = decrypt(self.ciphertext)
        except CredentialError:
            raise
        except Exception as e:
            raise CredentialError(f"Failed to decrypt stored credentials: {e}") from e

        if not isinstance(resolved, Mapping):
            raise CredentialError("Decrypted credentials are not an object")
        return dict(resolved)

    def __repr__(self) -> str:
        return "EncryptedCredentials(ciphertext=***)"


@dataclass(frozen=True)
class LegacyCredentials(StoredCredentials):
    """Credentials stored as a plain object."""

    payload: Dict[str, Any] = field(default_factory=dict)

    def resolve(self, decrypt: Decryptor) -> Dict[str, Any]:
        logger.info("Using legacy plain-object credentials (pending migration)")
        return dict(self.payload)

    def __repr__(self) -> str:
        return f"LegacyCredentials(keys={sorted(self.payload)})"


def resolve_credentials(stored: Any, decrypt: Decryptor) -> Dict[str, Any]:
    """Classify and resolve stored credentials in one step."""
    return StoredCredentials.from_stored(stored).resolve(decrypt)
