"""
Blob providers — Capability interface for storing encrypted vault files.

Providers move the *encrypted* bytes of a vault file around (upload,
download, version history). They never see passwords, keys or plaintext;
from their point of view a vault is an opaque, checksummed blob.
"""
import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable


def checksum(data: bytes) -> str:
    """Hex SHA-256 of a blob."""
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class BlobVersion:
    """One stored version of a vault blob."""

    id: str
    timestamp: datetime
    size: int
    checksum: str
    description: Optional[str] = None


@dataclass(frozen=True)
class BlobMetadata:
    """Metadata of the latest version of a vault blob."""

    vault_id: str
    version_id: str
    last_modified: datetime
    size: int
    checksum: str
    version_count: int = 1
    description: Optional[str] = None
    extra: dict = field(default_factory=dict)


class ProviderError(Exception):
    """Base class for blob provider errors."""

    def __init__(self, provider: str, message: str, retryable: bool = False):
        self.provider = provider
        self.retryable = retryable
        super().__init__(f"[{provider}] {message}")


class ProviderNotFoundError(ProviderError, KeyError):
    """No provider is registered under the requested name."""

    def __init__(self, name: str, available: list[str]):
        super().__init__(
            name,
            f"unknown provider (available: {', '.join(available) or 'none'})",
        )

    def __str__(self) -> str:
        return self.args[0]


class BlobNotFoundError(ProviderError):
    """The requested vault id (or version) is not stored by the provider."""

    def __init__(self, provider: str, vault_id: str, version_id: Optional[str] = None):
        self.vault_id = vault_id
        self.version_id = version_id
        what = f"{vault_id}@{version_id}" if version_id else vault_id
        super().__init__(provider, f"vault {what} not found")


class ChecksumMismatchError(ProviderError):
    """Stored bytes do not match the checksum recorded at upload."""

    def __init__(self, provider: str, vault_id: str, version_id: str):
        self.vault_id = vault_id
        self.version_id = version_id
        super().__init__(
            provider, f"checksum mismatch for {vault_id}@{version_id}",
        )


@runtime_checkable
class BlobProvider(Protocol):
    """Operations every storage backend implements."""

    name: str

    def upload(self, vault_id: str, data: bytes, description: Optional[str] = None) -> str:
        """Store ``data`` as a new version and return its version id."""
        ...

    def download(
        self, vault_id: str, version_id: Optional[str] = None,
    ) -> tuple[bytes, BlobMetadata]:
        """Return the bytes of a version (latest by default)."""
        ...

    def list_versions(self, vault_id: str) -> list[BlobVersion]:
        """Versions oldest first."""
        ...

    def delete(self, vault_id: str) -> None:
        """Remove the blob and its whole history."""
        ...

    def exists(self, vault_id: str) -> bool:
        ...

    def get_metadata(self, vault_id: str) -> BlobMetadata:
        """Metadata of the latest version without downloading it."""
        ...
