"""
Local directory provider — versioned vault blobs in a plain directory.

Layout::

    <root>/<vault_id>/index.json           version list, oldest first
    <root>/<vault_id>/<version_id>.vault   immutable blob per upload

Useful for backups to a mounted drive or a synced folder, and as the
reference implementation of ``BlobProvider``.
"""
import re
import shutil
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

import orjson

from ..vault import codec
from ..vault.models import as_utc, utcnow
from . import register_provider
from .base import (
    BlobMetadata,
    BlobNotFoundError,
    BlobVersion,
    ChecksumMismatchError,
    ProviderError,
    checksum,
)

logger = logging.getLogger("safekey.providers")

_VAULT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")
_INDEX = "index.json"


@register_provider("local")
class LocalDirectoryProvider:
    """Store vault blobs under a local directory."""

    name = "local"

    def __init__(
        self,
        root: Union[str, Path],
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.root = Path(root).expanduser()
        self._clock = clock or utcnow

    def __repr__(self) -> str:
        return f"<LocalDirectoryProvider root={str(self.root)!r}>"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _vault_dir(self, vault_id: str) -> Path:
        if not _VAULT_ID_PATTERN.match(vault_id):
            raise ProviderError(self.name, f"invalid vault id {vault_id!r}")
        return self.root / vault_id

    def _read_index(self, vault_id: str) -> list[BlobVersion]:
        index = self._vault_dir(vault_id) / _INDEX
        if not index.exists():
            raise BlobNotFoundError(self.name, vault_id)
        entries = orjson.loads(index.read_bytes())
        if not entries:
            raise BlobNotFoundError(self.name, vault_id)
        return [
            BlobVersion(
                id=entry["id"],
                timestamp=datetime.fromisoformat(entry["timestamp"]),
                size=entry["size"],
                checksum=entry["checksum"],
                description=entry.get("description"),
            )
            for entry in entries
        ]

    def _write_index(self, vault_id: str, versions: list[BlobVersion]) -> None:
        entries = [
            {
                "id": v.id,
                "timestamp": v.timestamp.isoformat(),
                "size": v.size,
                "checksum": v.checksum,
                "description": v.description,
            }
            for v in versions
        ]
        codec.write(
            self._vault_dir(vault_id) / _INDEX,
            orjson.dumps(entries, option=orjson.OPT_INDENT_2),
        )

    def _metadata(self, vault_id: str, versions: list[BlobVersion]) -> BlobMetadata:
        latest = versions[-1]
        return BlobMetadata(
            vault_id=vault_id,
            version_id=latest.id,
            last_modified=latest.timestamp,
            size=latest.size,
            checksum=latest.checksum,
            version_count=len(versions),
            description=latest.description,
            extra={"root": str(self.root)},
        )

    # ------------------------------------------------------------------
    # BlobProvider
    # ------------------------------------------------------------------

    def upload(self, vault_id: str, data: bytes, description: Optional[str] = None) -> str:
        """Store ``data`` as a new version.

        Returns:
            The new version id.
        """
        directory = self._vault_dir(vault_id)
        try:
            versions = self._read_index(vault_id)
        except BlobNotFoundError:
            versions = []
        now = as_utc(self._clock())
        digest = checksum(data)
        version_id = f"{now:%Y%m%dT%H%M%S%f}-{digest[:12]}"
        if any(v.id == version_id for v in versions):
            # identical bytes uploaded twice within the same microsecond
            version_id = f"{version_id}-{len(versions)}"
        codec.write(directory / f"{version_id}.vault", data)
        versions.append(
            BlobVersion(
                id=version_id,
                timestamp=now,
                size=len(data),
                checksum=digest,
                description=description,
            )
        )
        self._write_index(vault_id, versions)
        logger.info(
            "Uploaded vault blob: vault=%s version=%s bytes=%d",
            vault_id, version_id, len(data),
        )
        return version_id

    def download(
        self, vault_id: str, version_id: Optional[str] = None,
    ) -> tuple[bytes, BlobMetadata]:
        """Return the bytes of a version (latest by default).

        Raises:
            BlobNotFoundError: If the vault or version does not exist.
            ChecksumMismatchError: If the stored bytes were altered.
        """
        versions = self._read_index(vault_id)
        if version_id is None:
            selected = versions[-1]
        else:
            matches = [v for v in versions if v.id == version_id]
            if not matches:
                raise BlobNotFoundError(self.name, vault_id, version_id)
            selected = matches[0]
        blob = self._vault_dir(vault_id) / f"{selected.id}.vault"
        if not blob.exists():
            raise BlobNotFoundError(self.name, vault_id, selected.id)
        data = blob.read_bytes()
        if checksum(data) != selected.checksum:
            raise ChecksumMismatchError(self.name, vault_id, selected.id)
        history = versions[: versions.index(selected) + 1]
        return data, self._metadata(vault_id, history)

    def list_versions(self, vault_id: str) -> list[BlobVersion]:
        return self._read_index(vault_id)

    def delete(self, vault_id: str) -> None:
        """Remove the vault directory and every stored version.

        Raises:
            BlobNotFoundError: If nothing is stored under ``vault_id``.
        """
        directory = self._vault_dir(vault_id)
        if not directory.exists():
            raise BlobNotFoundError(self.name, vault_id)
        shutil.rmtree(directory)
        logger.info("Deleted vault blob: vault=%s", vault_id)

    def exists(self, vault_id: str) -> bool:
        return (self._vault_dir(vault_id) / _INDEX).exists()

    def get_metadata(self, vault_id: str) -> BlobMetadata:
        return self._metadata(vault_id, self._read_index(vault_id))
