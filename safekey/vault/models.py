"""
Vault records — Secret entries and vault header metadata.

Python attributes are snake_case; the on-disk names are camelCase aliases.
"""
import base64
import binascii
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .crypto import CIPHERS, KDF_ALGORITHMS, KEY_LENGTH

FORMAT_VERSION = "1.0.0"
SUPPORTED_FORMAT_VERSIONS = frozenset({FORMAT_VERSION})


def utcnow() -> datetime:
    """Default vault clock."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SecretInfo(BaseModel):
    """Secret metadata without the value, safe for listings."""

    key: str
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    version: int = Field(default=1, ge=1)

    model_config = {"populate_by_name": True}

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timezone(cls, v: datetime) -> datetime:
        """Store timestamps as aware UTC datetimes."""
        return as_utc(v)

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, v: list[str]) -> list[str]:
        """Tags behave as a set but keep their first-seen order."""
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def validate_timestamps(self) -> "SecretInfo":
        if self.updated_at < self.created_at:
            raise ValueError("updatedAt cannot be earlier than createdAt")
        return self


class Secret(SecretInfo):
    """A named, versioned secret value."""

    value: str

    def __repr__(self) -> str:
        # keep values out of tracebacks and logs
        return (
            f"<Secret key={self.key!r} version={self.version} "
            f"updated_at={self.updated_at.isoformat()}>"
        )

    __str__ = __repr__

    def info(self) -> SecretInfo:
        """Return this secret's metadata without its value."""
        return SecretInfo(
            key=self.key,
            description=self.description,
            tags=list(self.tags),
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
        )

    def to_record(self) -> dict[str, Any]:
        """Dump the payload/export record for this secret.

        Optional fields are omitted when unset so their presence survives
        a round-trip.
        """
        record: dict[str, Any] = {"value": self.value}
        if self.description is not None:
            record["description"] = self.description
        if self.tags:
            record["tags"] = list(self.tags)
        record["createdAt"] = self.created_at
        record["updatedAt"] = self.updated_at
        record["version"] = self.version
        return record

    @classmethod
    def from_record(cls, key: str, record: dict[str, Any]) -> "Secret":
        """Build a Secret from a payload/export record keyed by ``key``."""
        return cls.model_validate({**record, "key": key})


class KdfParams(BaseModel):
    """Key-derivation parameters persisted in the vault header."""

    algorithm: str = "pbkdf2-sha256"
    iterations: int = Field(ge=1)
    key_length: int = Field(default=KEY_LENGTH, alias="keyLength")

    model_config = {"populate_by_name": True}

    @field_validator("algorithm")
    @classmethod
    def validate_algorithm(cls, v: str) -> str:
        if v not in KDF_ALGORITHMS:
            raise ValueError(f"Unsupported key derivation algorithm: {v}")
        return v

    @field_validator("key_length")
    @classmethod
    def validate_key_length(cls, v: int) -> int:
        if v != KEY_LENGTH:
            raise ValueError(f"keyLength must be {KEY_LENGTH}, got {v}")
        return v


class VaultMetadata(BaseModel):
    """Unencrypted vault header."""

    version: str = FORMAT_VERSION
    salt: str
    kdf: KdfParams
    cipher: str = "aes-256-gcm"
    key_count: int = Field(default=0, ge=0, alias="keyCount")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = {"populate_by_name": True}

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if v not in SUPPORTED_FORMAT_VERSIONS:
            raise ValueError(f"Unsupported vault format version: {v}")
        return v

    @field_validator("salt")
    @classmethod
    def validate_salt(cls, v: str) -> str:
        try:
            raw = base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("salt is not valid base64") from None
        if not raw:
            raise ValueError("salt cannot be empty")
        return v

    @field_validator("cipher")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        if v not in CIPHERS:
            raise ValueError(f"Unsupported cipher: {v}")
        return v

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timezone(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def salt_bytes(self) -> bytes:
        return base64.b64decode(self.salt)

    def header(self) -> dict[str, Any]:
        """Header fields as JSON-ready camelCase data."""
        return self.model_dump(mode="json", by_alias=True)
