"""
Vault — One open, decrypted vault file.

Provides the public API of the vault core:
- ``Vault.initialize(path, password)`` / ``Vault.load(path, password)``
- ``add_secret`` / ``get_secret`` / ``update_secret`` / ``remove_secret``
- ``list_secrets`` / ``get_all_secrets``
- ``export_secrets`` / ``import_secrets``
- ``change_master_password``
- ``clear_master_key`` / ``close`` (also via ``with``)

Every mutation re-encrypts the whole secret mapping and atomically replaces
the vault file before returning. The new mapping is only swapped into memory
once the write succeeded, so a failed write leaves memory and disk at the
previous state.

Security Note:
    Never log passwords, keys, plaintext or ciphertext values. Only log key
    names, operations, counts and paths. Decrypted values exist in process
    memory while the vault is open (see threat model in ``__init__.py``).
"""
import logging
import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from ..exceptions import (
    AuthenticationFailure,
    CorruptVaultError,
    InvalidKeyError,
    InvalidSecretKeyError,
    SecretAlreadyExistsError,
    SecretNotFoundError,
    ValidationError,
    VaultAlreadyExistsError,
    VaultLockedError,
)
from . import codec, transcoder
from .config import VaultConfig
from .crypto import decrypt, derive_key, encrypt, generate_salt, secure_wipe
from .key_rotation import rotate_master_password
from .models import Secret, SecretInfo, VaultMetadata, as_utc, utcnow
from .transcoder import ExportFormat

logger = logging.getLogger("safekey.vault")

_FORBIDDEN_KEY_CHARS = ("=", "\x00", "\n", "\r")


class ConflictPolicy(str, Enum):
    """What ``import_secrets`` does with keys that already exist."""

    ERROR = "error"
    SKIP = "skip"
    OVERWRITE = "overwrite"


def _check_password(password: str) -> None:
    if not isinstance(password, str) or not password:
        raise ValidationError("Master password cannot be empty")


class Vault:
    """An open vault: decrypted secret mapping plus its derived key.

    Instances come from ``initialize()`` or ``load()``. The derived key lives
    only inside the instance and is wiped by ``close()``; after that every
    operation raises ``VaultLockedError``.

    Use it as a context manager so the key is wiped on every exit path::

        with Vault.load(path, password, config) as vault:
            vault.add_secret("API_KEY", "abc123")
    """

    def __init__(
        self,
        path: Path,
        key: bytearray,
        metadata: VaultMetadata,
        secrets: dict[str, Secret],
        config: VaultConfig,
        clock: Callable[[], datetime],
    ):
        self._path = path
        self._key: Optional[bytearray] = key
        self._metadata = metadata
        self._secrets = secrets
        self._config = config
        self._clock = clock
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return (
            f"<Vault path={str(self._path)!r} open={self.is_open} "
            f"secrets={len(self._secrets)}>"
        )

    def __enter__(self) -> "Vault":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def initialize(
        cls,
        path: Union[str, Path],
        password: str,
        config: Optional[VaultConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "Vault":
        """Create a new empty vault file and return it open.

        Args:
            path: Where to create the vault file.
            password: Master password.
            config: Settings for KDF, cipher and key validation.
            clock: Timestamp source (aware datetimes).

        Raises:
            VaultAlreadyExistsError: If something exists at ``path``.
            ValidationError: If the password is empty.
        """
        path = Path(path)
        config = config or VaultConfig()
        clock = clock or utcnow
        _check_password(password)
        if codec.exists(path):
            raise VaultAlreadyExistsError(str(path))

        salt = generate_salt(config.salt_size)
        kdf = config.kdf_params()
        key = derive_key(
            password, salt, kdf.iterations, kdf.key_length, kdf.algorithm,
        )
        now = as_utc(clock())
        metadata = VaultMetadata(
            salt=codec.b64encode(salt),
            kdf=kdf,
            cipher=config.cipher_id,
            key_count=0,
            created_at=now,
            updated_at=now,
        )
        vault = cls(path, key, metadata, {}, config, clock)
        try:
            vault._commit({})
        except BaseException:
            vault.close()
            raise
        logger.info(
            "Vault initialized: path=%s kdf=%s iterations=%d cipher=%s",
            path, kdf.algorithm, kdf.iterations, metadata.cipher,
        )
        return vault

    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        password: str,
        config: Optional[VaultConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "Vault":
        """Open an existing vault file.

        The KDF parameters and cipher come from the file header, not from
        ``config``. Loading never writes to disk.

        Raises:
            VaultNotFoundError: If no file exists at ``path``.
            CorruptVaultError: If the file structure cannot be parsed.
            InvalidKeyError: If the password is wrong or the data was altered.
        """
        path = Path(path)
        config = config or VaultConfig()
        clock = clock or utcnow
        data = codec.read(path)
        _check_password(password)
        try:
            metadata, payload = codec.deserialize(data)
        except CorruptVaultError as err:
            raise CorruptVaultError(err.reason, path=path) from None

        kdf = metadata.kdf
        key = derive_key(
            password, metadata.salt_bytes,
            kdf.iterations, kdf.key_length, kdf.algorithm,
        )
        try:
            plaintext = decrypt(
                payload, key, codec.associated_data(metadata), metadata.cipher,
            )
            secrets = codec.decode_secrets(plaintext)
        except AuthenticationFailure:
            secure_wipe(key)
            logger.warning("Vault authentication failed: path=%s", path)
            raise InvalidKeyError() from None
        except CorruptVaultError as err:
            secure_wipe(key)
            raise CorruptVaultError(err.reason, path=path) from None

        if len(secrets) != metadata.key_count:
            secure_wipe(key)
            raise CorruptVaultError(
                f"keyCount {metadata.key_count} does not match "
                f"{len(secrets)} stored secret(s)",
                path=path,
            )

        logger.info("Vault loaded: path=%s secrets=%d", path, len(secrets))
        return cls(path, key, metadata, secrets, config, clock)

    @staticmethod
    def exists(path: Union[str, Path]) -> bool:
        """Check whether a vault file exists at ``path``."""
        return codec.exists(path)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._key is not None

    @property
    def metadata(self) -> VaultMetadata:
        """Copy of the current vault header."""
        return self._metadata.model_copy(deep=True)

    def _require_open(self) -> bytearray:
        if self._key is None:
            raise VaultLockedError()
        return self._key

    def _now(self, previous: Optional[datetime] = None) -> datetime:
        """Current time, never earlier than ``previous``."""
        now = as_utc(self._clock())
        if previous is not None and now < previous:
            return previous
        return now

    def _commit(self, secrets: dict[str, Secret]) -> None:
        """Encrypt ``secrets``, persist them, then make them current."""
        key = self._require_open()
        metadata = self._metadata.model_copy(
            update={
                "key_count": len(secrets),
                "updated_at": self._now(self._metadata.updated_at),
            },
        )
        payload = encrypt(
            codec.encode_secrets(secrets), key,
            codec.associated_data(metadata), metadata.cipher,
        )
        codec.write(self._path, codec.serialize(metadata, payload))
        self._secrets = secrets
        self._metadata = metadata

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_key(self, key: str) -> None:
        """Validate a secret key name.

        Raises:
            InvalidSecretKeyError: If key is empty, too long, padded with
                whitespace, or contains '=', NUL or a line break.
        """
        if not isinstance(key, str) or not key:
            raise InvalidSecretKeyError(key, "key cannot be empty")
        if len(key) > self._config.max_key_length:
            raise InvalidSecretKeyError(
                key[:32] + "...",
                f"key cannot exceed {self._config.max_key_length} characters",
            )
        if key != key.strip():
            raise InvalidSecretKeyError(
                key, "key cannot start or end with whitespace",
            )
        if any(c in key for c in _FORBIDDEN_KEY_CHARS):
            raise InvalidSecretKeyError(
                key, "key cannot contain '=', NUL or line breaks",
            )

    @staticmethod
    def _validate_fields(
        value: str,
        description: Optional[str],
        tags: Optional[Iterable[str]],
    ) -> Optional[list[str]]:
        if not isinstance(value, str):
            raise ValidationError("Secret value must be a string")
        if description is not None and not isinstance(description, str):
            raise ValidationError("Secret description must be a string")
        if tags is None:
            return None
        if isinstance(tags, str):
            raise ValidationError("Secret tags must be a collection of strings")
        tags = list(tags)
        if not all(isinstance(t, str) for t in tags):
            raise ValidationError("Secret tags must be a collection of strings")
        return list(dict.fromkeys(tags))

    # ------------------------------------------------------------------
    # Secret builders
    # ------------------------------------------------------------------

    def _new_secret(
        self,
        key: str,
        value: str,
        description: Optional[str],
        tags: Optional[list[str]],
    ) -> Secret:
        now = self._now()
        return Secret(
            key=key,
            value=value,
            description=description,
            tags=tags or [],
            created_at=now,
            updated_at=now,
            version=1,
        )

    def _updated_secret(
        self,
        current: Secret,
        value: str,
        description: Optional[str],
        tags: Optional[list[str]],
    ) -> Secret:
        changes = {
            "value": value,
            "updated_at": self._now(current.updated_at),
            "version": current.version + 1,
        }
        if description is not None:
            changes["description"] = description
        if tags is not None:
            changes["tags"] = tags
        return current.model_copy(update=changes)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_secret(
        self,
        key: str,
        value: str,
        description: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Secret:
        """Add a new secret and persist the vault.

        Args:
            key: Secret name, unique within the vault.
            value: Secret value.
            description: Optional free text.
            tags: Optional labels.

        Returns:
            Copy of the stored secret (version 1).

        Raises:
            InvalidSecretKeyError: If the key is invalid.
            SecretAlreadyExistsError: If the key is already present.
            VaultLockedError: If the vault was closed.
        """
        with self._lock:
            self._require_open()
            self._validate_key(key)
            tag_list = self._validate_fields(value, description, tags)
            if key in self._secrets:
                raise SecretAlreadyExistsError(key)
            secret = self._new_secret(key, value, description, tag_list)
            secrets = dict(self._secrets)
            secrets[key] = secret
            self._commit(secrets)
        logger.debug("Vault add: key=%s", key)
        return secret.model_copy(deep=True)

    def get_secret(self, key: str) -> Secret:
        """Return a copy of a secret.

        Raises:
            SecretNotFoundError: If the key is absent.
            VaultLockedError: If the vault was closed.
        """
        with self._lock:
            self._require_open()
            secret = self._secrets.get(key)
            if secret is None:
                raise SecretNotFoundError(key)
            return secret.model_copy(deep=True)

    def update_secret(
        self,
        key: str,
        value: str,
        description: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Secret:
        """Replace a secret's value, bump its version, and persist the vault.

        ``description`` and ``tags`` keep their previous values when None.

        Raises:
            SecretNotFoundError: If the key is absent.
            VaultLockedError: If the vault was closed.
        """
        with self._lock:
            self._require_open()
            tag_list = self._validate_fields(value, description, tags)
            current = self._secrets.get(key)
            if current is None:
                raise SecretNotFoundError(key)
            secret = self._updated_secret(current, value, description, tag_list)
            secrets = dict(self._secrets)
            secrets[key] = secret
            self._commit(secrets)
        logger.debug("Vault update: key=%s version=%d", key, secret.version)
        return secret.model_copy(deep=True)

    def remove_secret(self, key: str) -> None:
        """Delete a secret and persist the vault.

        Raises:
            SecretNotFoundError: If the key is absent.
            VaultLockedError: If the vault was closed.
        """
        with self._lock:
            self._require_open()
            if key not in self._secrets:
                raise SecretNotFoundError(key)
            secrets = {k: v for k, v in self._secrets.items() if k != key}
            self._commit(secrets)
        logger.debug("Vault remove: key=%s", key)

    def list_secrets(self) -> list[str]:
        """Secret keys in insertion order."""
        with self._lock:
            self._require_open()
            return list(self._secrets)

    def get_all_secrets(self) -> list[SecretInfo]:
        """Metadata of every secret, without values, in insertion order."""
        with self._lock:
            self._require_open()
            return [secret.info() for secret in self._secrets.values()]

    def export_secrets(self, fmt: Union[str, ExportFormat] = ExportFormat.JSON) -> str:
        """Export all secrets as ``json`` or ``env`` text.

        Raises:
            FormatError: If the format is unknown, or a value cannot be
                represented in env format.
        """
        with self._lock:
            self._require_open()
            text = transcoder.export_secrets(self._secrets, fmt)
        logger.info(
            "Vault export: path=%s format=%s secrets=%d",
            self._path, transcoder.parse_format(fmt).value, len(self._secrets),
        )
        return text

    def import_secrets(
        self,
        text: str,
        fmt: Union[str, ExportFormat] = ExportFormat.JSON,
        on_conflict: Union[str, ConflictPolicy] = ConflictPolicy.ERROR,
    ) -> int:
        """Import secrets from ``json`` or ``env`` text in one write.

        Args:
            text: Document to import.
            fmt: Document format.
            on_conflict: ``error`` (default) rejects the whole import if any
                key exists; ``skip`` leaves existing keys alone;
                ``overwrite`` updates them (version + 1).

        Returns:
            Number of secrets added or overwritten.

        Raises:
            FormatError: If the document is malformed.
            InvalidSecretKeyError: If any imported key is invalid.
            SecretAlreadyExistsError: On a conflict under the ``error`` policy.
        """
        try:
            policy = ConflictPolicy(on_conflict)
        except ValueError:
            raise ValidationError(
                f"Unknown conflict policy {on_conflict!r} "
                "(expected 'error', 'skip' or 'overwrite')"
            ) from None
        entries = transcoder.parse_import(text, fmt)

        with self._lock:
            self._require_open()
            tag_lists = []
            for entry in entries:
                self._validate_key(entry.key)
                tag_lists.append(
                    self._validate_fields(entry.value, entry.description, entry.tags)
                )
            if policy is ConflictPolicy.ERROR:
                for entry in entries:
                    if entry.key in self._secrets:
                        raise SecretAlreadyExistsError(entry.key)

            secrets = dict(self._secrets)
            count = 0
            for entry, tag_list in zip(entries, tag_lists):
                existing = secrets.get(entry.key)
                if existing is not None:
                    if policy is ConflictPolicy.SKIP:
                        continue
                    secrets[entry.key] = self._updated_secret(
                        existing, entry.value, entry.description, tag_list,
                    )
                elif entry.record is not None:
                    secrets[entry.key] = entry.record
                else:
                    secrets[entry.key] = self._new_secret(
                        entry.key, entry.value, entry.description, tag_list,
                    )
                count += 1
            if count:
                self._commit(secrets)

        logger.info(
            "Vault import: path=%s format=%s imported=%d policy=%s",
            self._path, transcoder.parse_format(fmt).value, count, policy.value,
        )
        return count

    def change_master_password(self, new_password: str) -> None:
        """Re-encrypt the whole vault under a new password and fresh salt.

        The old key is wiped only after the new file is written and
        verified. On failure the original file and this instance are left
        unchanged.

        Raises:
            ValidationError: If the new password is empty.
            VaultLockedError: If the vault was closed.
        """
        _check_password(new_password)
        with self._lock:
            old_key = self._require_open()
            new_key, metadata = rotate_master_password(
                self._path, self._secrets, self._metadata,
                new_password, self._config, self._now,
            )
            self._key = new_key
            self._metadata = metadata
            secure_wipe(old_key)

    def clear_master_key(self) -> None:
        """Wipe the derived key and drop the decrypted secrets.

        Safe to call more than once.
        """
        with self._lock:
            if self._key is not None:
                secure_wipe(self._key)
                self._key = None
                logger.debug("Vault key cleared: path=%s", self._path)
            self._secrets = {}

    close = clear_master_key
