"""
Vault File Codec — Bit-exact mapping between vault state and bytes on disk.

File layout (JSON):
    {version, salt, kdf{algorithm, iterations, keyLength}, cipher,
     keyCount, createdAt, updatedAt,
     payload{ciphertext, nonce, authTag}}

Binary fields are standard base64. The header (everything except
``payload``) is authenticated as AEAD associated data, see
``associated_data()``.

Security Note:
    The codec never sees keys or plaintext secret values; it only moves
    header fields and ciphertext around.
"""
import os
import base64
import binascii
import logging
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional, Union

import orjson
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import CorruptVaultError, VaultNotFoundError
from .crypto import NONCE_SIZE, TAG_SIZE, EncryptedPayload
from .models import Secret, VaultMetadata

logger = logging.getLogger("safekey.vault")

PathLike = Union[str, os.PathLike]

FILE_MODE = 0o600

_PAYLOAD_FIELDS = ("ciphertext", "nonce", "authTag")


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(value: Any, field: str) -> bytes:
    if not isinstance(value, str):
        raise CorruptVaultError(f"payload.{field} must be a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise CorruptVaultError(f"payload.{field} is not valid base64") from None


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def associated_data(metadata: VaultMetadata) -> bytes:
    """Canonical header bytes bound to the ciphertext as AEAD associated data.

    Keys are sorted so the value does not depend on field order in the file.
    """
    return orjson.dumps(metadata.header(), option=orjson.OPT_SORT_KEYS)


def serialize(metadata: VaultMetadata, payload: EncryptedPayload) -> bytes:
    """Serialize header and encrypted payload to vault file bytes.

    Args:
        metadata: Vault header.
        payload: Encrypted secret mapping.

    Returns:
        Pretty-printed JSON document.
    """
    document = metadata.header()
    document["payload"] = {
        "ciphertext": b64encode(payload.ciphertext),
        "nonce": b64encode(payload.nonce),
        "authTag": b64encode(payload.auth_tag),
    }
    return orjson.dumps(document, option=orjson.OPT_INDENT_2)


def deserialize(data: bytes) -> tuple[VaultMetadata, EncryptedPayload]:
    """Parse vault file bytes into header and encrypted payload.

    Args:
        data: Raw vault file content.

    Returns:
        Tuple of (metadata, encrypted_payload).

    Raises:
        CorruptVaultError: If the structure cannot be parsed, a required
            header field is missing or invalid, or the format version is
            not supported.
    """
    try:
        document = orjson.loads(data)
    except orjson.JSONDecodeError:
        raise CorruptVaultError("file is not valid JSON") from None
    if not isinstance(document, dict):
        raise CorruptVaultError("top-level value must be an object")

    raw_payload = document.pop("payload", None)
    if not isinstance(raw_payload, dict):
        raise CorruptVaultError("missing payload section")
    missing = [name for name in _PAYLOAD_FIELDS if name not in raw_payload]
    if missing:
        raise CorruptVaultError(
            f"payload is missing field(s): {', '.join(missing)}"
        )

    try:
        metadata = VaultMetadata.model_validate(document)
    except PydanticValidationError as err:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in e['loc']) or 'header'}: {e['msg']}"
            for e in err.errors()
        )
        raise CorruptVaultError(f"invalid header ({problems})") from None

    payload = EncryptedPayload(
        ciphertext=_b64decode(raw_payload["ciphertext"], "ciphertext"),
        nonce=_b64decode(raw_payload["nonce"], "nonce"),
        auth_tag=_b64decode(raw_payload["authTag"], "authTag"),
    )
    if len(payload.nonce) != NONCE_SIZE:
        raise CorruptVaultError(f"payload.nonce must be {NONCE_SIZE} bytes")
    if len(payload.auth_tag) != TAG_SIZE:
        raise CorruptVaultError(f"payload.authTag must be {TAG_SIZE} bytes")
    return metadata, payload


def encode_secrets(secrets: dict[str, Secret]) -> bytes:
    """Serialize the secret mapping to plaintext payload bytes."""
    return orjson.dumps(
        {key: secret.to_record() for key, secret in secrets.items()}
    )


def decode_secrets(data: bytes) -> dict[str, Secret]:
    """Parse decrypted payload bytes back into the secret mapping.

    Raises:
        CorruptVaultError: If the authenticated plaintext is not a valid
            secret mapping.
    """
    try:
        parsed = orjson.loads(data)
    except orjson.JSONDecodeError:
        raise CorruptVaultError("decrypted payload is not valid JSON") from None
    if not isinstance(parsed, dict):
        raise CorruptVaultError("decrypted payload must be an object")
    secrets: dict[str, Secret] = {}
    for key, record in parsed.items():
        if not isinstance(record, dict):
            raise CorruptVaultError(f"secret '{key}' is not an object")
        try:
            secrets[key] = Secret.from_record(key, record)
        except PydanticValidationError:
            raise CorruptVaultError(f"secret '{key}' has invalid fields") from None
    return secrets


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

def exists(path: PathLike) -> bool:
    """Return True if something exists at ``path``."""
    return Path(path).exists()


def read(path: PathLike) -> bytes:
    """Read raw vault bytes.

    Raises:
        VaultNotFoundError: If no file exists at ``path``.
    """
    try:
        return Path(path).read_bytes()
    except FileNotFoundError:
        raise VaultNotFoundError(str(path)) from None


def _fsync_directory(directory: Path) -> None:
    if not hasattr(os, "O_DIRECTORY"):
        return
    fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def write(
    path: PathLike,
    data: bytes,
    verify: Optional[Callable[[bytes], None]] = None,
) -> None:
    """Atomically write vault bytes to ``path``.

    The data goes to a temp file in the same directory, is flushed to disk,
    optionally checked by ``verify`` (which receives the bytes read back from
    the temp file and raises to abort), and only then replaces the target.
    On any failure the temp file is removed and the target is untouched.

    Args:
        path: Destination vault file.
        data: Serialized vault.
        verify: Optional integrity check run before the replace.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=target.parent, prefix=f".{target.name}.", suffix=".tmp",
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.chmod(tmp_path, FILE_MODE)
        if verify is not None:
            verify(tmp_path.read_bytes())
        os.replace(tmp_path, target)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    _fsync_directory(target.parent)
    logger.debug("Vault written: path=%s bytes=%d", target, len(data))
