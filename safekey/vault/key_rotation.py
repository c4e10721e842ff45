"""
Vault Key Rotation — Re-encryption of the whole vault under a new password.

Rotation draws a fresh salt, derives a fresh key with the current KDF
settings (so iteration upgrades are picked up), re-encrypts the full secret
mapping and writes it through the codec's temp-file discipline. The staged
file is re-parsed and decrypted with the new key before it replaces the
original; any failure leaves the original file as it was.

Security Note:
    Plaintext exists in memory only as the already-open secret mapping.
    Never log passwords, keys, plaintext or ciphertext values.
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from ..exceptions import AuthenticationFailure, CorruptVaultError
from . import codec
from .config import VaultConfig
from .crypto import decrypt, derive_key, encrypt, generate_salt, secure_wipe
from .models import Secret, VaultMetadata

logger = logging.getLogger("safekey.vault")


def rotate_master_password(
    path: Path,
    secrets: dict[str, Secret],
    metadata: VaultMetadata,
    new_password: str,
    config: VaultConfig,
    clock: Callable[[], datetime],
) -> tuple[bytearray, VaultMetadata]:
    """Re-encrypt ``secrets`` under a key derived from ``new_password``.

    Args:
        path: Vault file to replace.
        secrets: Current decrypted secret mapping.
        metadata: Current vault header (creation time is preserved).
        new_password: New master password.
        config: Settings supplying the new KDF parameters and salt size.
        clock: Timestamp source.

    Returns:
        Tuple of (new_key, new_metadata). The caller owns the new key and
        is responsible for wiping the old one.

    Raises:
        CorruptVaultError: If the staged file fails the integrity check.
        OSError: If the write fails.
    """
    salt = generate_salt(config.salt_size)
    kdf = config.kdf_params()
    new_key = derive_key(
        new_password, salt, kdf.iterations, kdf.key_length, kdf.algorithm,
    )
    new_metadata = VaultMetadata(
        salt=codec.b64encode(salt),
        kdf=kdf,
        cipher=metadata.cipher,
        key_count=len(secrets),
        created_at=metadata.created_at,
        updated_at=max(clock(), metadata.updated_at),
    )
    plaintext = codec.encode_secrets(secrets)

    def _verify(staged: bytes) -> None:
        staged_meta, staged_payload = codec.deserialize(staged)
        try:
            check = decrypt(
                staged_payload, new_key,
                codec.associated_data(staged_meta), staged_meta.cipher,
            )
        except AuthenticationFailure:
            raise CorruptVaultError(
                "re-encrypted vault failed verification", path=path,
            ) from None
        if check != plaintext:
            raise CorruptVaultError(
                "re-encrypted vault does not match current contents", path=path,
            )

    try:
        payload = encrypt(
            plaintext, new_key,
            codec.associated_data(new_metadata), new_metadata.cipher,
        )
        codec.write(path, codec.serialize(new_metadata, payload), verify=_verify)
    except BaseException:
        secure_wipe(new_key)
        raise

    logger.info(
        "Master password rotated: path=%s secrets=%d kdf=%s iterations=%d",
        path, len(secrets), kdf.algorithm, kdf.iterations,
    )
    return new_key, new_metadata
