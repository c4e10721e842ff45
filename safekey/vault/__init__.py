"""SafeKey Vault — Password-protected encrypted secret storage in one file.

Security Note (Threat Model):
    Secrets are decrypted in process memory while a vault is open.
    A memory dump of the process could expose the derived key and the
    plaintext secret mapping. ``Vault.close()`` zeroes the key buffer and
    drops the mapping, but Python may keep other copies alive until they
    are garbage-collected. This is an accepted limitation.

    Two processes writing the same vault file are not coordinated; the
    last writer wins.
"""

from .vault import Vault, ConflictPolicy
from .key_rotation import rotate_master_password
from .config import (
    VaultConfig,
    ProfileConfig,
    load_config,
    generate_master_password,
)
from .models import Secret, SecretInfo, VaultMetadata, KdfParams
from .transcoder import ExportFormat

__all__ = [
    "Vault",
    "ConflictPolicy",
    "rotate_master_password",
    "VaultConfig",
    "ProfileConfig",
    "load_config",
    "generate_master_password",
    "Secret",
    "SecretInfo",
    "VaultMetadata",
    "KdfParams",
    "ExportFormat",
]
