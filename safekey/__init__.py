"""SafeKey.

Local-first secrets vault: named secrets kept in one encrypted file,
protected by a master password.
"""
from .version import __version__
from .exceptions import (
    VaultError,
    VaultNotFoundError,
    VaultAlreadyExistsError,
    SecretNotFoundError,
    SecretAlreadyExistsError,
    ValidationError,
    InvalidSecretKeyError,
    FormatError,
    AuthenticationFailure,
    InvalidKeyError,
    CorruptVaultError,
    VaultLockedError,
)
from .vault import (
    Vault,
    VaultConfig,
    ConflictPolicy,
    ExportFormat,
    Secret,
    SecretInfo,
    load_config,
)

__all__ = (
    "__version__",
    "Vault",
    "VaultConfig",
    "ConflictPolicy",
    "ExportFormat",
    "Secret",
    "SecretInfo",
    "load_config",
    "VaultError",
    "VaultNotFoundError",
    "VaultAlreadyExistsError",
    "SecretNotFoundError",
    "SecretAlreadyExistsError",
    "ValidationError",
    "InvalidSecretKeyError",
    "FormatError",
    "AuthenticationFailure",
    "InvalidKeyError",
    "CorruptVaultError",
    "VaultLockedError",
)
