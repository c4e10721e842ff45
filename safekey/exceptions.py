"""
SafeKey exceptions.

Every error raised by the vault core derives from ``VaultError`` so callers
(CLI, TUI, sync layers) can catch the whole family at once. Builtin bases
are mixed in where the error has a natural builtin meaning.

Security Note:
    Messages carry key names and paths only. Passwords, derived keys and
    secret values never appear in exception text.
"""
from typing import Optional


class VaultError(Exception):
    """Base class for all vault errors."""


# ---------------------------------------------------------------------------
# NotFound
# ---------------------------------------------------------------------------

class VaultNotFoundError(VaultError, FileNotFoundError):
    """No vault file exists at the given path."""

    def __init__(self, path: str):
        self.path = str(path)
        super().__init__(f"Vault not found at {self.path}")

    def __str__(self) -> str:
        return self.args[0]


class SecretNotFoundError(VaultError, KeyError):
    """The requested secret key is not present in the vault."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Secret '{key}' not found")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


# ---------------------------------------------------------------------------
# Conflict
# ---------------------------------------------------------------------------

class VaultAlreadyExistsError(VaultError, FileExistsError):
    """A file already exists where a new vault was requested."""

    def __init__(self, path: str):
        self.path = str(path)
        super().__init__(f"Vault already exists at {self.path}")

    def __str__(self) -> str:
        return self.args[0]


class SecretAlreadyExistsError(VaultError):
    """The secret key is already present in the vault."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Secret '{key}' already exists")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class ValidationError(VaultError, ValueError):
    """Caller supplied an invalid argument."""


class InvalidSecretKeyError(ValidationError):
    """Secret key is empty, too long, or contains forbidden characters."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid secret key {key!r}: {reason}")


class FormatError(ValidationError):
    """Malformed export/import document or unsupported format."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class AuthenticationFailure(VaultError):
    """Authenticated decryption failed.

    Raised by the primitives layer. The message is the same whether the
    key was wrong or the data was altered.
    """

    def __init__(self, message: str = "Authentication tag verification failed"):
        super().__init__(message)


class InvalidKeyError(VaultError):
    """Master password is wrong, or the encrypted payload was altered."""

    def __init__(self, message: str = "Invalid master password or tampered vault"):
        super().__init__(message)


# ---------------------------------------------------------------------------
# Corruption
# ---------------------------------------------------------------------------

class CorruptVaultError(VaultError):
    """Vault file structure cannot be parsed."""

    def __init__(self, reason: str, path: Optional[str] = None):
        self.reason = reason
        self.path = str(path) if path is not None else None
        if self.path:
            message = f"Corrupt vault at {self.path}: {reason}"
        else:
            message = f"Corrupt vault: {reason}"
        super().__init__(message)


# ---------------------------------------------------------------------------
# Precondition
# ---------------------------------------------------------------------------

class VaultLockedError(VaultError, RuntimeError):
    """Operation requires an open vault but the master key was cleared."""

    def __init__(self, message: str = "Vault is locked; load it again to continue"):
        super().__init__(message)
