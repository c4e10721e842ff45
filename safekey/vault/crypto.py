"""
Vault Crypto Core — Key derivation, authenticated encryption and wiping.

Implements the primitives of the vault file:
- Key derivation: PBKDF2-HMAC(password, salt, iterations) → 32-byte key
- Payload layer: AEAD(key, nonce, header) → [ciphertext][tag 16B]

Security Note:
    Never log passwords, keys, plaintext or ciphertext values.
    Nonces are random 96-bit, generated for every encryption call;
    collision probability is negligible under normal usage.
"""
import os
import logging
from dataclasses import dataclass
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from ..exceptions import AuthenticationFailure

logger = logging.getLogger("safekey.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # 128-bit authentication tag
KEY_LENGTH = 32  # AES-256 / ChaCha20
DEFAULT_SALT_SIZE = 16
MIN_SALT_SIZE = 16
MAX_SALT_SIZE = 64

DEFAULT_KDF_ALGORITHM = "pbkdf2-sha256"
DEFAULT_CIPHER = "aes-256-gcm"

KDF_ALGORITHMS = {
    "pbkdf2-sha256": hashes.SHA256,
    "pbkdf2-sha512": hashes.SHA512,
}

CIPHERS = {
    "aes-256-gcm": AESGCM,
    "chacha20-poly1305": ChaCha20Poly1305,
}

Buffer = Union[bytes, bytearray, memoryview]


@dataclass(frozen=True)
class EncryptedPayload:
    """Output of one authenticated encryption call."""

    ciphertext: bytes
    nonce: bytes
    auth_tag: bytes


def _get_cipher_cls(cipher: str) -> type:
    """Return the AEAD class registered for a cipher id."""
    try:
        return CIPHERS[cipher]
    except KeyError:
        raise ValueError(f"Unsupported cipher: {cipher}") from None


def _check_key(key: Buffer) -> bytes:
    if len(key) != KEY_LENGTH:
        raise ValueError(
            f"Encryption key must be {KEY_LENGTH} bytes, got {len(key)}"
        )
    return bytes(key)


# ---------------------------------------------------------------------------
# Random material
# ---------------------------------------------------------------------------

def generate_salt(size: int = DEFAULT_SALT_SIZE) -> bytes:
    """Generate a random salt for key derivation.

    Args:
        size: Salt length in bytes (16 to 64).

    Returns:
        Cryptographically secure random bytes.
    """
    if not MIN_SALT_SIZE <= size <= MAX_SALT_SIZE:
        raise ValueError(
            f"Salt size must be between {MIN_SALT_SIZE} and "
            f"{MAX_SALT_SIZE} bytes, got {size}"
        )
    return os.urandom(size)


def generate_nonce() -> bytes:
    """Generate a fresh 96-bit nonce. Must be called for every encryption."""
    return os.urandom(NONCE_SIZE)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(
    password: str,
    salt: bytes,
    iterations: int,
    key_length: int = KEY_LENGTH,
    algorithm: str = DEFAULT_KDF_ALGORITHM,
) -> bytearray:
    """Derive an encryption key from a password using PBKDF2-HMAC.

    Same inputs always produce the same key. The iteration count is read
    from the vault header, so raising the default never breaks old vaults.

    Args:
        password: Master password.
        salt: Per-vault random salt.
        iterations: PBKDF2 iteration count.
        key_length: Derived key length; only 32 is accepted.
        algorithm: KDF identifier (``pbkdf2-sha256`` or ``pbkdf2-sha512``).

    Returns:
        Derived key as a mutable buffer so it can be wiped later.

    Raises:
        ValueError: If any parameter is unsupported.
    """
    if algorithm not in KDF_ALGORITHMS:
        raise ValueError(f"Unsupported key derivation algorithm: {algorithm}")
    if iterations < 1:
        raise ValueError("Iteration count must be positive")
    if key_length != KEY_LENGTH:
        raise ValueError(
            f"Derived key length must be {KEY_LENGTH} bytes, got {key_length}"
        )
    if not salt:
        raise ValueError("Salt cannot be empty")
    kdf = PBKDF2HMAC(
        algorithm=KDF_ALGORITHMS[algorithm](),
        length=key_length,
        salt=bytes(salt),
        iterations=iterations,
    )
    return bytearray(kdf.derive(password.encode("utf-8")))


# ---------------------------------------------------------------------------
# Authenticated encryption
# ---------------------------------------------------------------------------

def encrypt(
    plaintext: bytes,
    key: Buffer,
    associated_data: Optional[bytes] = None,
    cipher: str = DEFAULT_CIPHER,
) -> EncryptedPayload:
    """Encrypt plaintext with a fresh random nonce.

    Args:
        plaintext: Data to encrypt.
        key: 32-byte key.
        associated_data: Authenticated but unencrypted data (vault header).
        cipher: Cipher id.

    Returns:
        EncryptedPayload with ciphertext, nonce and 16-byte tag.
    """
    aead = _get_cipher_cls(cipher)(_check_key(key))
    nonce = generate_nonce()
    sealed = aead.encrypt(nonce, plaintext, associated_data)
    return EncryptedPayload(
        ciphertext=sealed[:-TAG_SIZE],
        nonce=nonce,
        auth_tag=sealed[-TAG_SIZE:],
    )


def decrypt(
    payload: EncryptedPayload,
    key: Buffer,
    associated_data: Optional[bytes] = None,
    cipher: str = DEFAULT_CIPHER,
) -> bytes:
    """Verify and decrypt an EncryptedPayload.

    Raises:
        AuthenticationFailure: If the tag does not verify. The message does
            not say whether the key was wrong or the data was altered.
        ValueError: If the nonce or tag has the wrong length.
    """
    if len(payload.nonce) != NONCE_SIZE:
        raise ValueError(
            f"Nonce must be {NONCE_SIZE} bytes, got {len(payload.nonce)}"
        )
    if len(payload.auth_tag) != TAG_SIZE:
        raise ValueError(
            f"Authentication tag must be {TAG_SIZE} bytes, "
            f"got {len(payload.auth_tag)}"
        )
    aead = _get_cipher_cls(cipher)(_check_key(key))
    try:
        return aead.decrypt(
            payload.nonce,
            payload.ciphertext + payload.auth_tag,
            associated_data,
        )
    except InvalidTag:
        raise AuthenticationFailure() from None


# ---------------------------------------------------------------------------
# Memory hygiene
# ---------------------------------------------------------------------------

def secure_wipe(buffer: Union[bytearray, memoryview]) -> None:
    """Overwrite a mutable buffer with zeros.

    Best effort: the interpreter may still hold copies made elsewhere
    (e.g. the immutable key handed to the cipher object).

    Raises:
        TypeError: If the buffer is immutable.
    """
    if isinstance(buffer, memoryview):
        if buffer.readonly:
            raise TypeError("Cannot wipe a read-only memoryview")
        buffer[:] = bytes(len(buffer))
        return
    if not isinstance(buffer, bytearray):
        raise TypeError(
            f"secure_wipe requires a bytearray, got {type(buffer).__name__}"
        )
    for i in range(len(buffer)):
        buffer[i] = 0
