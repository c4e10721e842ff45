"""
Vault Configuration — Validated settings passed explicitly to the vault core.

Settings are merged once at startup, lowest precedence first:
    built-in defaults < config file (JSON) < environment variables

Recognised environment variables:
    SAFEKEY_VAULT_PATH      = <path to the vault file>
    SAFEKEY_KDF_ITERATIONS  = <integer>
    SAFEKEY_KDF_ALGORITHM   = pbkdf2-sha256 | pbkdf2-sha512
    SAFEKEY_CIPHER_BACKEND  = aesgcm | chacha20
    SAFEKEY_PROFILE         = <profile name>

Security Note:
    The config never holds passwords or key material.
"""
import os
import secrets
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import orjson
from pydantic import BaseModel, Field, field_validator, model_validator

from .crypto import KDF_ALGORITHMS, MAX_SALT_SIZE, MIN_SALT_SIZE
from .models import KdfParams, utcnow

logger = logging.getLogger("safekey.vault")

DEFAULT_PROFILE = "default"
DEFAULT_KDF_ITERATIONS = 600_000
MIN_KDF_ITERATIONS = 1_000

_CIPHER_IDS = {
    "aesgcm": "aes-256-gcm",
    "chacha20": "chacha20-poly1305",
}

_ENV_FIELDS = {
    "SAFEKEY_VAULT_PATH": "vault_path",
    "SAFEKEY_KDF_ITERATIONS": "kdf_iterations",
    "SAFEKEY_KDF_ALGORITHM": "kdf_algorithm",
    "SAFEKEY_CIPHER_BACKEND": "cipher_backend",
    "SAFEKEY_PROFILE": "current_profile",
}


def default_vault_path() -> Path:
    """Location of the vault file when nothing else is configured."""
    return Path.home() / ".safekey-vault.json"


def default_config_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Location of the optional JSON config file."""
    env = os.environ if environ is None else environ
    base = env.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(base) / "safekey" / "config.json"


def generate_master_password(nbytes: int = 24) -> str:
    """Generate a random URL-safe master password.

    This is a utility for users who want a strong password generated for
    them.

    Args:
        nbytes: Bytes of randomness (at least 16).

    Returns:
        URL-safe text password.
    """
    if nbytes < 16:
        raise ValueError("Generated passwords need at least 16 bytes of randomness")
    return secrets.token_urlsafe(nbytes)


class ProfileConfig(BaseModel):
    """A named vault location."""

    name: str = Field(min_length=1)
    vault_path: Path
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    last_used: datetime = Field(default_factory=utcnow)


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    vault_path: Path = Field(default_factory=default_vault_path)
    kdf_algorithm: str = Field(default="pbkdf2-sha256")
    kdf_iterations: int = Field(default=DEFAULT_KDF_ITERATIONS, ge=MIN_KDF_ITERATIONS)
    salt_size: int = Field(default=16, ge=MIN_SALT_SIZE, le=MAX_SALT_SIZE)
    cipher_backend: str = Field(default="aesgcm")
    max_key_length: int = Field(default=255, ge=1, le=1024)
    current_profile: str = Field(default=DEFAULT_PROFILE)
    profiles: dict[str, ProfileConfig] = Field(default_factory=dict)

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in _CIPHER_IDS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @field_validator("kdf_algorithm")
    @classmethod
    def validate_kdf(cls, v: str) -> str:
        """Validate key derivation algorithm is supported."""
        if v not in KDF_ALGORITHMS:
            raise ValueError(f"Unsupported key derivation algorithm: {v}")
        return v

    @model_validator(mode="after")
    def ensure_default_profile(self) -> "VaultConfig":
        """Always provide a default profile, and require the current one."""
        if DEFAULT_PROFILE not in self.profiles:
            self.profiles[DEFAULT_PROFILE] = ProfileConfig(
                name=DEFAULT_PROFILE,
                vault_path=self.vault_path,
                description="Default SafeKey vault",
            )
        if self.current_profile not in self.profiles:
            raise ValueError(
                f"current_profile '{self.current_profile}' not found in "
                f"profiles (available: {sorted(self.profiles)})"
            )
        return self

    @property
    def cipher_id(self) -> str:
        """Cipher id written to new vault headers."""
        return _CIPHER_IDS[self.cipher_backend]

    def kdf_params(self) -> KdfParams:
        """KDF parameters for newly created or re-keyed vaults."""
        return KdfParams(
            algorithm=self.kdf_algorithm, iterations=self.kdf_iterations,
        )

    def vault_path_for(self, profile: Optional[str] = None) -> Path:
        """Resolve the vault file for a profile (current profile by default).

        Raises:
            KeyError: If the profile does not exist.
        """
        name = profile or self.current_profile
        if name not in self.profiles:
            raise KeyError(f"Profile '{name}' does not exist")
        return self.profiles[name].vault_path

    def with_profile(
        self,
        name: str,
        vault_path: Union[str, Path],
        description: Optional[str] = None,
    ) -> "VaultConfig":
        """Return a copy of this config with an extra profile.

        Raises:
            ValueError: If a profile with this name already exists.
        """
        if name in self.profiles:
            raise ValueError(f"Profile '{name}' already exists")
        profiles = dict(self.profiles)
        profiles[name] = ProfileConfig(
            name=name, vault_path=Path(vault_path), description=description,
        )
        return self.model_copy(update={"profiles": profiles})

    def use_profile(self, name: str) -> "VaultConfig":
        """Return a copy of this config with ``name`` as current profile.

        Raises:
            KeyError: If the profile does not exist.
        """
        if name not in self.profiles:
            raise KeyError(f"Profile '{name}' does not exist")
        profiles = dict(self.profiles)
        profiles[name] = profiles[name].model_copy(update={"last_used": utcnow()})
        return self.model_copy(
            update={"profiles": profiles, "current_profile": name},
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "VaultConfig":
        """Create VaultConfig from defaults plus environment overrides.

        Returns:
            Populated VaultConfig instance.
        """
        return cls.model_validate(_env_overrides(environ))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "VaultConfig":
        """Create VaultConfig from a JSON config file.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the file is not a JSON object.
        """
        return cls.model_validate(_read_config_file(Path(path)))


def _env_overrides(environ: Optional[Mapping[str, str]] = None) -> dict[str, Any]:
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    for name, field in _ENV_FIELDS.items():
        if env.get(name):
            values[field] = env[name]
    return values


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        data = orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as err:
        raise ValueError(f"Config file {path} is not valid JSON: {err}") from None
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return data


def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> VaultConfig:
    """Merge defaults, the config file (if present) and the environment.

    Args:
        path: Config file; ``default_config_path()`` when omitted. A missing
            file is not an error.
        environ: Environment mapping; ``os.environ`` when omitted.

    Returns:
        Validated VaultConfig.
    """
    config_path = Path(path) if path is not None else default_config_path(environ)
    data: dict[str, Any] = {}
    if config_path.exists():
        data.update(_read_config_file(config_path))
        logger.debug("Loaded config file %s", config_path)
    data.update(_env_overrides(environ))
    config = VaultConfig.model_validate(data)
    logger.debug(
        "Vault config: profile=%s kdf=%s iterations=%d cipher=%s",
        config.current_profile, config.kdf_algorithm,
        config.kdf_iterations, config.cipher_backend,
    )
    return config
