"""Blob provider registry.

Providers are registered by name and created through ``get_provider``::

    provider = get_provider("local", root="~/vault-backups")
    version = provider.upload("work", Path(vault_path).read_bytes())
"""
import logging
from typing import Any, Callable

from .base import (
    BlobMetadata,
    BlobNotFoundError,
    BlobProvider,
    BlobVersion,
    ChecksumMismatchError,
    ProviderError,
    ProviderNotFoundError,
    checksum,
)

logger = logging.getLogger("safekey.providers")

_REGISTRY: dict[str, Callable[..., BlobProvider]] = {}


def register_provider(name: str) -> Callable[[type], type]:
    """Class decorator registering a provider factory under ``name``.

    Raises:
        ValueError: If the name is already taken.
    """
    def decorator(cls: type) -> type:
        if name in _REGISTRY and _REGISTRY[name] is not cls:
            raise ValueError(f"Provider '{name}' is already registered")
        _REGISTRY[name] = cls
        return cls
    return decorator


def available_providers() -> list[str]:
    return sorted(_REGISTRY)


def get_provider(name: str, **options: Any) -> BlobProvider:
    """Create the provider registered under ``name``.

    Raises:
        ProviderNotFoundError: If no provider has that name.
    """
    try:
        factory = _REGISTRY[name]
    except KeyError:
        raise ProviderNotFoundError(name, available_providers()) from None
    logger.debug("Creating blob provider %s", name)
    return factory(**options)


# built-in providers register themselves on import
from .local import LocalDirectoryProvider  # noqa: E402

__all__ = [
    "BlobMetadata",
    "BlobNotFoundError",
    "BlobProvider",
    "BlobVersion",
    "ChecksumMismatchError",
    "LocalDirectoryProvider",
    "ProviderError",
    "ProviderNotFoundError",
    "available_providers",
    "checksum",
    "get_provider",
    "register_provider",
]
