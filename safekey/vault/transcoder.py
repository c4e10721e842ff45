"""
Export/Import transcoder — secret mapping <-> JSON / ``.env`` text.

JSON round-trips exactly (values, optional-field presence, timestamps and
versions). ENV keeps only ``KEY=value`` and is lossy by construction.

ENV rules:
    * export writes ``KEY=value`` lines, unquoted, in insertion order;
      values containing CR or LF cannot be written and are rejected.
    * import skips blank lines and ``#`` comments, drops an optional
      ``export `` prefix, splits at the first ``=``, strips the key and
      keeps the value verbatim (no unquoting or trimming).
"""
from enum import Enum
from typing import Any, Optional, Union

import orjson
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import FormatError
from .models import Secret


class ExportFormat(str, Enum):
    JSON = "json"
    ENV = "env"


def parse_format(fmt: Union[str, ExportFormat]) -> ExportFormat:
    """Normalize a format name.

    Raises:
        FormatError: If the format is not supported.
    """
    if isinstance(fmt, ExportFormat):
        return fmt
    try:
        return ExportFormat(str(fmt).lower())
    except ValueError:
        raise FormatError(
            f"Unsupported format {fmt!r} (expected 'json' or 'env')"
        ) from None


class ImportedSecret:
    """One entry parsed from an import document.

    Only the fields present in the source are set; the vault fills in the
    rest (timestamps, version) when it stores the entry.
    """

    __slots__ = ("key", "value", "description", "tags", "record")

    def __init__(
        self,
        key: str,
        value: str,
        description: Optional[str] = None,
        tags: Optional[list[str]] = None,
        record: Optional[Secret] = None,
    ):
        self.key = key
        self.value = value
        self.description = description
        self.tags = tags
        self.record = record

    def __repr__(self) -> str:
        return f"<ImportedSecret key={self.key!r}>"


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

def to_json(secrets: dict[str, Secret]) -> str:
    """Export secrets as a JSON object mapping key to record."""
    document = {key: secret.to_record() for key, secret in secrets.items()}
    return orjson.dumps(document, option=orjson.OPT_INDENT_2).decode("utf-8")


def _parse_json_entry(key: str, entry: Any) -> ImportedSecret:
    if isinstance(entry, str):
        return ImportedSecret(key, entry)
    if not isinstance(entry, dict):
        raise FormatError(
            f"entry '{key}' must be a string or an object with a 'value'"
        )
    if not isinstance(entry.get("value"), str):
        raise FormatError(f"entry '{key}' is missing a string 'value'")
    description = entry.get("description")
    if description is not None and not isinstance(description, str):
        raise FormatError(f"entry '{key}' has a non-string description")
    tags = entry.get("tags")
    if tags is not None and (
        not isinstance(tags, list) or not all(isinstance(t, str) for t in tags)
    ):
        raise FormatError(f"entry '{key}' has invalid tags")

    record = None
    if "createdAt" in entry and "updatedAt" in entry:
        # a full record, as written by to_json()
        try:
            record = Secret.from_record(key, entry)
        except PydanticValidationError:
            raise FormatError(f"entry '{key}' has invalid metadata") from None
    return ImportedSecret(key, entry["value"], description, tags, record)


def from_json(text: str) -> list[ImportedSecret]:
    """Parse a JSON export document.

    Each entry is either a bare string value or a record object.

    Raises:
        FormatError: If the document is not a JSON object of valid entries.
    """
    try:
        document = orjson.loads(text)
    except orjson.JSONDecodeError as err:
        raise FormatError(f"invalid JSON: {err}") from None
    if not isinstance(document, dict):
        raise FormatError("JSON import must be an object mapping key to secret")
    return [_parse_json_entry(key, entry) for key, entry in document.items()]


# ---------------------------------------------------------------------------
# ENV
# ---------------------------------------------------------------------------

def to_env(secrets: dict[str, Secret]) -> str:
    """Export secrets as ``KEY=value`` lines.

    Raises:
        FormatError: If a value contains a line break, or a key would be
            read back as a comment or an ``export`` prefix.
    """
    lines = []
    for key, secret in secrets.items():
        if key.startswith("#") or key.startswith("export "):
            raise FormatError(
                f"key '{key}' cannot be exported as env; use json"
            )
        if "\n" in secret.value or "\r" in secret.value:
            raise FormatError(
                f"value of '{key}' contains a line break and cannot be "
                "exported as env; use json"
            )
        lines.append(f"{key}={secret.value}")
    return "\n".join(lines)


def from_env(text: str) -> list[ImportedSecret]:
    """Parse ``KEY=value`` lines.

    Raises:
        FormatError: On a line without ``=``, an empty key, or a key that
            appears twice.
    """
    entries: list[ImportedSecret] = []
    seen: set[str] = set()
    for lineno, raw in enumerate(text.split("\n"), start=1):
        line = raw[:-1] if raw.endswith("\r") else raw
        stripped = line.lstrip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped.startswith("export "):
            stripped = stripped[len("export "):]
        if "=" not in stripped:
            raise FormatError("expected KEY=value", line=lineno)
        key, value = stripped.split("=", 1)
        key = key.strip()
        if not key:
            raise FormatError("empty key", line=lineno)
        if key in seen:
            raise FormatError(f"duplicate key '{key}'", line=lineno)
        seen.add(key)
        entries.append(ImportedSecret(key, value))
    return entries


def export_secrets(secrets: dict[str, Secret], fmt: Union[str, ExportFormat]) -> str:
    """Dispatch to the exporter for ``fmt``."""
    if parse_format(fmt) is ExportFormat.ENV:
        return to_env(secrets)
    return to_json(secrets)


def parse_import(text: str, fmt: Union[str, ExportFormat]) -> list[ImportedSecret]:
    """Dispatch to the parser for ``fmt``."""
    if parse_format(fmt) is ExportFormat.ENV:
        return from_env(text)
    return from_json(text)
