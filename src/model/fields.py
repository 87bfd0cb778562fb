"""Typed field extraction from schema-free YAML documents.

Each getter returns the value converted to the expected Python type or
raises ManifestFieldError naming the field and the expected type.
"""

import datetime
from typing import Any, Optional

from model.errors import ManifestFieldError

_MISSING = object()


def _type_name(value: Any) -> str:
    return type(value).__name__


def _lookup(data: dict, key: str, field: str, default: Any) -> Any:
    value = data.get(key, _MISSING) if isinstance(data, dict) else _MISSING
    if value is _MISSING:
        if default is _MISSING:
            raise ManifestFieldError(field, "missing required field")
        return default
    return value


def get_str(data: dict, key: str, field: Optional[str] = None, default: Any = _MISSING) -> str:
    """Get a string field; "!!binary" values (bytes) are decoded as UTF-8."""
    field = field or key
    value = _lookup(data, key, field, default)
    if default is not _MISSING and value is default:
        return value
    if isinstance(value, bytes):
        try:
            return value.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ManifestFieldError(field, f"binary value is not valid UTF-8: {e}") from e
    if not isinstance(value, str):
        raise ManifestFieldError(field, f"expected string, got {_type_name(value)}")
    return value


def get_bool(data: dict, key: str, field: Optional[str] = None, default: Any = _MISSING) -> bool:
    """Get a boolean field."""
    field = field or key
    value = _lookup(data, key, field, default)
    if default is not _MISSING and value is default:
        return value
    if not isinstance(value, bool):
        raise ManifestFieldError(field, f"expected bool, got {_type_name(value)}")
    return value


def get_list(data: dict, key: str, field: Optional[str] = None, default: Any = _MISSING) -> list:
    """Get a list field; an explicit null counts as an empty list."""
    field = field or key
    value = _lookup(data, key, field, default)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ManifestFieldError(field, f"expected list, got {_type_name(value)}")
    return value


def get_mapping(data: dict, key: str, field: Optional[str] = None, default: Any = _MISSING) -> dict:
    """Get a mapping field; an explicit null counts as an empty mapping."""
    field = field or key
    value = _lookup(data, key, field, default)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ManifestFieldError(field, f"expected mapping, got {_type_name(value)}")
    return value


def get_str_list(data: dict, key: str, field: Optional[str] = None, default: Any = _MISSING) -> list[str]:
    """Get a list of strings."""
    field = field or key
    items = get_list(data, key, field, default)
    result = []
    for i, item in enumerate(items):
        if isinstance(item, bytes):
            try:
                item = item.decode('utf-8')
            except UnicodeDecodeError as e:
                raise ManifestFieldError(f"{field}[{i}]", f"binary value is not valid UTF-8: {e}") from e
        if not isinstance(item, str):
            raise ManifestFieldError(f"{field}[{i}]", f"expected string, got {_type_name(item)}")
        result.append(item)
    return result


def get_version_pair(data: dict, prefix: str) -> tuple[str, str]:
    """Get (version, fingerprint) of a package or job record.

    The fingerprint is the semantic version: when both are present the
    fingerprint wins, and either one stands in for the other when absent.
    """
    version = get_str(data, 'version', f"{prefix}.version", default=None)
    fingerprint = get_str(data, 'fingerprint', f"{prefix}.fingerprint", default=None)
    if version is None and fingerprint is None:
        raise ManifestFieldError(f"{prefix}.version", "missing required field")
    value = fingerprint if fingerprint is not None else version
    return value, value


def require_mapping(value: Any, field: str) -> dict:
    """Check that a list entry is a mapping."""
    if not isinstance(value, dict):
        raise ManifestFieldError(field, f"expected mapping, got {_type_name(value)}")
    return value


def render_scalar(value: Any, field: str) -> str:
    """Render a YAML scalar the way it would be written in the document."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    if value is None:
        return ''
    raise ManifestFieldError(field, f"expected scalar, got {_type_name(value)}")
