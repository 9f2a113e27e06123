"""Helpers for reading and writing typed fields on stored documents."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import TypeVar

from gallery_portal.errors import MalformedDocumentError

E = TypeVar("E", bound=StrEnum)


def format_timestamp(value: datetime | None) -> str | None:
    """Serialize a timestamp as an ISO-8601 UTC string."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 string into an aware datetime, if present."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as exc:
            raise MalformedDocumentError(
                "Invalid timestamp in stored document", {"value": value}
            ) from exc
    else:
        raise MalformedDocumentError(
            "Invalid timestamp in stored document", {"value": repr(value)}
        )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def require_str(data: dict[str, object], key: str, collection: str) -> str:
    """Return a required non-empty string field."""
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedDocumentError(
            f"Stored {collection} document is missing '{key}'",
            {"collection": collection, "field": key},
        )
    return value


def optional_str(
    data: dict[str, object], key: str, default: str | None = None
) -> str | None:
    value = data.get(key)
    if value is None:
        return default
    return str(value)


def optional_int(data: dict[str, object], key: str) -> int | None:
    """Return an optional integer field, rejecting non-numeric values."""
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise MalformedDocumentError(
            f"Field '{key}' must be numeric", {"field": key, "value": repr(value)}
        )
    return int(value)


def parse_enum(enum_type: type[E], value: object, field: str) -> E:
    """Parse a stored enum value, rejecting values outside the enum."""
    try:
        return enum_type(str(value))
    except ValueError as exc:
        raise MalformedDocumentError(
            f"Unknown value for '{field}'", {"field": field, "value": repr(value)}
        ) from exc


def string_list(data: dict[str, object], key: str) -> tuple[str, ...]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise MalformedDocumentError(
            f"Field '{key}' must be a list", {"field": key, "value": repr(value)}
        )
    return tuple(str(item) for item in value)
