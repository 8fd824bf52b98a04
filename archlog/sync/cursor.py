"""
Sync Cursor

Opaque, forward-only position marker for incremental fetches.

Serialized form: ``"pr:123"``, ``"commit:abc123"`` or
``"timestamp:2024-01-01T00:00:00+00:00"``.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional, Union

from archlog.errors import CursorMismatchError, ValidationError


class CursorType(str, Enum):
    PR = "pr"
    COMMIT = "commit"
    TIMESTAMP = "timestamp"


@dataclass(frozen=True)
class Cursor:
    type: CursorType
    value: str

    def __str__(self) -> str:
        return f"{self.type.value}:{self.value}"

    def as_datetime(self) -> datetime:
        if self.type != CursorType.TIMESTAMP:
            raise ValidationError(f"{self.type.value} cursor carries no timestamp")
        return _parse_timestamp(self.value)


@dataclass(frozen=True)
class CursorItem:
    """What ``latest_from`` needs to know about a fetched item."""

    type: str  # "pr" or "commit"
    id: Union[int, str]
    date: datetime


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    try:
        return _as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError as e:
        raise ValidationError(f"Invalid timestamp cursor value: {value!r}") from e


def create(cursor_type: Union[CursorType, str], value: Union[int, str, datetime]) -> str:
    """Build the serialized cursor for ``value``."""
    try:
        cursor_type = CursorType(cursor_type)
    except ValueError as e:
        raise ValidationError(f"Unknown cursor type: {cursor_type!r}") from e

    if cursor_type == CursorType.TIMESTAMP:
        if isinstance(value, datetime):
            value = _as_utc(value).isoformat()
        else:
            value = _parse_timestamp(str(value)).isoformat()
    elif cursor_type == CursorType.PR:
        try:
            number = int(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"PR cursor needs a number, got {value!r}") from e
        if number < 0:
            raise ValidationError(f"PR cursor must not be negative, got {number}")
        value = str(number)
    else:
        value = str(value)
        if not value:
            raise ValidationError("Commit cursor needs a SHA")

    return str(Cursor(cursor_type, value))


def parse(text: Optional[str]) -> Optional[Cursor]:
    """
    Parse a serialized cursor.

    Returns None for an empty/missing cursor, raises ValidationError for
    anything malformed.
    """
    if not text:
        return None

    type_str, sep, value = text.partition(":")
    if not sep or not value:
        raise ValidationError(f"Malformed cursor: {text!r}")

    try:
        cursor_type = CursorType(type_str)
    except ValueError as e:
        raise ValidationError(f"Unknown cursor type in {text!r}") from e

    if cursor_type == CursorType.PR and not value.isdigit():
        raise ValidationError(f"PR cursor needs a number: {text!r}")
    if cursor_type == CursorType.TIMESTAMP:
        _parse_timestamp(value)

    return Cursor(cursor_type, value)


def compare(a: Optional[str], b: Optional[str]) -> int:
    """
    Order two serialized cursors. Negative if ``a`` is behind ``b``.

    A missing cursor sorts before any cursor. Cursors of different types, and
    commit SHAs (which carry no order), raise CursorMismatchError.
    """
    if not a and not b:
        return 0
    if not a:
        return -1
    if not b:
        return 1

    left, right = parse(a), parse(b)
    if left.type != right.type:
        raise CursorMismatchError(
            f"Cannot compare {left.type.value} cursor with {right.type.value} cursor"
        )

    if left.type == CursorType.PR:
        x, y = int(left.value), int(right.value)
    elif left.type == CursorType.TIMESTAMP:
        x, y = _parse_timestamp(left.value), _parse_timestamp(right.value)
    else:
        if left.value == right.value:
            return 0
        raise CursorMismatchError("Commit cursors have no order")

    return (x > y) - (x < y)


def latest_from(items: Iterable[CursorItem]) -> Optional[str]:
    """
    Furthest-advanced cursor for a fetched batch.

    Highest PR number if every item is a PR, otherwise the most recent
    timestamp.
    """
    items = list(items)
    if not items:
        return None

    if all(item.type == CursorType.PR.value for item in items):
        return create(CursorType.PR, max(int(item.id) for item in items))

    most_recent = max(_as_utc(item.date) for item in items)
    return create(CursorType.TIMESTAMP, most_recent)


def is_newer(item: CursorItem, cursor: Optional[Cursor]) -> bool:
    """Whether ``item`` lies past ``cursor`` and still needs fetching."""
    if cursor is None:
        return True
    if cursor.type == CursorType.PR:
        return int(item.id) > int(cursor.value)
    if cursor.type == CursorType.TIMESTAMP:
        return _as_utc(item.date) > _parse_timestamp(cursor.value)
    return str(item.id) != cursor.value
