import json
import math
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Tuple
from uuid import uuid4

import inflect

inflect_e = inflect.engine()

# Returned by `get_property_value` when a path cannot be followed.
MISSING = object()


def _step(current: Any, part: str) -> Any:
    """Follow one component of a property path."""
    if isinstance(current, dict):
        return current.get(part, MISSING)
    if isinstance(current, (list, tuple)) and part.isdigit():
        index = int(part)
        if index < len(current):
            return current[index]
        return MISSING
    return getattr(current, part, MISSING)


def get_property_value(record: Any, path: str, default: Any = None) -> Any:
    """Read a value from a record using a dot-separated path.

    Mappings are indexed by key, sequences by numeric components and
    everything else by attribute name.

    Args:
        record: The record to read from.
        path: The path, like `owner.name` or `tags.0`.
        default: The value returned when the path can't be followed.

    Returns:
        The value found at the end of the path or the default.
    """
    if record is None or not path:
        return default
    current = record
    for part in path.split("."):
        if current is None:
            return default
        current = _step(current, part)
        if current is MISSING:
            return default
    return current


def has_property(record: Any, path: str) -> bool:
    """Tell if the path can be followed all the way in the record."""
    return get_property_value(record, path, MISSING) is not MISSING


def to_text(value: Any) -> str:
    """Convert a value to the string used for comparisons.

    `None` becomes the empty string, booleans become `true`/`false`,
    containers are serialized to JSON.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError):
            return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def to_number(value: Any) -> Optional[float]:
    """Convert a value to a number.

    Returns:
        The number or `None` if the value can't be interpreted as a finite
        number.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float, Decimal)):
        result = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            result = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_datetime(value: Any) -> Optional[datetime]:
    """Convert a value to a naive (UTC) date-time.

    Accepted inputs are `datetime` and `date` instances, ISO 8601 strings
    and numbers, which are interpreted as seconds since the epoch.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return None
        try:
            return _naive_utc(datetime.fromtimestamp(value, tz=timezone.utc))
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return _naive_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def is_date_only(value: Any) -> bool:
    """Tell if a value describes a calendar day rather than an instant."""
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    if isinstance(value, str):
        try:
            date.fromisoformat(value.strip())
        except ValueError:
            return False
        return True
    return False


def is_date_like(value: Any) -> bool:
    """Tell if the value should be treated as a date when inferring the
    type of a column."""
    return isinstance(value, (date, datetime))


def is_range(value: Any) -> bool:
    """Tell if a filter value is a two-element range."""
    return isinstance(value, (list, tuple)) and len(value) == 2


def range_bounds(value: Any) -> Tuple[Any, Any]:
    """Return the (low, high) bounds of a range filter value."""
    low, high = value
    return low, high


def is_empty_value(value: Any) -> bool:
    """Tell if a filter value means "no filter".

    `None`, the empty string, empty sequences and ranges with both ends
    unset are all considered empty.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple)):
        if len(value) == 0:
            return True
        if len(value) == 2:
            return all(v is None or v == "" for v in value)
    return False


def record_key(record: Any, row_key: str = "id") -> Optional[str]:
    """Compute the canonical identifier of a record.

    Identifiers are always strings so that `1` and `"1"` refer to the same
    record. The `row_key` path is tried first, then the `id` field.

    Returns:
        The identifier or `None` if the record has none.
    """
    value = get_property_value(record, row_key)
    if value is None and row_key != "id":
        value = get_property_value(record, "id")
    if value is None:
        return None
    return normalize_key(value)


def normalize_key(value: Any) -> str:
    """Bring an identifier to its canonical (string) form."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def generate_id(prefix: str) -> str:
    """Generate a unique identifier with a readable prefix."""
    return f"{prefix}-{uuid4().hex[:12]}"


def humanize(name: str) -> str:
    """Create a label from an identifier (`created_at` -> `Created at`)."""
    text = name.rsplit(".", 1)[-1].replace("_", " ").replace("-", " ")
    # camelCase to words
    words = []
    for ch in text:
        if ch.isupper() and words and words[-1] != " ":
            words.append(" ")
        words.append(ch.lower())
    result = "".join(words).strip()
    return result[:1].upper() + result[1:]


def count_label(count: int, noun: str) -> str:
    """Return a text like `1 row` or `3 rows`."""
    return f"{count} {inflect_e.plural_noun(noun, count)}"
