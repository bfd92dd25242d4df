"""Field-level diff between two session snapshots.

Diffs are computed at read time from the stored before/after JSON, so this
module is pure: the same two snapshots always yield the same list, in the
same order.
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pydantic import BaseModel

EMPTY_DISPLAY = "—"

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_LEADING_HHMM = re.compile(r"^(\d{2}:\d{2})")


class FieldKind(str, Enum):
    """How a snapshot field is compared and displayed."""

    DATE = "date"
    TIME = "time"
    TIMESTAMP = "timestamp"
    MINUTES = "minutes"


FIELD_KINDS: dict[str, FieldKind] = {
    "date": FieldKind.DATE,
    "start_time": FieldKind.TIME,
    "end_time": FieldKind.TIME,
    "duration_minutes": FieldKind.MINUTES,
    "approved_at": FieldKind.TIMESTAMP,
    "submitted_at": FieldKind.TIMESTAMP,
    "created_at": FieldKind.TIMESTAMP,
}

FIELD_LABELS: dict[str, str] = {
    "date": "Date",
    "start_time": "Start time",
    "end_time": "End time",
    "duration_minutes": "Duration",
    "status": "Status",
    "mode": "Mode",
    "location": "Location",
    "notes": "Notes",
    "assignment_id": "Assignment",
    "tutor_id": "Tutor",
    "student_id": "Student",
    "approved_by": "Approved by",
    "approved_at": "Approved at",
    "submitted_at": "Submitted at",
    "created_at": "Created at",
    "reject_reason": "Reject reason",
}

# Canonical display order; other keys follow alphabetically.
ORDERED_FIELDS: tuple[str, ...] = (
    "status",
    "date",
    "start_time",
    "end_time",
    "duration_minutes",
    "assignment_id",
    "student_id",
    "tutor_id",
    "mode",
    "location",
    "notes",
    "approved_by",
    "approved_at",
    "submitted_at",
    "created_at",
    "reject_reason",
)

IMPORTANT_FIELDS: frozenset[str] = frozenset(
    {
        "status",
        "date",
        "start_time",
        "end_time",
        "assignment_id",
        "student_id",
        "tutor_id",
        "approved_by",
    }
)


@dataclass(frozen=True)
class FieldDiff:
    """One changed field with human-readable before/after values."""

    field: str
    label: str
    before: str
    after: str
    important: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def normalize_json(value: Any) -> Any:
    """Parse embedded JSON text and dump pydantic snapshots to plain data."""
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def _as_mapping(value: Any) -> dict[str, Any]:
    normalized = normalize_json(value)
    if isinstance(normalized, dict):
        return normalized
    return {}


def _stable_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def _normalize_date(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        if _ISO_DATE.match(value):
            return value
        try:
            return _normalize_date(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return value
    return value


def _normalize_time(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, (time, datetime)):
        return value.strftime("%H:%M")
    if isinstance(value, str):
        match = _LEADING_HHMM.match(value)
        if match:
            return match.group(1)
    return value


def normalize_comparable(field: str, value: Any) -> Any:
    """Comparable form of a snapshot value, driven by FIELD_KINDS."""
    if value is None:
        return None

    kind = FIELD_KINDS.get(field)
    if kind is FieldKind.DATE:
        return _normalize_date(value)
    if kind is FieldKind.TIME:
        return _normalize_time(value)
    if kind is FieldKind.TIMESTAMP:
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, str):
            return value

    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, dict)):
        return _stable_json(value)
    return value


def _format_number(value: Any) -> str:
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        return str(value)
    if number == number.to_integral_value():
        return str(int(number))
    return str(number.normalize())


def _summarize_complex(value: list[Any] | dict[str, Any]) -> str:
    if isinstance(value, list):
        if len(value) <= 3:
            return json.dumps(value, default=str)
        return f"{len(value)} items"
    keys = list(value.keys())
    if not keys:
        return "{}"
    preview = ", ".join(keys[:3])
    more = f" (+{len(keys) - 3})" if len(keys) > 3 else ""
    return f"Keys: {preview}{more}"


def format_display(field: str, value: Any) -> str:
    """Human-readable rendering of a snapshot value."""
    if value is None or value == "":
        return EMPTY_DISPLAY

    kind = FIELD_KINDS.get(field)
    if kind is FieldKind.DATE:
        return str(_normalize_date(value))
    if kind is FieldKind.TIME:
        return str(_normalize_time(value))
    if kind is FieldKind.MINUTES:
        return f"{_format_number(value)} min"

    if isinstance(value, (list, dict)):
        return _summarize_complex(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def field_label(field: str) -> str:
    if field in FIELD_LABELS:
        return FIELD_LABELS[field]
    return " ".join(word[:1].upper() + word[1:] for word in field.split("_"))


def _ordered_keys(keys: set[str]) -> list[str]:
    known = [key for key in ORDERED_FIELDS if key in keys]
    rest = sorted(key for key in keys if key not in ORDERED_FIELDS)
    return known + rest


def compute_diffs(before: Any, after: Any) -> list[FieldDiff]:
    """Compute the ordered list of changed fields between two snapshots.

    Args:
        before: Snapshot before the change (dict, JSON text, pydantic model or None)
        after: Snapshot after the change (same accepted forms)

    Returns:
        One FieldDiff per field whose normalized values differ, canonical
        fields first, then the remaining keys alphabetically.
    """
    before_map = _as_mapping(before)
    after_map = _as_mapping(after)

    diffs: list[FieldDiff] = []
    for field in _ordered_keys(set(before_map) | set(after_map)):
        before_value = before_map.get(field)
        after_value = after_map.get(field)
        if normalize_comparable(field, before_value) == normalize_comparable(field, after_value):
            continue

        diffs.append(
            FieldDiff(
                field=field,
                label=field_label(field),
                before=format_display(field, before_value),
                after=format_display(field, after_value),
                important=field in IMPORTANT_FIELDS,
            )
        )

    return diffs
