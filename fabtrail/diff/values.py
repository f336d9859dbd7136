"""Type-aware field values and the FieldComparator.

Raw values from record snapshots and patches are first lifted into a tagged
``FieldValue`` variant (Empty, Scalar, Reference, DateValue, ListValue,
Opaque), and equality and display formatting are defined as a match over
that variant.  Nothing in this module raises for unexpected input: shapes
that fit no variant become ``Opaque`` and compare structurally.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from fabtrail.models.changes import FieldKind, to_jsonable

_log = structlog.get_logger(component="diff.values")

NOT_SET = "Not set"

_UNSET_STATUSES = frozenset({"not set", "not selected"})


@dataclass(frozen=True)
class Empty:
    """Absent, null, blank string, or empty collection."""


@dataclass(frozen=True)
class Scalar:
    value: str | int | float | bool | Decimal


@dataclass(frozen=True)
class Reference:
    """A related entity (party, quality, ...) carried as a sub-document."""

    id: str | None
    name: str | None
    raw: Any = None


@dataclass(frozen=True)
class DateValue:
    instant: datetime


@dataclass(frozen=True)
class ListValue:
    items: tuple[Any, ...]


@dataclass(frozen=True)
class Opaque:
    raw: Any


FieldValue = Empty | Scalar | Reference | DateValue | ListValue | Opaque

EMPTY = Empty()


# ---------------------------------------------------------------------------
# Lifting raw values
# ---------------------------------------------------------------------------


def to_field_value(raw: Any, kind: FieldKind = FieldKind.TEXT) -> FieldValue:
    """Classify *raw* into a FieldValue, interpreting strings per *kind*."""
    if isinstance(raw, (Empty, Scalar, Reference, DateValue, ListValue, Opaque)):
        return raw
    if raw is None:
        return EMPTY
    if isinstance(raw, bool):
        return Scalar(raw)
    if isinstance(raw, datetime):
        return DateValue(_as_aware(raw))
    if isinstance(raw, date):
        return DateValue(datetime(raw.year, raw.month, raw.day, tzinfo=UTC))
    if isinstance(raw, (int, float, Decimal)):
        if kind is FieldKind.QUANTITY and _to_number(raw) == 0:
            return EMPTY
        return Scalar(raw)
    if isinstance(raw, str):
        return _text_value(raw.strip(), kind)
    if isinstance(raw, Mapping):
        if not raw:
            return EMPTY
        ref_id = raw.get("_id", raw.get("id"))
        name = raw.get("name")
        if ref_id is not None or name is not None:
            return Reference(id=_clean(ref_id), name=_clean(name), raw=raw)
        return Opaque(raw)
    if isinstance(raw, (list, tuple)):
        if not raw:
            return EMPTY
        return ListValue(tuple(raw))
    return Opaque(raw)


def _text_value(text: str, kind: FieldKind) -> FieldValue:
    if not text:
        return EMPTY
    if kind is FieldKind.DATE:
        parsed = _parse_date(text)
        if parsed is not None:
            return DateValue(parsed)
    elif kind is FieldKind.QUANTITY:
        if _to_number(text) == 0:
            return EMPTY
    elif kind is FieldKind.STATUS:
        if text.lower() in _UNSET_STATUSES:
            return EMPTY
    return Scalar(text)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _parse_date(text: str) -> datetime | None:
    candidate = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return _as_aware(datetime.fromisoformat(candidate))
    except ValueError:
        return None


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_number(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        if isinstance(value, str):
            number = Decimal(value.strip().replace(",", ""))
        else:
            number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _raw(value: FieldValue) -> Any:
    match value:
        case Empty():
            return None
        case Scalar(value=v):
            return v
        case Reference(raw=r):
            return r
        case DateValue(instant=i):
            return i
        case ListValue(items=items):
            return items
        case Opaque(raw=r):
            return r
    return value


# ---------------------------------------------------------------------------
# Equality
# ---------------------------------------------------------------------------


def values_equal(old: FieldValue, new: FieldValue, kind: FieldKind = FieldKind.TEXT) -> bool:
    """Type-aware equality over two lifted values."""
    match (old, new):
        case (Empty(), Empty()):
            return True
        case (Empty(), _) | (_, Empty()):
            return False
        case (DateValue(instant=a), DateValue(instant=b)):
            return a == b
        case (Reference(), Reference()):
            return _references_equal(old, new)
        case (Reference(), Scalar()):
            return _reference_matches(old, new)
        case (Scalar(), Reference()):
            return _reference_matches(new, old)
        case (Scalar(), Scalar()):
            return _scalars_equal(old, new, kind)
        case (ListValue(items=a), ListValue(items=b)):
            return len(a) == len(b) and all(
                values_equal(to_field_value(x), to_field_value(y)) for x, y in zip(a, b, strict=True)
            )
    return _structurally_equal(_raw(old), _raw(new))


def _references_equal(old: Reference, new: Reference) -> bool:
    if old.id is not None and new.id is not None:
        return old.id == new.id
    if old.name is not None and new.name is not None:
        return old.name == new.name
    return _structurally_equal(old.raw, new.raw)


def _reference_matches(ref: Reference, scalar: Scalar) -> bool:
    text = str(scalar.value).strip()
    return text in {v for v in (ref.id, ref.name) if v is not None}


def _scalars_equal(old: Scalar, new: Scalar, kind: FieldKind) -> bool:
    numeric_kind = kind in (FieldKind.NUMBER, FieldKind.QUANTITY)
    if numeric_kind or _is_number(old.value) or _is_number(new.value):
        a, b = _to_number(old.value), _to_number(new.value)
        if a is not None and b is not None:
            return a == b
    return str(old.value).strip() == str(new.value).strip()


def _structurally_equal(a: Any, b: Any) -> bool:
    try:
        return bool(a == b)
    except Exception:  # noqa: BLE001
        _log.debug("structural_equality_fallback", old_type=type(a).__name__, new_type=type(b).__name__)
        return repr(a) == repr(b)


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------


def humanize(text: str) -> str:
    """``in_progress`` -> ``In Progress``; ``weaverName`` -> ``Weaver Name``."""
    spaced = []
    for i, ch in enumerate(text):
        if ch.isupper() and i > 0 and text[i - 1].islower():
            spaced.append(" ")
        spaced.append(" " if ch in "_-" else ch)
    return " ".join(word[:1].upper() + word[1:] for word in "".join(spaced).split())


def _format_number(value: Any) -> str:
    number = _to_number(value)
    if number is None:
        return str(value)
    if number == number.to_integral_value():
        return str(int(number))
    return format(number.normalize(), "f")


def format_value(value: FieldValue, kind: FieldKind = FieldKind.TEXT) -> str:
    match value:
        case Empty():
            return NOT_SET
        case DateValue(instant=instant):
            return instant.strftime("%d %b %Y")
        case Reference(id=ref_id, name=name):
            return name or ref_id or NOT_SET
        case Scalar(value=v) if isinstance(v, bool):
            return "Yes" if v else "No"
        case Scalar(value=v) if kind is FieldKind.STATUS:
            return humanize(str(v))
        case Scalar(value=v) if _is_number(v) or kind in (FieldKind.NUMBER, FieldKind.QUANTITY):
            return _format_number(v)
        case Scalar(value=v):
            return str(v)
        case ListValue(items=items):
            noun = "image(s)" if kind is FieldKind.IMAGES else "item(s)"
            return f"{len(items)} {noun}"
        case Opaque(raw=raw):
            return json.dumps(to_jsonable(raw), sort_keys=True, ensure_ascii=False)
    return str(value)


def _safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:  # noqa: BLE001
        return object.__repr__(value)


class FieldComparator:
    """Equality and display for a single named field's old and new value."""

    def equal(self, old: Any, new: Any, kind: FieldKind = FieldKind.TEXT) -> bool:
        return values_equal(to_field_value(old, kind), to_field_value(new, kind), kind)

    def format(self, value: Any, kind: FieldKind = FieldKind.TEXT) -> str:
        """Render *value* for a summary line.  Falls back to ``str()``."""
        try:
            return format_value(to_field_value(value, kind), kind)
        except Exception as exc:  # noqa: BLE001
            _log.debug("format_fallback", value_type=type(value).__name__, error=str(exc))
            return _safe_str(value)
