"""Change-set data structures produced by the diff engine."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any


def to_jsonable(value: Any) -> Any:
    """Convert *value* into plain JSON-safe types.  Never raises."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
        return [to_jsonable(v) for v in items]
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        try:
            return to_jsonable(to_dict())
        except Exception:  # noqa: BLE001
            pass
    try:
        return str(value)
    except Exception:  # noqa: BLE001
        return object.__repr__(value)


class FieldKind(StrEnum):
    """How a field's raw value is interpreted for comparison and display."""

    TEXT = "text"
    NUMBER = "number"
    QUANTITY = "quantity"
    DATE = "date"
    REFERENCE = "reference"
    STATUS = "status"
    IMAGES = "images"
    ITEMS = "items"


@dataclass(frozen=True)
class FieldDescriptor:
    """A tracked field.  Position in a descriptor list is summary order."""

    key: str
    display_name: str
    kind: FieldKind = FieldKind.TEXT


class ImageClassification(StrEnum):
    """Overall shape of an image-list change."""

    ADDED = "added"
    REMOVED = "removed"
    MIXED = "mixed"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class ImageDiff:
    """Set-based difference between two ordered image reference lists."""

    count_before: int
    count_after: int
    added_urls: tuple[str, ...] = ()
    removed_urls: tuple[str, ...] = ()
    classification: ImageClassification = ImageClassification.UNCHANGED

    @property
    def changed(self) -> bool:
        return bool(self.added_urls or self.removed_urls)

    def to_dict(self) -> dict[str, object]:
        return {
            "countBefore": self.count_before,
            "countAfter": self.count_after,
            "addedUrls": list(self.added_urls),
            "removedUrls": list(self.removed_urls),
            "classification": self.classification.value,
        }


@dataclass(frozen=True)
class FieldDiff:
    """One changed field.  ``image_diff`` is set only for image-list fields."""

    field: str
    from_value: Any
    to_value: Any
    image_diff: ImageDiff | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "from": to_jsonable(self.from_value),
            "to": to_jsonable(self.to_value),
        }
        if self.image_diff is not None:
            data["images"] = self.image_diff.to_dict()
        return data


class ItemChangeType(StrEnum):
    """Variant tag of an ItemChange."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(frozen=True)
class ItemChange:
    """Tagged change to a single line item.

    ``item`` is populated for ADDED and REMOVED; ``field_diffs`` for MODIFIED,
    in the fixed sub-field order quality, quantity, description, images.
    """

    type: ItemChangeType
    index: int
    item: dict[str, Any] | None = None
    field_diffs: tuple[FieldDiff, ...] = ()

    @classmethod
    def added(cls, index: int, item: dict[str, Any]) -> ItemChange:
        return cls(type=ItemChangeType.ADDED, index=index, item=item)

    @classmethod
    def removed(cls, index: int, item: dict[str, Any]) -> ItemChange:
        return cls(type=ItemChangeType.REMOVED, index=index, item=item)

    @classmethod
    def modified(cls, index: int, field_diffs: tuple[FieldDiff, ...]) -> ItemChange:
        return cls(type=ItemChangeType.MODIFIED, index=index, field_diffs=field_diffs)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"type": self.type.value, "index": self.index}
        if self.item is not None:
            data["item"] = to_jsonable(self.item)
        if self.field_diffs:
            data["fieldDiffs"] = {d.field: d.to_dict() for d in self.field_diffs}
        return data


@dataclass(frozen=True)
class ChangeSet:
    """Result of diffing a record snapshot against a sparse patch.

    Created fresh per write operation and never mutated afterwards.
    """

    changed: dict[str, FieldDiff] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)
    new: dict[str, Any] = field(default_factory=dict)
    summary: tuple[str, ...] = ()
    item_changes: tuple[ItemChange, ...] = ()

    @classmethod
    def empty(cls) -> ChangeSet:
        """Degraded change set used when diffing could not complete."""
        return cls()

    @property
    def has_changes(self) -> bool:
        return bool(self.changed or self.item_changes)

    def to_dict(self) -> dict[str, object]:
        """Serialise into the audit ``details`` document shape."""
        return {
            "changedFields": {key: diff.to_dict() for key, diff in self.changed.items()},
            "oldValues": to_jsonable(self.old),
            "newValues": to_jsonable(self.new),
            "changeSummary": list(self.summary),
            "itemChanges": [change.to_dict() for change in self.item_changes],
        }
