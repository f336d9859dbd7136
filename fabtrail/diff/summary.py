"""Human-readable rendering of a structured diff.

Line order is fixed: tracked top-level fields in descriptor order, then
item changes by ascending index (sub-fields quality, quantity, description,
images), then the item-count fallback line, then untracked extra keys.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from fabtrail.diff.images import image_filename
from fabtrail.diff.items import ITEM_FIELDS
from fabtrail.diff.values import Empty, FieldComparator, humanize, to_field_value
from fabtrail.models.changes import (
    FieldDescriptor,
    FieldDiff,
    FieldKind,
    ImageClassification,
    ImageDiff,
    ItemChange,
    ItemChangeType,
)

_log = structlog.get_logger(component="diff.summary")

ARROW = "→"

_ITEM_POSITIONS = {d.key: i for i, d in enumerate(ITEM_FIELDS)}


@dataclass(frozen=True)
class ChangeDraft:
    """A change set before its summary has been rendered."""

    field_diffs: tuple[FieldDiff, ...] = ()
    item_changes: tuple[ItemChange, ...] = ()
    # (before, after) when items changed but per-item identity was unavailable
    item_count: tuple[int, int] | None = None
    extra_diffs: tuple[FieldDiff, ...] = ()


class SummaryFormatter:
    """Renders a ChangeDraft into an ordered list of summary lines."""

    def __init__(
        self,
        descriptors: Sequence[FieldDescriptor],
        comparator: FieldComparator | None = None,
    ) -> None:
        self._descriptors = {d.key: d for d in descriptors}
        self._positions = {d.key: i for i, d in enumerate(descriptors)}
        self._comparator = comparator or FieldComparator()

    def format(self, draft: ChangeDraft) -> list[str]:
        lines: list[str] = []
        tracked = sorted(
            (d for d in draft.field_diffs if d.field in self._descriptors),
            key=lambda d: self._positions[d.field],
        )
        for diff in tracked:
            descriptor = self._descriptors[diff.field]
            if descriptor.kind is FieldKind.ITEMS:
                continue
            lines.extend(self._safe(self._field_line, diff, descriptor.display_name, descriptor.kind))

        for change in sorted(draft.item_changes, key=lambda c: c.index):
            lines.extend(self._safe(self._item_lines, change))

        if draft.item_count is not None:
            lines.extend(self._safe(self._count_line, *draft.item_count))

        for diff in sorted(draft.extra_diffs, key=lambda d: str(d.field)):
            lines.extend(self._safe(self._extra_line, diff))
        return lines

    def _safe(self, render: Callable[..., list[str]], *args: Any) -> list[str]:
        try:
            return render(*args)
        except Exception as exc:  # noqa: BLE001
            _log.debug("summary_line_fallback", renderer=render.__name__, error=str(exc))
            return [" ".join(str(a) for a in args)]

    def _fmt(self, value: Any, kind: FieldKind) -> str:
        return self._comparator.format(value, kind)

    def _field_line(self, diff: FieldDiff, label: str, kind: FieldKind) -> list[str]:
        return [f"{label}: {self._fmt(diff.from_value, kind)} {ARROW} {self._fmt(diff.to_value, kind)}"]

    def _extra_line(self, diff: FieldDiff) -> list[str]:
        return self._field_line(diff, humanize(str(diff.field)), FieldKind.TEXT)

    @staticmethod
    def _count_line(before: int, after: int) -> list[str]:
        if after > before:
            return [f"Items: Added {after - before} new item(s) (Total: {before} {ARROW} {after})"]
        if after < before:
            return [f"Items: Removed {before - after} item(s) (Total: {before} {ARROW} {after})"]
        return []

    # ------------------------------------------------------------------
    # Item changes
    # ------------------------------------------------------------------

    def _item_lines(self, change: ItemChange) -> list[str]:
        label = f"Item {change.index + 1}"
        match change.type:
            case ItemChangeType.ADDED:
                return [f"{label}: Added new item", *self._item_details(change.item or {})]
            case ItemChangeType.REMOVED:
                return [f"{label}: Removed item", *self._item_details(change.item or {})]
            case ItemChangeType.MODIFIED:
                lines: list[str] = []
                diffs = sorted(change.field_diffs, key=lambda d: _ITEM_POSITIONS.get(d.field, len(ITEM_FIELDS)))
                for diff in diffs:
                    lines.extend(self._modified_lines(label, diff))
                return lines
        return []

    def _item_details(self, item: dict[str, Any]) -> list[str]:
        details = []
        for descriptor in ITEM_FIELDS:
            value = item.get(descriptor.key)
            if isinstance(to_field_value(value, descriptor.kind), Empty):
                continue
            if descriptor.kind is FieldKind.IMAGES:
                count = len(value) if isinstance(value, (list, tuple)) else 1
                details.append(f"  [{descriptor.display_name}] {count} image(s)")
            else:
                details.append(f"  [{descriptor.display_name}] {self._fmt(value, descriptor.kind)}")
        return details

    def _modified_lines(self, label: str, diff: FieldDiff) -> list[str]:
        if diff.image_diff is not None:
            return self._image_lines(label, diff.image_diff)
        descriptor = next((d for d in ITEM_FIELDS if d.key == diff.field), None)
        display = descriptor.display_name if descriptor else humanize(str(diff.field))
        kind = descriptor.kind if descriptor else FieldKind.TEXT
        return [f"{label}: {display}: {self._fmt(diff.from_value, kind)} {ARROW} {self._fmt(diff.to_value, kind)}"]

    @staticmethod
    def _image_lines(label: str, image_diff: ImageDiff) -> list[str]:
        added = len(image_diff.added_urls)
        removed = len(image_diff.removed_urls)
        match image_diff.classification:
            case ImageClassification.ADDED:
                phrase = f"Added {added} image(s)"
            case ImageClassification.REMOVED:
                phrase = f"Removed {removed} image(s)"
            case ImageClassification.MIXED:
                phrase = f"Added {added}, removed {removed} image(s)"
            case _:
                return []
        if image_diff.count_before != image_diff.count_after:
            phrase += f" ({image_diff.count_before} {ARROW} {image_diff.count_after} images)"
        lines = [f"{label}: Images: {phrase}"]
        lines.extend(f"    + {image_filename(url)}" for url in image_diff.added_urls)
        lines.extend(f"    - {image_filename(url)}" for url in image_diff.removed_urls)
        return lines
