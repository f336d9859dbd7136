"""Reconciliation of nested line-item collections.

Two modes:

* explicit  -- the caller supplies ``{type, index, item?, changes?}``
               descriptors and they are normalised into ItemChange values;
* positional -- old and new arrays are walked index by index.  Item order
               is assumed stable between snapshots, so a reorder shows up
               as pairwise field edits.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from fabtrail.diff.images import ImageListDiffer
from fabtrail.diff.values import FieldComparator
from fabtrail.models.changes import FieldDescriptor, FieldDiff, FieldKind, ItemChange

_log = structlog.get_logger(component="diff.items")

# Sub-field order here is the order modified-item lines appear in summaries.
ITEM_FIELDS: tuple[FieldDescriptor, ...] = (
    FieldDescriptor("quality", "Quality", FieldKind.REFERENCE),
    FieldDescriptor("quantity", "Quantity", FieldKind.QUANTITY),
    FieldDescriptor("description", "Description", FieldKind.TEXT),
    FieldDescriptor("imageUrls", "Images", FieldKind.IMAGES),
)

_ADDED = "added"
_REMOVED = "removed"
_UPDATED = ("updated", "modified")


class ReconciliationError(Exception):
    """Raised when item identity cannot be established (malformed items)."""


def _as_items(value: Any, label: str) -> list[Mapping[str, Any]]:
    if value is None:
        return []
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ReconciliationError(f"{label} items must be a list, got {type(value).__name__}")
    for i, item in enumerate(value):
        if not isinstance(item, Mapping):
            raise ReconciliationError(f"{label} item at index {i} is not a mapping")
    return list(value)


def _index(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        index = int(value)
    except (TypeError, ValueError):
        return None
    return index if index >= 0 else None


def _at(items: list[Mapping[str, Any]], index: int) -> Mapping[str, Any] | None:
    return items[index] if index < len(items) else None


def _snapshot(item: Mapping[str, Any]) -> dict[str, Any]:
    return copy.deepcopy(dict(item))


class ItemsReconciler:
    """Aligns old and new item collections and classifies each change."""

    def __init__(
        self,
        comparator: FieldComparator | None = None,
        image_differ: ImageListDiffer | None = None,
    ) -> None:
        self._comparator = comparator or FieldComparator()
        self._images = image_differ or ImageListDiffer()

    def reconcile(
        self,
        old_items: Any,
        new_items: Any,
        explicit_changes: Sequence[Any] | None = None,
    ) -> list[ItemChange]:
        """Return item changes in ascending index order.

        Raises:
            ReconciliationError: if either collection is not a list of mappings.
        """
        old = _as_items(old_items, "old")
        new = _as_items(new_items, "new")
        if explicit_changes is not None:
            changes = self._from_descriptors(old, new, explicit_changes)
        else:
            changes = self._positional(old, new)
        return sorted(changes, key=lambda change: change.index)

    def diff_item(self, old_item: Mapping[str, Any], new_item: Mapping[str, Any]) -> tuple[FieldDiff, ...]:
        """Per-sub-field diffs between two versions of the same item."""
        diffs = (
            self._field_diff(descriptor, old_item.get(descriptor.key), new_item.get(descriptor.key))
            for descriptor in ITEM_FIELDS
        )
        return tuple(d for d in diffs if d is not None)

    def _field_diff(self, descriptor: FieldDescriptor, old: Any, new: Any) -> FieldDiff | None:
        if descriptor.kind is FieldKind.IMAGES:
            image_diff = self._images.diff(old, new)
            if not image_diff.changed:
                return None
            return FieldDiff(descriptor.key, copy.deepcopy(old), copy.deepcopy(new), image_diff)
        if self._comparator.equal(old, new, descriptor.kind):
            return None
        return FieldDiff(descriptor.key, copy.deepcopy(old), copy.deepcopy(new))

    # ------------------------------------------------------------------
    # Positional mode
    # ------------------------------------------------------------------

    def _positional(self, old: list[Mapping[str, Any]], new: list[Mapping[str, Any]]) -> list[ItemChange]:
        changes: list[ItemChange] = []
        for i in range(max(len(old), len(new))):
            old_item = _at(old, i)
            new_item = _at(new, i)
            if old_item is None and new_item is not None:
                changes.append(ItemChange.added(i, _snapshot(new_item)))
            elif new_item is None and old_item is not None:
                changes.append(ItemChange.removed(i, _snapshot(old_item)))
            elif old_item is not None and new_item is not None:
                diffs = self.diff_item(old_item, new_item)
                if diffs:
                    changes.append(ItemChange.modified(i, diffs))
        return changes

    # ------------------------------------------------------------------
    # Explicit mode
    # ------------------------------------------------------------------

    def _from_descriptors(
        self,
        old: list[Mapping[str, Any]],
        new: list[Mapping[str, Any]],
        descriptors: Sequence[Any],
    ) -> list[ItemChange]:
        changes: list[ItemChange] = []
        for raw in descriptors:
            if not isinstance(raw, Mapping):
                _log.debug("item_descriptor_skipped", reason="not a mapping")
                continue
            change_type = str(raw.get("type", "")).lower()
            index = _index(raw.get("index"))
            if index is None:
                _log.debug("item_descriptor_skipped", reason="invalid index", type=change_type)
                continue
            item = raw.get("item") if isinstance(raw.get("item"), Mapping) else None

            if change_type == _ADDED:
                item = item or _at(new, index)
                if item is not None:
                    changes.append(ItemChange.added(index, _snapshot(item)))
            elif change_type == _REMOVED:
                item = item or _at(old, index)
                if item is not None:
                    changes.append(ItemChange.removed(index, _snapshot(item)))
            elif change_type in _UPDATED:
                diffs = self._descriptor_diffs(raw.get("changes"), _at(old, index), item)
                if diffs:
                    changes.append(ItemChange.modified(index, diffs))
            else:
                _log.debug("item_descriptor_skipped", reason="unknown type", type=change_type)
        return changes

    def _descriptor_diffs(
        self,
        changes: Any,
        old_item: Mapping[str, Any] | None,
        item: Mapping[str, Any] | None,
    ) -> tuple[FieldDiff, ...]:
        if isinstance(changes, Mapping) and changes:
            diffs = []
            for descriptor in ITEM_FIELDS:
                if descriptor.key not in changes:
                    continue
                old_val, new_val = self._change_pair(changes[descriptor.key], old_item, descriptor.key)
                diff = self._field_diff(descriptor, old_val, new_val)
                if diff is not None:
                    diffs.append(diff)
            return tuple(diffs)
        if item is not None:
            # the descriptor's item is a sparse patch over the old item
            base = old_item or {}
            return self.diff_item(base, {**base, **item})
        return ()

    @staticmethod
    def _change_pair(entry: Any, old_item: Mapping[str, Any] | None, key: str) -> tuple[Any, Any]:
        if isinstance(entry, Mapping):
            if "from" in entry or "to" in entry:
                return entry.get("from"), entry.get("to")
            if "old" in entry or "new" in entry:
                return entry.get("old"), entry.get("new")
        return (old_item.get(key) if old_item is not None else None), entry
