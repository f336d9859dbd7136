"""ChangeSet construction over a record snapshot and a sparse patch.

``ChangeSetBuilder.build`` is pure: it never mutates its inputs, keeps no
state between calls and returns equal output for equal input, so it is safe
to call speculatively ("would anything change?") before a write.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from fabtrail.diff.items import ItemsReconciler, ReconciliationError
from fabtrail.diff.summary import ChangeDraft, SummaryFormatter
from fabtrail.diff.values import FieldComparator
from fabtrail.models.changes import ChangeSet, FieldDescriptor, FieldDiff, FieldKind, ItemChange

_log = structlog.get_logger(component="diff.changeset")

ITEM_CHANGES_KEY = "itemChanges"

ORDER_FIELDS: tuple[FieldDescriptor, ...] = (
    FieldDescriptor("orderType", "Order Type"),
    FieldDescriptor("arrivalDate", "Arrival Date", FieldKind.DATE),
    FieldDescriptor("party", "Party", FieldKind.REFERENCE),
    FieldDescriptor("contactName", "Contact Name"),
    FieldDescriptor("contactPhone", "Contact Phone"),
    FieldDescriptor("poNumber", "PO Number"),
    FieldDescriptor("styleNo", "Style Number"),
    FieldDescriptor("poDate", "PO Date", FieldKind.DATE),
    FieldDescriptor("deliveryDate", "Delivery Date", FieldKind.DATE),
    FieldDescriptor("rate", "Rate", FieldKind.NUMBER),
    FieldDescriptor("status", "Status", FieldKind.STATUS),
    FieldDescriptor("items", "Items", FieldKind.ITEMS),
)

PARTY_FIELDS: tuple[FieldDescriptor, ...] = (
    FieldDescriptor("name", "Party Name"),
    FieldDescriptor("contactName", "Contact Name"),
    FieldDescriptor("contactPhone", "Contact Phone"),
    FieldDescriptor("address", "Address"),
)

FABRIC_FIELDS: tuple[FieldDescriptor, ...] = (
    FieldDescriptor("qualityCode", "Quality Code"),
    FieldDescriptor("qualityName", "Quality Name"),
    FieldDescriptor("weaver", "Weaver"),
    FieldDescriptor("weaverQualityName", "Weaver Quality Name"),
    FieldDescriptor("greighWidth", "Greigh Width", FieldKind.NUMBER),
    FieldDescriptor("finishWidth", "Finish Width", FieldKind.NUMBER),
    FieldDescriptor("weight", "Weight", FieldKind.NUMBER),
    FieldDescriptor("gsm", "GSM", FieldKind.NUMBER),
    FieldDescriptor("danier", "Danier"),
    FieldDescriptor("reed", "Reed", FieldKind.NUMBER),
    FieldDescriptor("pick", "Pick", FieldKind.NUMBER),
    FieldDescriptor("greighRate", "Greigh Rate", FieldKind.NUMBER),
    FieldDescriptor("label", "Label"),
)

# Bookkeeping keys never reported by the catch-all pass.
_IGNORED_KEYS = frozenset({"_id", "id", "__v", "createdAt", "updatedAt", "items", ITEM_CHANGES_KEY})


def _count(items: Any) -> int:
    return len(items) if isinstance(items, (list, tuple)) else 0


class ChangeSetBuilder:
    """Diffs a full record against a sparse patch into a ChangeSet.

    Two passes: the declared descriptor list first, then a catch-all over keys
    present in both the record and the patch that no descriptor names.
    """

    def __init__(
        self,
        descriptors: Sequence[FieldDescriptor] = ORDER_FIELDS,
        comparator: FieldComparator | None = None,
        reconciler: ItemsReconciler | None = None,
    ) -> None:
        self._descriptors = tuple(descriptors)
        self._tracked = frozenset(d.key for d in self._descriptors)
        self._items_key = next((d.key for d in self._descriptors if d.kind is FieldKind.ITEMS), None)
        self._comparator = comparator or FieldComparator()
        self._reconciler = reconciler or ItemsReconciler(comparator=self._comparator)
        self._formatter = SummaryFormatter(self._descriptors, comparator=self._comparator)

    def build(self, old_record: Mapping[str, Any] | None, new_patch: Mapping[str, Any] | None) -> ChangeSet:
        old: Mapping[str, Any] = old_record if isinstance(old_record, Mapping) else {}
        new: Mapping[str, Any] = new_patch if isinstance(new_patch, Mapping) else {}

        field_diffs: list[FieldDiff] = []
        for descriptor in self._descriptors:
            if descriptor.key not in new or descriptor.kind is FieldKind.ITEMS:
                continue
            if not self._comparator.equal(old.get(descriptor.key), new[descriptor.key], descriptor.kind):
                field_diffs.append(self._diff(descriptor.key, old, new))

        item_changes, item_count = self._reconcile_items(old, new)
        if self._items_key is not None and self._items_key in new and self._items_differ(old, new):
            field_diffs.append(self._diff(self._items_key, old, new))

        extra_diffs = [
            self._diff(key, old, new)
            for key in sorted(new, key=str)
            if key not in self._tracked
            and key not in _IGNORED_KEYS
            and key in old
            and not self._comparator.equal(old[key], new[key])
        ]

        draft = ChangeDraft(
            field_diffs=tuple(field_diffs),
            item_changes=item_changes,
            item_count=item_count,
            extra_diffs=tuple(extra_diffs),
        )
        all_diffs = [*field_diffs, *extra_diffs]
        return ChangeSet(
            changed={d.field: d for d in all_diffs},
            old={d.field: copy.deepcopy(d.from_value) for d in all_diffs},
            new={d.field: copy.deepcopy(d.to_value) for d in all_diffs},
            summary=tuple(self._formatter.format(draft)),
            item_changes=item_changes,
        )

    @staticmethod
    def _diff(key: str, old: Mapping[str, Any], new: Mapping[str, Any]) -> FieldDiff:
        return FieldDiff(key, copy.deepcopy(old.get(key)), copy.deepcopy(new.get(key)))

    def _items_differ(self, old: Mapping[str, Any], new: Mapping[str, Any]) -> bool:
        """Whether the patch's item list differs from the record's, compared positionally."""
        key = self._items_key
        if key is None:
            return False
        old_items, new_items = old.get(key), new.get(key)
        try:
            return bool(self._reconciler.reconcile(old_items, new_items))
        except ReconciliationError:
            return not self._comparator.equal(old_items, new_items)

    def _reconcile_items(
        self,
        old: Mapping[str, Any],
        new: Mapping[str, Any],
    ) -> tuple[tuple[ItemChange, ...], tuple[int, int] | None]:
        key = self._items_key
        if key is None:
            return (), None
        explicit = new.get(ITEM_CHANGES_KEY)
        descriptors = explicit if isinstance(explicit, (list, tuple)) else None
        if key not in new and descriptors is None:
            return (), None

        old_items = old.get(key)
        new_items = new.get(key, old_items)
        try:
            changes = self._reconciler.reconcile(old_items, new_items, descriptors)
        except ReconciliationError as exc:
            before, after = _count(old_items), _count(new_items)
            _log.debug("item_reconciliation_fallback", error=str(exc), before=before, after=after)
            return (), ((before, after) if before != after else None)
        return tuple(changes), None


def build_change_set(
    old_record: Mapping[str, Any] | None,
    new_patch: Mapping[str, Any] | None,
    descriptors: Sequence[FieldDescriptor] = ORDER_FIELDS,
) -> ChangeSet:
    """Convenience wrapper around ``ChangeSetBuilder(descriptors).build``."""
    return ChangeSetBuilder(descriptors).build(old_record, new_patch)
