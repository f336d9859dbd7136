"""Change-diffing engine.

Submodules:
    values     -- FieldValue variant and the type-aware FieldComparator.
    images     -- Set-based diff of ordered image reference lists.
    items      -- Positional / explicit reconciliation of nested line items.
    summary    -- Deterministic human-readable rendering of a diff.
    changeset  -- ChangeSetBuilder orchestrating the above over a record pair.
"""

from fabtrail.diff.changeset import (
    FABRIC_FIELDS,
    ORDER_FIELDS,
    PARTY_FIELDS,
    ChangeSetBuilder,
    build_change_set,
)
from fabtrail.diff.images import ImageListDiffer, image_filename
from fabtrail.diff.items import ITEM_FIELDS, ItemsReconciler, ReconciliationError
from fabtrail.diff.summary import ChangeDraft, SummaryFormatter
from fabtrail.diff.values import FieldComparator, to_field_value

__all__ = [
    "FABRIC_FIELDS",
    "ITEM_FIELDS",
    "ORDER_FIELDS",
    "PARTY_FIELDS",
    "ChangeDraft",
    "ChangeSetBuilder",
    "FieldComparator",
    "ImageListDiffer",
    "ItemsReconciler",
    "ReconciliationError",
    "SummaryFormatter",
    "build_change_set",
    "image_filename",
    "to_field_value",
]
