"""Core data structures for fabtrail."""

from fabtrail.models.audit import UNKNOWN_ACTOR, Actor, AuditEntry, RequestContext, Severity
from fabtrail.models.changes import (
    ChangeSet,
    FieldDescriptor,
    FieldDiff,
    FieldKind,
    ImageClassification,
    ImageDiff,
    ItemChange,
    ItemChangeType,
)
from fabtrail.models.config import FabtrailConfig

__all__ = [
    "UNKNOWN_ACTOR",
    "Actor",
    "AuditEntry",
    "ChangeSet",
    "FabtrailConfig",
    "FieldDescriptor",
    "FieldDiff",
    "FieldKind",
    "ImageClassification",
    "ImageDiff",
    "ItemChange",
    "ItemChangeType",
    "RequestContext",
    "Severity",
]
