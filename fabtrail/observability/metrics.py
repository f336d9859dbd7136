"""Prometheus metrics for the audit write path."""

from __future__ import annotations

from prometheus_client import Counter

audit_entries_total = Counter(
    "fabtrail_audit_entries_total",
    "Audit entries handed to the persistence port",
    ["resource", "severity"],
)

audit_write_total = Counter(
    "fabtrail_audit_write_total",
    "Audit sink write outcomes",
    ["sink", "success"],
)

audit_step_failures_total = Counter(
    "fabtrail_audit_step_failures_total",
    "Audit steps whose failure was isolated from the caller",
    ["step"],
)

actor_resolution_total = Counter(
    "fabtrail_actor_resolution_total",
    "Actor resolutions by the fallback step that produced the actor",
    ["source"],
)

changesets_built_total = Counter(
    "fabtrail_changesets_built_total",
    "Change sets built",
    ["outcome"],
)
