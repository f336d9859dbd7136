"""Set-based diff of ordered image reference lists."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from urllib.parse import unquote, urlparse

from fabtrail.models.changes import ImageClassification, ImageDiff


def image_filename(url: str) -> str:
    """Short display name for an image reference: its last path segment."""
    path = urlparse(url).path if "://" in url else url.split("?", 1)[0].split("#", 1)[0]
    segment = path.rstrip("/").rsplit("/", 1)[-1]
    return unquote(segment) or url


def _as_urls(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, Iterable):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return [str(value)]


class ImageListDiffer:
    """Compares two image lists as unordered sets of exact reference strings.

    Position does not affect equality; within ``added_urls`` and
    ``removed_urls`` the original relative order is kept and duplicates are
    reported once.
    """

    def diff(self, old_urls: Any, new_urls: Any) -> ImageDiff:
        old = _as_urls(old_urls)
        new = _as_urls(new_urls)
        old_set = set(old)
        new_set = set(new)
        removed = tuple(dict.fromkeys(u for u in old if u not in new_set))
        added = tuple(dict.fromkeys(u for u in new if u not in old_set))

        if added and removed:
            classification = ImageClassification.MIXED
        elif added:
            classification = ImageClassification.ADDED
        elif removed:
            classification = ImageClassification.REMOVED
        else:
            classification = ImageClassification.UNCHANGED

        return ImageDiff(
            count_before=len(old),
            count_after=len(new),
            added_urls=added,
            removed_urls=removed,
            classification=classification,
        )
