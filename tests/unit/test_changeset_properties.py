"""Property-based tests for the change set builder and image differ.

Uses hypothesis to generate order snapshots and sparse patches and checks:
 1. Building is deterministic for equal input
 2. Only keys present in the patch are ever reported as changed
 3. Patching a record with its own values reports nothing
 4. Inputs are never mutated
 5. Image diffs follow set semantics regardless of order
"""

from __future__ import annotations

import copy

from hypothesis import given, settings
from hypothesis import strategies as st

from fabtrail.diff.changeset import ChangeSetBuilder
from fabtrail.diff.images import ImageListDiffer
from fabtrail.models.changes import ImageClassification

_BUILDER = ChangeSetBuilder()
_DIFFER = ImageListDiffer()

# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

_text = st.text(alphabet="abcXYZ 0123456789-_", max_size=12)
_scalar = st.one_of(st.none(), _text, st.integers(min_value=-1000, max_value=1000))
_urls = st.lists(st.sampled_from(["a.jpg", "b.jpg", "c.jpg", "d.jpg", "e.jpg"]), max_size=5)

_item = st.fixed_dictionaries(
    {
        "quality": st.one_of(
            st.none(),
            st.builds(lambda i, n: {"_id": i, "name": n}, st.sampled_from(["q1", "q2", "q3"]), _text),
        ),
        "quantity": st.integers(min_value=0, max_value=500),
        "description": _text,
        "imageUrls": _urls,
    }
)

_record = st.fixed_dictionaries(
    {},
    optional={
        "orderType": _scalar,
        "poNumber": _scalar,
        "styleNo": _scalar,
        "contactName": _scalar,
        "status": st.sampled_from(["pending", "in_progress", "delivered", "Not set", ""]),
        "rate": st.one_of(st.none(), st.integers(min_value=0, max_value=999)),
        "remarks": _scalar,
        "items": st.lists(_item, max_size=4),
    },
)


# ---------------------------------------------------------------------------
# Change set laws
# ---------------------------------------------------------------------------


@given(old=_record, patch=_record)
@settings(max_examples=200)
def test_build_is_deterministic(old: dict, patch: dict) -> None:
    assert _BUILDER.build(old, patch) == _BUILDER.build(old, patch)


@given(old=_record, patch=_record)
@settings(max_examples=200)
def test_only_patched_keys_reported(old: dict, patch: dict) -> None:
    change_set = _BUILDER.build(old, patch)
    assert set(change_set.changed) <= set(patch)


@given(old=_record, data=st.data())
@settings(max_examples=200)
def test_projection_of_record_is_a_noop(old: dict, data: st.DataObject) -> None:
    keys = data.draw(st.sets(st.sampled_from(sorted(old))) if old else st.just(set()))
    patch = {key: copy.deepcopy(old[key]) for key in keys}
    change_set = _BUILDER.build(old, patch)
    assert not change_set.has_changes
    assert change_set.summary == ()


@given(old=_record, patch=_record)
@settings(max_examples=100)
def test_inputs_are_not_mutated(old: dict, patch: dict) -> None:
    old_copy, patch_copy = copy.deepcopy(old), copy.deepcopy(patch)
    _BUILDER.build(old, patch)
    assert old == old_copy
    assert patch == patch_copy


# ---------------------------------------------------------------------------
# Image set semantics
# ---------------------------------------------------------------------------


@given(urls=_urls, data=st.data())
def test_permutation_is_unchanged(urls: list[str], data: st.DataObject) -> None:
    shuffled = data.draw(st.permutations(urls))
    diff = _DIFFER.diff(urls, shuffled)
    assert diff.classification is ImageClassification.UNCHANGED
    assert not diff.changed


@given(old=_urls, new=_urls)
def test_added_and_removed_are_set_differences(old: list[str], new: list[str]) -> None:
    diff = _DIFFER.diff(old, new)
    assert set(diff.added_urls) == set(new) - set(old)
    assert set(diff.removed_urls) == set(old) - set(new)
    assert len(diff.added_urls) == len(set(diff.added_urls))
    assert (diff.count_before, diff.count_after) == (len(old), len(new))
