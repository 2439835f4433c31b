"""
Unit tests for the merge-and-dedupe routine.
"""

from visibility.filters import SortKey
from visibility.merge import merge_and_dedupe, sort_rows


def _ids(rows):
    return [r["id"] for r in rows]


# ── Tests: sort_rows ─────────────────────────────────────────────────

def test_sort_rows_descending_nulls_last():
    rows = [{"id": 1, "t": 2}, {"id": 2, "t": None}, {"id": 3, "t": 5}]
    assert _ids(sort_rows(rows, [SortKey("t", descending=True)])) == [3, 1, 2]


def test_sort_rows_ascending_nulls_last():
    rows = [{"id": 1, "t": None}, {"id": 2, "t": 9}, {"id": 3, "t": 5}]
    assert _ids(sort_rows(rows, [SortKey("t")])) == [3, 2, 1]


def test_sort_rows_secondary_key_breaks_ties():
    rows = [{"id": "b", "t": 1}, {"id": "a", "t": 1}, {"id": "c", "t": 2}]
    out = sort_rows(rows, [SortKey("t", descending=True), SortKey("id")])
    assert _ids(out) == ["c", "a", "b"]


# ── Tests: merge_and_dedupe ──────────────────────────────────────────

def test_merge_first_occurrence_wins():
    own = [{"id": 1, "src": "own"}]
    national = [{"id": 1, "src": "national"}, {"id": 2, "src": "national"}]
    out = merge_and_dedupe([own, national])
    assert out == [{"id": 1, "src": "own"}, {"id": 2, "src": "national"}]


def test_merge_resorts_regardless_of_arrival_order():
    a = [{"id": 1, "t": 1}, {"id": 3, "t": 3}]
    b = [{"id": 2, "t": 2}, {"id": 4, "t": 4}]
    sort = [SortKey("t", descending=True)]
    assert _ids(merge_and_dedupe([a, b], sort)) == [4, 3, 2, 1]
    assert _ids(merge_and_dedupe([b, a], sort)) == [4, 3, 2, 1]


def test_merge_is_idempotent():
    rows = [{"id": i, "t": 10 - i} for i in range(6)]
    sort = [SortKey("t", descending=True)]
    once = merge_and_dedupe([rows], sort)
    assert merge_and_dedupe([once, once], sort) == once


def test_merge_never_returns_duplicate_ids():
    a = [{"id": i % 4, "t": i} for i in range(10)]
    b = [{"id": i % 3, "t": i} for i in range(10)]
    out = merge_and_dedupe([a, b], [SortKey("t")])
    assert len(_ids(out)) == len(set(_ids(out))) == 4


def test_merge_slices_requested_window():
    a = [{"id": i, "t": i} for i in range(0, 20, 2)]
    b = [{"id": i, "t": i} for i in range(1, 20, 2)]
    out = merge_and_dedupe([a, b], [SortKey("t")], start=5, size=5)
    assert _ids(out) == [5, 6, 7, 8, 9]


def test_merge_custom_id_column():
    out = merge_and_dedupe([[{"pk": "x"}], [{"pk": "x"}, {"pk": "y"}]], id_column="pk")
    assert [r["pk"] for r in out] == ["x", "y"]
