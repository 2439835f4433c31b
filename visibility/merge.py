"""
Client-side merge of independently fetched result pages.

Used whenever one visibility rule is answered by several sub-queries. Rows are
deduplicated by primary key (first occurrence wins), re-sorted by the declared
sort keys and cut to the requested window.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

from visibility.filters import SortKey

Row = Dict[str, Any]


def sort_rows(rows: Iterable[Row], sort: Sequence[SortKey]) -> List[Row]:
    """Stable multi-key sort; nulls go last in either direction."""
    ordered = list(rows)
    for key in reversed(list(sort)):
        present = [r for r in ordered if r.get(key.column) is not None]
        missing = [r for r in ordered if r.get(key.column) is None]
        present.sort(key=lambda r: r[key.column], reverse=key.descending)
        ordered = present + missing
    return ordered


def merge_and_dedupe(
    pages: Iterable[Sequence[Row]],
    sort: Sequence[SortKey] = (),
    id_column: str = "id",
    start: int = 0,
    size: Optional[int] = None,
) -> List[Row]:
    """
    Union *pages* in the order given, drop repeated ids, re-sort and slice
    ``[start, start + size)``.
    """
    seen = set()
    merged: List[Row] = []
    for page in pages:
        for row in page:
            key = row[id_column]
            if key in seen:
                continue
            seen.add(key)
            merged.append(row)

    if sort:
        merged = sort_rows(merged, sort)

    if size is None:
        return merged[start:]
    return merged[start:start + size]
