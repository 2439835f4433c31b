"""
Error taxonomy for scope resolution and visibility-scoped queries.

Scope and reference failures narrow access and are absorbed by the resolver;
query failures affect data correctness and always reach the caller.
"""

from typing import Any, Optional, Sequence


class VisibilityError(Exception):
    """Base class for visibility engine errors."""


class ScopeLookupFailed(VisibilityError):
    """The caller's visibility scope could not be loaded."""

    def __init__(self, caller_id: Any, cause: Optional[BaseException] = None):
        self.caller_id = caller_id
        self.cause = cause
        super().__init__(f"Scope lookup failed for caller {caller_id!r}: {cause}")


class ReferenceLookupFailed(VisibilityError):
    """The national jurisdiction reference data could not be loaded."""

    def __init__(self, what: str, cause: Optional[BaseException] = None):
        self.what = what
        self.cause = cause
        super().__init__(f"Reference lookup failed ({what}): {cause}")


class QueryFailed(VisibilityError):
    """A backing-store query failed; carries the collection and attempted filters."""

    def __init__(self, collection: str, filters: Sequence[Any] = (), cause: Optional[BaseException] = None):
        self.collection = collection
        self.filters = tuple(filters)
        self.cause = cause
        super().__init__(
            f"Query on '{collection}' failed with {len(self.filters)} filter(s): {cause}"
        )
