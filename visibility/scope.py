"""
Scope resolution – loading a caller's visibility scope and the national
jurisdiction reference set.

Lookups that fail never widen access: a failed scope lookup yields no scope,
a failed reference lookup yields an empty national set.
"""

import asyncio
import json
import sys
from typing import Any, FrozenSet, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from visibility.config import NATIONAL_REGION_CODE
from visibility.errors import ReferenceLookupFailed, ScopeLookupFailed
from visibility.models import VisibilityScope


# ── SQL lookups ──────────────────────────────────────────────────────

def _parse_id_list(raw) -> FrozenSet[Any]:
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        raw = json.loads(raw) if raw.strip() else []
    return frozenset(raw)


class SqlScopeLookups:
    """Scope and reference lookups against the relational store."""

    def __init__(self, engine):
        self.engine = engine

    def lookup_scope(self, caller_id) -> Optional[VisibilityScope]:
        sql = text("""
            SELECT is_national, sector_ids, home_municipality_id
            FROM user_visibility_scopes
            WHERE user_id = :uid
        """)
        try:
            with self.engine.connect() as conn:
                row = conn.execute(sql, {"uid": caller_id}).mappings().first()
        except SQLAlchemyError as e:
            raise ScopeLookupFailed(caller_id, e) from e

        if not row:
            return None
        try:
            sector_ids = _parse_id_list(row["sector_ids"])
        except (TypeError, ValueError) as e:
            raise ScopeLookupFailed(caller_id, e) from e
        return VisibilityScope(
            is_national=bool(row["is_national"]),
            sector_ids=sector_ids,
            home_jurisdiction_id=row["home_municipality_id"],
        )

    def lookup_region_id(self, code: str):
        sql = text("SELECT id FROM regions WHERE code = :code")
        try:
            with self.engine.connect() as conn:
                return conn.execute(sql, {"code": code}).scalar()
        except SQLAlchemyError as e:
            raise ReferenceLookupFailed(f"region {code}", e) from e

    def lookup_region_members(self, region_id) -> FrozenSet[Any]:
        sql = text("SELECT id FROM municipalities WHERE region_id = :rid")
        try:
            with self.engine.connect() as conn:
                return frozenset(conn.execute(sql, {"rid": region_id}).scalars().all())
        except SQLAlchemyError as e:
            raise ReferenceLookupFailed(f"members of region {region_id}", e) from e


# ── Resolver ─────────────────────────────────────────────────────────

async def _call(fn, *args):
    """Await coroutine lookups; run blocking ones in a worker thread."""
    if asyncio.iscoroutinefunction(fn):
        return await fn(*args)
    return await asyncio.to_thread(fn, *args)


def _warn(message: str) -> None:
    print(f"[WARN] [scope] {message}", file=sys.stderr)


class ScopeResolver:
    """
    Holds the current caller's scope and the national jurisdiction set.

    ``set_caller`` starts a resolution; a later ``set_caller`` or ``close``
    makes any in-flight result stale. Every commit checks the generation it
    was started under, so a stale result never overwrites a newer one.
    """

    def __init__(self, lookups, national_region_code: str = NATIONAL_REGION_CODE):
        self._lookups = lookups
        self._region_code = national_region_code
        self._generation = 0
        self._closed = False
        self._task: Optional[asyncio.Task] = None
        self._national_task: Optional[asyncio.Task] = None
        self._national_ids: Optional[FrozenSet[Any]] = None

        self.caller_id = None
        self.scope: Optional[VisibilityScope] = None
        self.scope_loading = False
        self.region_loading = False
        self.members_loading = False
        self.last_error: Optional[Exception] = None

    # ── State ────────────────────────────────────────────────────────

    @property
    def is_loading(self) -> bool:
        return self.scope_loading or self.region_loading or self.members_loading

    @property
    def national_jurisdiction_ids(self) -> FrozenSet[Any]:
        return self._national_ids or frozenset()

    # ── Control ──────────────────────────────────────────────────────

    def set_caller(self, caller_id) -> Optional[asyncio.Task]:
        """Switch to *caller_id*; returns the resolution task (None if no caller)."""
        if self._closed:
            raise RuntimeError("ScopeResolver is closed.")
        if self._reusable(caller_id):
            return self._task

        # The previous task may still finish; its generation no longer matches.
        self._generation += 1
        self.caller_id = caller_id
        self.scope = None
        self.last_error = None

        if caller_id is None:
            self.scope_loading = False
            self._task = None
            return None

        self.scope_loading = True
        self._task = asyncio.ensure_future(self._load(self._generation, caller_id))
        return self._task

    def _reusable(self, caller_id) -> bool:
        """The current task still answers for *caller_id*: running, or finished cleanly."""
        if caller_id != self.caller_id or self._task is None:
            return False
        if not self._task.done():
            return True
        return self.last_error is None and self._national_ids is not None

    async def resolve(self, caller_id) -> Optional[VisibilityScope]:
        """
        Resolve *caller_id* and wait until every sub-load has settled.

        Returns the scope looked up for *caller_id* itself. If another caller
        was set while waiting, the answer is None.
        """
        task = self.set_caller(caller_id)
        generation = self._generation
        if task is None:
            if self._national_ids is None:
                await self._ensure_national()
            return None

        scope = await task
        if generation != self._generation:
            return None  # superseded
        return scope

    def close(self) -> None:
        """Teardown: nothing in flight may commit after this."""
        self._closed = True
        self._generation += 1
        for task in (self._task, self._national_task):
            if task is not None and not task.done():
                task.cancel()
        self.scope_loading = self.region_loading = self.members_loading = False

    # ── Loading ──────────────────────────────────────────────────────

    async def _load(self, generation: int, caller_id) -> Optional[VisibilityScope]:
        scope, _ = await asyncio.gather(
            self._load_scope(generation, caller_id),
            self._ensure_national(),
        )
        return scope

    async def _load_scope(self, generation: int, caller_id) -> Optional[VisibilityScope]:
        error = None
        try:
            scope = await _call(self._lookups.lookup_scope, caller_id)
        except Exception as e:
            _warn(f"scope lookup for caller {caller_id!r} failed: {e}")
            scope, error = None, e

        if generation != self._generation:
            return None  # stale
        self.scope = scope
        self.last_error = error
        self.scope_loading = False
        return scope

    async def _ensure_national(self) -> None:
        if self._national_ids is not None:
            return
        if self._national_task is None or self._national_task.done():
            self._national_task = asyncio.ensure_future(self._load_national())
        await asyncio.shield(self._national_task)

    async def _load_national(self) -> None:
        self.region_loading = True
        self.members_loading = True
        members = frozenset()
        loaded = False
        try:
            region_id = await _call(self._lookups.lookup_region_id, self._region_code)
            if self._closed:
                return
            self.region_loading = False
            if region_id is not None:
                members = frozenset(await _call(self._lookups.lookup_region_members, region_id))
            else:
                _warn(f"no region with code {self._region_code!r}; national set is empty")
            loaded = True
        except Exception as e:
            _warn(f"national jurisdiction lookup failed: {e}")
        finally:
            if not self._closed:
                self.region_loading = False
                self.members_loading = False

        if self._closed:
            return
        if loaded:
            self._national_ids = members
        else:
            # Not cached: the next resolution retries.
            self._national_ids = None
