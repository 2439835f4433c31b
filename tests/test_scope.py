"""
Tests for scope resolution: fail-closed lookups, stale-result discarding,
national reference loading and the SQL lookups themselves.
"""

import asyncio

import pytest
from sqlalchemy import create_engine

from visibility.appliers import EntityListQuery
from visibility.compiler import plan_query
from visibility.errors import ReferenceLookupFailed, ScopeLookupFailed
from visibility.filters import AnyOf
from visibility.models import CallerContext, EntityQuerySpec, VisibilityLevel, VisibilityScope
from visibility.rbac import resolve_policy
from visibility.registry import get_collection
from visibility.scope import ScopeResolver, SqlScopeLookups


# ── Helpers / Fakes ──────────────────────────────────────────────────

class FakeLookups:
    """Async lookups; scope lookups wait on a per-caller gate when gated."""
    def __init__(self, scopes=None, region_id="R-N", members=("M5", "M6"), gated=False):
        self.scopes = scopes or {}
        self.region_id = region_id
        self.members = members
        self.gated = gated
        self.gates = {}
        self.member_calls = 0
        self.scope_calls = 0
        self.scope_error = None
        self.members_error = None

    def gate(self, caller_id):
        return self.gates.setdefault(caller_id, asyncio.Event())

    async def lookup_scope(self, caller_id):
        self.scope_calls += 1
        if self.gated:
            await self.gate(caller_id).wait()
        if self.scope_error:
            raise self.scope_error
        return self.scopes.get(caller_id)

    async def lookup_region_id(self, code):
        return self.region_id

    async def lookup_region_members(self, region_id):
        self.member_calls += 1
        if self.members_error:
            raise self.members_error
        return frozenset(self.members)


_HOME_1 = VisibilityScope(home_jurisdiction_id="M1")
_HOME_2 = VisibilityScope(home_jurisdiction_id="M2")


# ── Tests: ScopeResolver ─────────────────────────────────────────────

def test_resolve_loads_scope_and_national_set():
    resolver = ScopeResolver(FakeLookups({"u1": _HOME_1}))
    scope = asyncio.run(resolver.resolve("u1"))
    assert scope == _HOME_1
    assert resolver.national_jurisdiction_ids == {"M5", "M6"}
    assert not resolver.is_loading
    assert resolver.last_error is None


def test_unknown_caller_has_no_scope():
    resolver = ScopeResolver(FakeLookups({}))
    assert asyncio.run(resolver.resolve("ghost")) is None


def test_no_caller_resolves_without_scope_lookup():
    lookups = FakeLookups(gated=True)
    resolver = ScopeResolver(lookups)
    assert asyncio.run(resolver.resolve(None)) is None
    assert lookups.gates == {}
    assert resolver.national_jurisdiction_ids == {"M5", "M6"}


def test_scope_lookup_failure_fails_closed(capsys):
    wide = VisibilityScope(is_national=True, sector_ids={"S1"}, home_jurisdiction_id="M1")
    lookups = FakeLookups({"u1": wide})
    lookups.scope_error = ScopeLookupFailed("u1", RuntimeError("db down"))
    resolver = ScopeResolver(lookups)

    policy = asyncio.run(resolve_policy(CallerContext(user_id="u1"), resolver))

    assert resolver.scope is None
    assert isinstance(resolver.last_error, ScopeLookupFailed)
    assert not resolver.is_loading
    assert policy.level == VisibilityLevel.PUBLIC
    assert "[WARN] [scope]" in capsys.readouterr().err

    plan = plan_query(policy, EntityQuerySpec(schema=get_collection("challenges")))
    for f in plan.filter_set():
        assert not isinstance(f, AnyOf)
        assert f.column not in {"sector_id", "municipality_id"}


def test_stale_result_is_discarded():
    async def scenario():
        lookups = FakeLookups({"u1": _HOME_1, "u2": _HOME_2}, gated=True)
        resolver = ScopeResolver(lookups)

        first = resolver.set_caller("u1")
        second = resolver.set_caller("u2")

        lookups.gate("u2").set()
        await second
        assert resolver.scope == _HOME_2

        # u1's lookup completes afterwards and must not overwrite u2's scope.
        lookups.gate("u1").set()
        await first
        assert resolver.caller_id == "u2"
        assert resolver.scope == _HOME_2
        resolver.close()

    asyncio.run(scenario())


def test_overlapping_resolutions_keep_their_own_scope():
    reviewer_scope = VisibilityScope(is_national=True, sector_ids={"S1"})

    async def scenario():
        lookups = FakeLookups({"reviewer": reviewer_scope}, gated=True)
        resolver = ScopeResolver(lookups)
        citizen = asyncio.ensure_future(resolve_policy(CallerContext(user_id="citizen"), resolver))
        await asyncio.sleep(0)
        reviewer = asyncio.ensure_future(resolve_policy(CallerContext(user_id="reviewer"), resolver))
        await asyncio.sleep(0)

        lookups.gate("reviewer").set()
        reviewer_policy = await reviewer
        lookups.gate("citizen").set()
        citizen_policy = await citizen
        return citizen_policy, reviewer_policy

    citizen_policy, reviewer_policy = asyncio.run(scenario())
    assert citizen_policy.level == VisibilityLevel.PUBLIC
    assert citizen_policy.sector_ids == frozenset()
    assert reviewer_policy.level == VisibilityLevel.SECTORAL
    assert reviewer_policy.sector_ids == {"S1"}


def test_superseded_resolve_returns_no_scope():
    async def scenario():
        lookups = FakeLookups({"u1": _HOME_1, "u2": _HOME_2}, gated=True)
        resolver = ScopeResolver(lookups)
        first = asyncio.ensure_future(resolver.resolve("u1"))
        await asyncio.sleep(0)
        resolver.set_caller("u2")
        lookups.gate("u1").set()
        lookups.gate("u2").set()
        return await first, await resolver.resolve("u2")

    assert asyncio.run(scenario()) == (None, _HOME_2)


def test_failed_scope_lookup_is_retried_for_same_caller():
    lookups = FakeLookups({"u1": _HOME_1})
    lookups.scope_error = ScopeLookupFailed("u1", RuntimeError("db down"))
    resolver = ScopeResolver(lookups)

    async def scenario():
        first = await resolver.resolve("u1")
        lookups.scope_error = None
        second = await resolver.resolve("u1")
        return first, second

    assert asyncio.run(scenario()) == (None, _HOME_1)
    assert lookups.scope_calls == 2


def test_failed_national_load_is_retried_for_same_caller():
    lookups = FakeLookups({"u1": _HOME_1})
    lookups.members_error = ReferenceLookupFailed("members", RuntimeError("timeout"))
    resolver = ScopeResolver(lookups)

    async def scenario():
        await resolver.resolve("u1")
        lookups.members_error = None
        await resolver.resolve("u1")

    asyncio.run(scenario())
    assert lookups.member_calls == 2
    assert resolver.national_jurisdiction_ids == {"M5", "M6"}


def test_successful_resolution_is_reused():
    lookups = FakeLookups({"u1": _HOME_1})
    resolver = ScopeResolver(lookups)

    async def scenario():
        return await resolver.resolve("u1"), await resolver.resolve("u1")

    assert asyncio.run(scenario()) == (_HOME_1, _HOME_1)
    assert lookups.scope_calls == 1


def test_loading_flags_gate_queries_until_settled():
    async def scenario():
        lookups = FakeLookups({"u1": _HOME_1}, gated=True)
        resolver = ScopeResolver(lookups)
        task = resolver.set_caller("u1")
        assert resolver.scope_loading
        assert resolver.is_loading
        assert not EntityListQuery.enabled(resolver)

        lookups.gate("u1").set()
        await task
        assert not resolver.is_loading
        assert EntityListQuery.enabled(resolver)

    asyncio.run(scenario())


def test_set_caller_same_caller_reuses_task():
    async def scenario():
        resolver = ScopeResolver(FakeLookups({"u1": _HOME_1}))
        task = resolver.set_caller("u1")
        assert resolver.set_caller("u1") is task
        await task

    asyncio.run(scenario())


def test_close_discards_in_flight_result():
    async def scenario():
        lookups = FakeLookups({"u1": _HOME_1}, gated=True)
        resolver = ScopeResolver(lookups)
        task = resolver.set_caller("u1")
        resolver.close()
        lookups.gate("u1").set()
        await asyncio.gather(task, return_exceptions=True)

        assert resolver.scope is None
        assert not resolver.is_loading
        with pytest.raises(RuntimeError):
            resolver.set_caller("u2")

    asyncio.run(scenario())


def test_national_failure_narrows_and_is_retried(capsys):
    lookups = FakeLookups({"u1": _HOME_1})
    lookups.members_error = ReferenceLookupFailed("members", RuntimeError("timeout"))
    resolver = ScopeResolver(lookups)

    policy = asyncio.run(resolve_policy(CallerContext(user_id="u1"), resolver))
    assert policy.level == VisibilityLevel.GEOGRAPHIC
    assert policy.national_jurisdiction_ids == frozenset()
    assert "national jurisdiction lookup failed" in capsys.readouterr().err

    lookups.members_error = None
    asyncio.run(resolver.resolve("u2"))
    assert lookups.member_calls == 2
    assert resolver.national_jurisdiction_ids == {"M5", "M6"}


def test_national_set_is_loaded_once():
    lookups = FakeLookups({"u1": _HOME_1, "u2": _HOME_2})
    resolver = ScopeResolver(lookups)
    asyncio.run(resolver.resolve("u1"))
    asyncio.run(resolver.resolve("u2"))
    assert lookups.member_calls == 1


def test_missing_national_region_gives_empty_set():
    lookups = FakeLookups({"u1": _HOME_1}, region_id=None)
    resolver = ScopeResolver(lookups)
    asyncio.run(resolver.resolve("u1"))
    assert resolver.national_jurisdiction_ids == frozenset()
    assert lookups.member_calls == 0


# ── Tests: SqlScopeLookups ───────────────────────────────────────────

@pytest.fixture
def seeded(engine, insert_rows):
    insert_rows("regions", [
        {"id": "R-N", "code": "NATIONAL", "name_en": "National"},
        {"id": "R-E", "code": "EAST", "name_en": "East"},
    ])
    insert_rows("municipalities", [
        {"id": "M1", "region_id": "R-E"},
        {"id": "M5", "region_id": "R-N"},
        {"id": "M6", "region_id": "R-N"},
    ])
    insert_rows("user_visibility_scopes", [
        {"user_id": "u1", "is_national": False, "sector_ids": [], "home_municipality_id": "M1"},
        {"user_id": "u2", "is_national": True, "sector_ids": ["S1", "S2"], "home_municipality_id": None},
    ])
    return SqlScopeLookups(engine)


def test_sql_lookup_scope(seeded):
    assert seeded.lookup_scope("u1") == VisibilityScope(home_jurisdiction_id="M1")
    national = seeded.lookup_scope("u2")
    assert national.is_national
    assert national.sector_ids == {"S1", "S2"}
    assert seeded.lookup_scope("nobody") is None


def test_sql_lookup_region_members(seeded):
    region_id = seeded.lookup_region_id("NATIONAL")
    assert region_id == "R-N"
    assert seeded.lookup_region_members(region_id) == {"M5", "M6"}
    assert seeded.lookup_region_id("MISSING") is None


def test_sql_lookups_wrap_database_errors(tmp_path):
    empty = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    lookups = SqlScopeLookups(empty)
    with pytest.raises(ScopeLookupFailed):
        lookups.lookup_scope("u1")
    with pytest.raises(ReferenceLookupFailed):
        lookups.lookup_region_id("NATIONAL")
    with pytest.raises(ReferenceLookupFailed):
        lookups.lookup_region_members("R-N")
    empty.dispose()


def test_resolver_with_sql_lookups(seeded):
    resolver = ScopeResolver(seeded)
    scope = asyncio.run(resolver.resolve("u1"))
    assert scope.home_jurisdiction_id == "M1"
    assert resolver.national_jurisdiction_ids == {"M5", "M6"}
