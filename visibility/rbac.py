"""
Role-Based Access Control – loading caller context and building visibility policies.
"""

from typing import Any, Iterable, Optional

from sqlalchemy import text

from visibility.config import PERM_ALL_JURISDICTIONS, PERM_ALL_SECTORS
from visibility.models import (
    CallerContext,
    VisibilityLevel,
    VisibilityPolicy,
    VisibilityScope,
)


def load_caller_context(engine, api_key: str) -> CallerContext:
    """Look up a user by API key and return their CallerContext."""
    user_sql = text("""
        SELECT id, display_name
        FROM portal_users
        WHERE api_key = :k AND is_active = :active
    """)
    roles_sql = text("SELECT role FROM user_roles WHERE user_id = :uid")
    perms_sql = text("SELECT permission FROM user_permissions WHERE user_id = :uid")

    with engine.connect() as conn:
        row = conn.execute(user_sql, {"k": api_key, "active": True}).mappings().first()
        if not row:
            raise ValueError("Invalid key or user inactive (no match in portal_users).")
        roles = conn.execute(roles_sql, {"uid": row["id"]}).scalars().all()
        permissions = conn.execute(perms_sql, {"uid": row["id"]}).scalars().all()

    return CallerContext(
        user_id=row["id"],
        display_name=str(row["display_name"]),
        roles=frozenset(str(r).strip().lower() for r in roles),
        permissions=frozenset(str(p).strip().lower() for p in permissions),
    )


def build_policy(
    caller: CallerContext,
    scope: Optional[VisibilityScope],
    national_jurisdiction_ids: Iterable[Any] = (),
) -> VisibilityPolicy:
    """
    Derive a VisibilityPolicy. Precedence: global > sectoral > geographic > public.

    A missing scope (no caller, lookup failed) contributes nothing, so the
    caller falls through to whatever their role flags alone allow.
    """
    national = frozenset(national_jurisdiction_ids)
    is_national = bool(scope and scope.is_national)
    sector_ids = scope.sector_ids if scope else frozenset()
    home = scope.home_jurisdiction_id if scope else None

    if (
        caller.is_admin
        or caller.has_permission(PERM_ALL_JURISDICTIONS)
        or caller.has_permission(PERM_ALL_SECTORS)
    ):
        level = VisibilityLevel.GLOBAL
    elif caller.is_national_reviewer or is_national:
        level = VisibilityLevel.SECTORAL
    elif home is not None:
        level = VisibilityLevel.GEOGRAPHIC
    else:
        level = VisibilityLevel.PUBLIC

    return VisibilityPolicy(
        level=level,
        has_full_visibility=level == VisibilityLevel.GLOBAL,
        is_national=is_national,
        sector_ids=sector_ids,
        home_jurisdiction_id=home,
        national_jurisdiction_ids=national,
    )


async def resolve_policy(caller: Optional[CallerContext], resolver) -> VisibilityPolicy:
    """Resolve the caller's scope through *resolver* and build their policy."""
    if caller is None:
        caller = CallerContext(user_id=None)
    scope = await resolver.resolve(caller.user_id)
    return build_policy(caller, scope, resolver.national_jurisdiction_ids)
