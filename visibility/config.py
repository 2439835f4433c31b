"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ── Roles / permissions ──────────────────────────────────────────────
ADMIN_ROLE = "admin"
NATIONAL_REVIEWER_ROLES = {"deputyship_admin", "deputyship_staff"}

PERM_ALL_JURISDICTIONS = "visibility_all_municipalities"
PERM_ALL_SECTORS = "visibility_all_sectors"

# ── Reference data ───────────────────────────────────────────────────
NATIONAL_REGION_CODE = "NATIONAL"

# Statuses a collection without a publish flag may expose to the public.
PUBLIC_STATUSES = ("published", "active", "approved", "completed")

# ── Pagination ───────────────────────────────────────────────────────
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200
MAX_PREVIEW_ROWS = 20

# ── Result cache (seconds) ───────────────────────────────────────────
DEFAULT_CACHE_TTL = 300
CACHE_MAX_ENTRIES = 2000
CACHE_TTL_SECONDS = {
    "budgets": 60,
    "contracts": 60,
    "events": 120,
    "challenges": 300,
    "pilots": 300,
    "strategic_plans": 600,
    "knowledge_documents": 900,
}

# ── API server ───────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
TOKEN_EXPIRY_HOURS = 24


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value


def cache_ttl(collection: str) -> int:
    """Staleness window for cached results of *collection*."""
    return CACHE_TTL_SECONDS.get(collection, DEFAULT_CACHE_TTL)
