#!/usr/bin/env python3
"""
Seed a demo database with reference data, users and collection rows.
Usage: DB_URI=sqlite:///demo.db python scripts/seed_demo_data.py
"""

import os
import random
import uuid
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy import create_engine

from generate_api_key import generate_api_key
from visibility.demo_schema import create_demo_schema
from visibility.models import DeletedSemantics
from visibility.registry import COLLECTIONS

# --------------------------------------------------------------------
# CONFIG
# --------------------------------------------------------------------
DB_URI = os.getenv("DB_URI", "sqlite:///demo.db")

NUM_REGIONS = 4
MUNICIPALITIES_PER_REGION = 4
NUM_SECTORS = 5
ROWS_PER_COLLECTION = 40
NUM_PLANS = 3

STATUSES = ["draft", "active", "approved", "completed", "archived", "published"]

fake = Faker()
random.seed(42)
Faker.seed(42)


# --------------------------------------------------------------------
# HELPERS
# --------------------------------------------------------------------
def new_id(prefix):
    return f"{prefix}-{uuid.UUID(int=random.getrandbits(128)).hex[:8]}"


def random_bool(p_true=0.5):
    return random.random() < p_true


def random_datetime_within(days_back=365, days_forward=0):
    now = datetime.utcnow()
    delta = timedelta(days=random.randint(-days_forward, days_back), seconds=random.randint(0, 86400))
    return now - delta


# --------------------------------------------------------------------
# SEED FUNCTIONS
# --------------------------------------------------------------------
def seed_reference(conn, tables):
    regions = [{"id": "R-NATIONAL", "code": "NATIONAL", "name_en": "National"}]
    for _ in range(NUM_REGIONS - 1):
        regions.append({"id": new_id("R"), "code": fake.unique.lexify("REG-????").upper(),
                        "name_en": fake.state()})
    conn.execute(tables["regions"].insert(), regions)

    municipalities = []
    for region in regions:
        for _ in range(MUNICIPALITIES_PER_REGION):
            municipalities.append({"id": new_id("M"), "region_id": region["id"],
                                   "name_en": fake.city(), "is_deleted": False})
    conn.execute(tables["municipalities"].insert(), municipalities)
    return regions, [m["id"] for m in municipalities]


def seed_users(conn, tables, municipality_ids, sector_ids):
    profiles = [
        ("System Admin", ["admin"], [], None),
        ("Deputyship Reviewer", ["deputyship_staff"], [], {"is_national": True, "sectors": sector_ids[:2]}),
        ("Municipality Staff", ["municipality_staff"], [], {"home": municipality_ids[-1]}),
        ("Data Steward", ["municipality_staff"], ["visibility_all_sectors"], {"home": municipality_ids[-2]}),
        ("Citizen", ["citizen"], [], None),
    ]
    keys = []
    for display_name, roles, permissions, scope in profiles:
        user_id = new_id("U")
        api_key = generate_api_key(prefix="vis")
        conn.execute(tables["portal_users"].insert(), [{
            "id": user_id, "display_name": display_name, "api_key": api_key, "is_active": True,
        }])
        if roles:
            conn.execute(tables["user_roles"].insert(), [{"user_id": user_id, "role": r} for r in roles])
        if permissions:
            conn.execute(tables["user_permissions"].insert(),
                         [{"user_id": user_id, "permission": p} for p in permissions])
        if scope:
            conn.execute(tables["user_visibility_scopes"].insert(), [{
                "user_id": user_id,
                "is_national": scope.get("is_national", False),
                "sector_ids": scope.get("sectors", []),
                "home_municipality_id": scope.get("home"),
            }])
        keys.append((display_name, api_key))
    return keys


def seed_collection(conn, table, schema, municipality_ids, sector_ids, plan_ids):
    rows = []
    for _ in range(ROWS_PER_COLLECTION):
        row = {c.name: None for c in table.columns}
        row[schema.id_column] = new_id(schema.name[:3].upper())
        row["title"] = fake.catch_phrase()
        row["created_at"] = random_datetime_within()
        if "start_date" in row:
            row["start_date"] = random_datetime_within(days_back=120, days_forward=120)
        if "end_date" in row:
            row["end_date"] = (row.get("start_date") or datetime.utcnow()) + timedelta(days=random.randint(30, 365))
        if "publish_date" in row:
            row["publish_date"] = random_datetime_within()
        if "fiscal_year" in row:
            row["fiscal_year"] = random.choice([2024, 2025, 2026])
        if schema.jurisdiction_column:
            row[schema.jurisdiction_column] = random.choice(municipality_ids)
        if schema.sector_column:
            if schema.sector_is_array:
                row[schema.sector_column] = random.sample(sector_ids, k=random.randint(1, 2))
            else:
                row[schema.sector_column] = random.choice(sector_ids)
        if schema.published_column:
            row[schema.published_column] = random_bool(0.6)
        if schema.status_column:
            row[schema.status_column] = random.choice(STATUSES)
        if schema.deleted_column:
            if schema.deleted_semantics == DeletedSemantics.NULL_OR_FALSE:
                row[schema.deleted_column] = random.choice([False, False, False, True, None])
            else:
                row[schema.deleted_column] = random_bool(0.15)
        if schema.strategic_plan_column:
            row[schema.strategic_plan_column] = random.sample(plan_ids, k=random.randint(0, 2))
        if schema.strategic_objective_column:
            row[schema.strategic_objective_column] = [f"OBJ-{random.randint(1, 6)}"]
        if schema.strategy_derived_column:
            row[schema.strategy_derived_column] = random_bool(0.3)
        rows.append(row)
    conn.execute(table.insert(), rows)


# --------------------------------------------------------------------
# MAIN
# --------------------------------------------------------------------
def main():
    engine = create_engine(DB_URI)
    metadata = create_demo_schema(engine)
    tables = metadata.tables

    sector_ids = [f"SEC-{i}" for i in range(1, NUM_SECTORS + 1)]
    plan_ids = [f"PLAN-{i}" for i in range(1, NUM_PLANS + 1)]

    with engine.begin() as conn:
        _, municipality_ids = seed_reference(conn, tables)
        keys = seed_users(conn, tables, municipality_ids, sector_ids)
        for name, schema in sorted(COLLECTIONS.items()):
            seed_collection(conn, tables[name], schema, municipality_ids, sector_ids, plan_ids)
            print(f"[seed] {name}: {ROWS_PER_COLLECTION} rows")

    print("\nDemo users:")
    for display_name, api_key in keys:
        print(f"  - {display_name:<22} {api_key}")
    print(f"\nDatabase ready at {DB_URI}")


if __name__ == "__main__":
    main()
