"""
Interactive CLI for browsing collections at the caller's visibility level.
"""

import asyncio

import pandas as pd

from visibility.appliers import EntityListQuery, fetch_entities
from visibility.config import MAX_PREVIEW_ROWS
from visibility.database import init_engine
from visibility.errors import QueryFailed
from visibility.rbac import load_caller_context, resolve_policy
from visibility.registry import collection_names
from visibility.scope import ScopeResolver, SqlScopeLookups
from visibility.store import SqlStore


def parse_command(line: str):
    """"challenges 2" -> ("challenges", 2); page defaults to 1."""
    parts = line.split()
    name = parts[0]
    page = int(parts[1]) if len(parts) > 1 else 1
    return name, page


def main():
    print("=== Visibility Scoping Engine: collection browser ===\n")

    engine = init_engine()
    store = SqlStore(engine)

    # ── Login ────────────────────────────────────────────────────────
    try:
        api_key = input("Enter access key (or 'quit'): ").strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return

    if not api_key or api_key.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return

    try:
        caller = load_caller_context(engine, api_key)
        policy = asyncio.run(resolve_policy(caller, ScopeResolver(SqlScopeLookups(engine))))
    except Exception as e:
        print("\n[ERROR] Login failed.")
        print("Details:", e)
        return

    print(f"\n[auth] Logged in as: {caller.display_name} (roles={', '.join(sorted(caller.roles)) or '-'})")
    print(f"[auth] Visibility level: {policy.level.value}")

    # ── REPL ─────────────────────────────────────────────────────────
    while True:
        try:
            line = input("\nCollection [page] ('list' or 'quit'): ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        if not line:
            continue
        if line.lower() in {"quit", "exit"}:
            print("Goodbye.")
            break
        if line.lower() == "list":
            print("\n".join(collection_names()))
            continue

        try:
            name, page_no = parse_command(line)
            query = EntityListQuery(name, page=page_no, page_size=MAX_PREVIEW_ROWS)
        except ValueError as e:
            print("\n[ERROR]", e)
            continue

        try:
            page = asyncio.run(fetch_entities(store, policy, query))
        except QueryFailed as e:
            print("\n[DB ERROR] Database error while running the query.")
            print("Details:", e)
            continue

        print(f"\n[{name}] page {page.page}/{page.total_pages or 1}, {page.count} visible row(s)")
        df = pd.DataFrame(page.data)
        if df.empty:
            print("(no rows returned)")
        else:
            print(df.to_string(index=False))


if __name__ == "__main__":
    main()
