"""
Flask route handlers for the REST API.
"""

import asyncio
import sys
import traceback
from datetime import datetime, timedelta

from flask import request, jsonify

from visibility.appliers import EntityListQuery, equality_filters, fetch_entities
from visibility.cache import ResultCache
from visibility.config import DEFAULT_PAGE_SIZE, TOKEN_EXPIRY_HOURS
from visibility.database import check_collection_schemas
from visibility.errors import QueryFailed
from visibility.filters import SortKey
from visibility.rbac import load_caller_context, resolve_policy
from visibility.registry import collection_names, get_collection
from visibility.scope import ScopeResolver, SqlScopeLookups
from visibility.store import SqlStore
from visibility.strategic import StrategicFilter
from visibility.api.auth import (
    sessions,
    generate_token,
    token_required,
)


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer") from None


def _list_arg(name: str):
    raw = request.args.get(name, "")
    return tuple(p.strip() for p in raw.split(",") if p.strip())


def _list_query_from_request(name: str, strategic=None) -> EntityListQuery:
    schema = get_collection(name)
    # Plain equality filters; an array sector column cannot be matched by equality.
    pairs = [
        (schema.status_column, "status"),
        (None if schema.sector_is_array else schema.sector_column, "sector_id"),
        (schema.jurisdiction_column, "municipality_id"),
    ]
    equals = {column: request.args.get(param) or None for column, param in pairs if column}

    sort = None
    if request.args.get("sort"):
        sort = tuple(SortKey.parse(s) for s in request.args["sort"].split(","))

    return EntityListQuery(
        name,
        filters=equality_filters(equals),
        sort=sort,
        page=_int_arg("page", 1),
        page_size=_int_arg("page_size", DEFAULT_PAGE_SIZE),
        strategic=strategic,
    )


def _page_json(page):
    return {
        "success": True,
        "level": page.level,
        "data": page.data,
        "count": page.count,
        "page": page.page,
        "page_size": page.page_size,
        "total_pages": page.total_pages,
    }


def register_routes(app, engine, store=None, cache=None):
    """Register all API routes on the Flask *app*."""
    store = store or SqlStore(engine)
    cache = cache if cache is not None else ResultCache()
    lookups = SqlScopeLookups(engine)

    def run_list(name, strategic=None):
        session_data = request.session_data
        session_data["last_activity"] = datetime.utcnow()
        try:
            query = _list_query_from_request(name, strategic)
            page = asyncio.run(fetch_entities(store, session_data["policy"], query, cache))
            return jsonify(_page_json(page)), 200
        except ValueError as e:
            return jsonify({"success": False, "error": str(e)}), 400
        except QueryFailed as e:
            print(f"[ERROR] {e}", file=sys.stderr)
            return jsonify({
                "success": False,
                "error": "Query execution failed",
                "collection": e.collection,
            }), 502

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Visibility Scoping API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "auth": "/api/auth/login",
                "collections": "/api/collections",
                "profile": "/api/user/profile",
                "logout": "/api/auth/logout",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        from sqlalchemy import text as sa_text

        checks = {"database": False, "schema": False}
        problems = []
        try:
            with engine.connect() as conn:
                conn.execute(sa_text("SELECT 1"))
            checks["database"] = True
            problems = check_collection_schemas(engine)
            checks["schema"] = not problems
        except Exception as e:
            print(f"[WARN] Health check failed: {e}", file=sys.stderr)

        all_healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
            "schema_problems": problems,
            "active_sessions": len(sessions),
            "cached_results": len(cache),
        }), 200 if all_healthy else 503

    # ── Auth ─────────────────────────────────────────────────────────

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        if not request.is_json:
            return jsonify({"error": "Content-Type must be application/json"}), 400

        data = request.json
        api_key = data.get("api_key", "").strip()
        if not api_key:
            return jsonify({"error": "api_key is required"}), 400

        try:
            caller = load_caller_context(engine, api_key)
            policy = asyncio.run(resolve_policy(caller, ScopeResolver(lookups)))
            token = generate_token(caller)

            sessions[token] = {
                "caller": caller,
                "policy": policy,
                "created_at": datetime.utcnow(),
                "last_activity": datetime.utcnow(),
            }

            return jsonify({
                "success": True,
                "token": token,
                "user": {
                    "id": caller.user_id,
                    "display_name": caller.display_name,
                    "roles": sorted(caller.roles),
                },
                "policy": {
                    "level": policy.level.value,
                    "has_full_visibility": policy.has_full_visibility,
                },
                "expires_at": (datetime.utcnow() + timedelta(hours=TOKEN_EXPIRY_HOURS)).isoformat(),
            }), 200

        except ValueError as e:
            return jsonify({"error": f"Authentication failed: {str(e)}"}), 401
        except Exception as e:
            print(f"[ERROR] Login error: {e}", file=sys.stderr)
            traceback.print_exc()
            return jsonify({"error": "Internal server error during login"}), 500

    @app.route("/api/auth/logout", methods=["POST"])
    @token_required
    def logout():
        token = request.token
        if token in sessions:
            del sessions[token]
        return jsonify({"success": True, "message": "Logged out successfully"}), 200

    # ── Collections ──────────────────────────────────────────────────

    @app.route("/api/collections", methods=["GET"])
    @token_required
    def list_collections():
        return jsonify({"success": True, "collections": collection_names()}), 200

    @app.route("/api/collections/<name>", methods=["GET"])
    @token_required
    def list_entities(name):
        return run_list(name)

    @app.route("/api/collections/<name>/strategic", methods=["GET"])
    @token_required
    def list_strategic_entities(name):
        strategic = StrategicFilter(
            plan_ids=_list_arg("plan_ids"),
            objective_ids=_list_arg("objective_ids"),
            derived_only=request.args.get("derived_only", "").lower() in {"1", "true", "yes"},
        )
        return run_list(name, strategic)

    # ── Profile ──────────────────────────────────────────────────────

    @app.route("/api/user/profile", methods=["GET"])
    @token_required
    def get_profile():
        session_data = request.session_data
        caller = session_data["caller"]
        policy = session_data["policy"]
        return jsonify({
            "success": True,
            "user": {
                "id": caller.user_id,
                "display_name": caller.display_name,
                "roles": sorted(caller.roles),
                "permissions": sorted(caller.permissions),
            },
            "policy": {
                "level": policy.level.value,
                "is_national": policy.is_national,
                "sector_ids": sorted(policy.sector_ids, key=str),
                "home_jurisdiction_id": policy.home_jurisdiction_id,
            },
            "session": {
                "created_at": session_data["created_at"].isoformat(),
                "last_activity": session_data["last_activity"].isoformat(),
            },
        }), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({"error": "Internal server error", "message": str(e)}), 500
