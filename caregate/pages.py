"""
Page components for the built-in routes.

Each component takes a ``RenderContext`` and returns a JSON-serializable
page payload. Table-backed pages read through the search builder and fall
back to an empty listing when no database is configured.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
import logging

from .identity.auth import dev_mode_enabled
from .routing.generator import RenderContext
from .search.models import FilterOperator, SearchConfig, SearchFilter

logger = logging.getLogger(__name__)


def _int_param(ctx: RenderContext, name: str, default: int, lo: int, hi: int) -> int:
    raw = ctx.request.query_params.get(name)
    if raw is None:
        return default
    try:
        return max(lo, min(hi, int(raw)))
    except ValueError:
        return default


async def _table_page(
    ctx: RenderContext,
    table_name: str,
    filters: Optional[List[SearchFilter]] = None,
) -> Dict[str, Any]:
    app = ctx.app
    if app.search is None:
        logger.debug("No search backend; %s page renders empty", table_name)
        return {"table": table_name, "available": False, "items": [], "count": 0}

    base = app.search_manager.get_config(table_name) or SearchConfig(
        table_name=table_name, limit=app.search_manager.default_limit
    )
    limit = _int_param(ctx, "limit", base.limit, 1, 1000)
    page = _int_param(ctx, "page", 1, 1, 1_000_000)
    filters = list(base.filters) + list(filters or [])

    if ctx.route.tenant_scoped and not ctx.route.cross_tenant and ctx.user:
        if ctx.user.facility_id and await app.search.catalog.has_column(
            table_name, "facility_id"
        ):
            filters.append(SearchFilter(field="facility_id", value=ctx.user.facility_id))

    config = base.model_copy(
        update={"filters": filters, "limit": limit, "offset": (page - 1) * limit}
    )
    term = ctx.request.query_params.get("q")
    if term:
        result = await app.search.execute_full_text_search(table_name, term, config)
    else:
        result = await app.search.execute_search(config)
    return {
        "table": table_name,
        "available": True,
        "items": result.data,
        "count": result.count,
        "page": result.current_page,
        "total_pages": result.total_pages,
        "has_more": result.has_more,
    }


async def dashboard(ctx: RenderContext) -> Dict[str, Any]:
    registry = ctx.app.routes
    groups = registry.get_navigation_items(context=ctx.user)
    return {
        "welcome": ctx.user.user_id if ctx.user else None,
        "facility_id": ctx.user.facility_id if ctx.user else None,
        "sections": [g.model_dump(mode="json") for g in groups],
    }


async def login(ctx: RenderContext) -> Dict[str, Any]:
    return {"providers": ["password"], "dev_login": dev_mode_enabled()}


async def users(ctx: RenderContext) -> Dict[str, Any]:
    return await _table_page(ctx, "profiles")


async def patients(ctx: RenderContext) -> Dict[str, Any]:
    return await _table_page(
        ctx,
        "profiles",
        [SearchFilter(field="profile_type", operator=FilterOperator.EQ, value="patient")],
    )


async def facilities(ctx: RenderContext) -> Dict[str, Any]:
    return await _table_page(ctx, "facilities")


async def onboarding(ctx: RenderContext) -> Dict[str, Any]:
    return await _table_page(
        ctx,
        "facilities",
        [SearchFilter(field="is_active", operator=FilterOperator.EQ, value=False)],
    )


async def onboarding_detail(ctx: RenderContext) -> Dict[str, Any]:
    case_id = ctx.params.get("id")
    page = await _table_page(
        ctx, "facilities", [SearchFilter(field="id", value=case_id)]
    )
    return {"id": case_id, "case": (page["items"] or [None])[0]}


async def modules(ctx: RenderContext) -> Dict[str, Any]:
    listed = await ctx.app.modules.list_modules()
    return {
        "modules": [
            {
                "name": m.name,
                "table_name": m.table_name,
                "description": m.description,
                "route": m.route,
            }
            for m in listed
        ]
    }


async def api_services(ctx: RenderContext) -> Dict[str, Any]:
    internal = await _table_page(ctx, "api_integration_registry")
    external = await _table_page(ctx, "external_api_registry")
    return {"internal": internal, "external": external}


async def security(ctx: RenderContext) -> Dict[str, Any]:
    events = await ctx.app.audit.list_events(limit=20)
    denied = [e for e in events["items"] if e.get("category") == "security"]
    return {"recent_security_events": denied}


async def reports(ctx: RenderContext) -> Dict[str, Any]:
    stats = ctx.app.routes.get_stats()
    return {
        "facility_id": ctx.user.facility_id if ctx.user else None,
        "routes": stats.model_dump(),
        "search_configs": len(ctx.app.search_manager.list_configs()),
    }


async def testing(ctx: RenderContext) -> Dict[str, Any]:
    return await _table_page(ctx, "comprehensive_test_cases")


async def role_management(ctx: RenderContext) -> Dict[str, Any]:
    return await _table_page(ctx, "roles")


async def profile(ctx: RenderContext) -> Dict[str, Any]:
    user = ctx.user
    return {
        "user_id": user.user_id if user else None,
        "roles": sorted(user.roles) if user else [],
        "permissions": sorted(user.permissions) if user else [],
        "facility_id": user.facility_id if user else None,
    }


async def settings(ctx: RenderContext) -> Dict[str, Any]:
    return {"settings": await ctx.app.config.get_all(reveal=False)}
