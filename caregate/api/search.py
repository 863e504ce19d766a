"""
Search endpoints over the module tables.

``POST /search/{table}`` runs a structured search whose unset fields fall
back to the table's stored config; ``GET /search/{table}?q=`` is the quick
full-text form.

Only module tables (or tables with a stored config) are searchable. A
module's table is open to whoever may open the module's route; tables
without a route need the admin role. Outside super admins, rows of tables
with a ``facility_id`` column are limited to the selected facility.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, List
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from ..audit.models import AuditCategory
from ..context import AppContext, get_context
from ..errors import (
    SearchError,
    SearchExecutionError,
    UnknownFieldError,
    UnknownTableError,
)
from ..identity.auth import get_current_user
from ..monitoring.metrics import route_access_denied_total
from ..routing.models import CLOSED_REASONS, AccessContext, AccessDecision
from ..search.builder import SearchQueryBuilder
from ..search.models import SearchConfig, SearchFilter
from .models import SearchRequest

logger = logging.getLogger(__name__)

search_router = APIRouter(prefix="/search", tags=["search"])

ROUTELESS_TABLE_ROLES = frozenset({"admin"})


def _builder(app: AppContext) -> SearchQueryBuilder:
    if app.search is None:
        raise HTTPException(status_code=503, detail="Search is not configured")
    return app.search


def _base_config(app: AppContext, table: str) -> SearchConfig:
    return app.search_manager.get_config(table) or SearchConfig(
        table_name=table, limit=app.search_manager.default_limit
    )


@contextmanager
def _search_errors():
    try:
        yield
    except UnknownTableError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnknownFieldError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SearchExecutionError as e:
        raise HTTPException(status_code=502, detail=f"Search backend failed: {e}")
    except SearchError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def table_access(app: AppContext, user: AccessContext, table: str) -> AccessDecision:
    """Decide whether ``user`` may search ``table``."""
    module = await app.modules.get_module(table)
    if module is None and app.search_manager.get_config(table) is None:
        return AccessDecision(False, "not_found")
    if module is not None and module.route:
        return app.routes.resolve(module.route, user)
    if user.is_super_admin:
        return AccessDecision(True, "super_admin")
    if user.roles & ROUTELESS_TABLE_ROLES:
        return AccessDecision(True, "granted")
    return AccessDecision(False, "role_required")


async def _authorize(app: AppContext, user: AccessContext, table: str) -> None:
    decision = await table_access(app, user, table)
    if decision.allowed:
        return
    if decision.reason in CLOSED_REASONS:
        raise HTTPException(status_code=404, detail=f"Unknown table: {table}")
    logger.info("Search on %s denied for %s: %s", table, user.user_id, decision.reason)
    await app.audit.log_event(
        event_type="search_access",
        category=AuditCategory.SECURITY,
        action="search",
        result="denied",
        description=f"Search on {table} denied",
        resource_type="table",
        resource_id=table,
        user_id=user.user_id,
        details={"reason": decision.reason},
    )
    route_access_denied_total.labels(
        route=f"/search/{table}", reason=decision.reason
    ).inc()
    raise HTTPException(status_code=403, detail=f"Forbidden: {decision.reason}")


async def _tenant_filters(
    builder: SearchQueryBuilder, user: AccessContext, table: str
) -> List[SearchFilter]:
    if user.is_super_admin or not await builder.catalog.has_column(table, "facility_id"):
        return []
    if not user.facility_id:
        raise HTTPException(status_code=403, detail="Forbidden: facility_context_required")
    return [SearchFilter(field="facility_id", value=user.facility_id)]


@search_router.get("/configs")
async def list_search_configs(
    user: AccessContext = Depends(get_current_user),
    app: AppContext = Depends(get_context),
):
    visible = []
    for config in app.search_manager.list_configs():
        if (await table_access(app, user, config.table_name)).allowed:
            visible.append(config.model_dump(mode="json"))
    return {"configs": visible}


@search_router.post("/{table}")
async def search_table(
    table: str,
    payload: SearchRequest,
    user: AccessContext = Depends(get_current_user),
    app: AppContext = Depends(get_context),
):
    builder = _builder(app)
    await _authorize(app, user, table)
    overrides: Dict[str, Any] = payload.model_dump(
        exclude={"term", "match_all", "filters", "where"}, exclude_none=True
    )
    if payload.where is not None:
        overrides["where"] = payload.where
    base = _base_config(app, table)

    with _search_errors():
        tenant = await _tenant_filters(builder, user, table)
        # tenant filters go last so the fold ANDs them with everything before
        overrides["filters"] = (payload.filters or base.filters) + tenant
        config = base.model_copy(update=overrides)
        if payload.term:
            result = await builder.execute_full_text_search(
                table, payload.term, config, match_all=payload.match_all
            )
        else:
            result = await builder.execute_search(config)
    return result.model_dump(mode="json")


@search_router.get("/{table}")
async def quick_search(
    table: str,
    q: str = Query(default=""),
    limit: int = Query(default=0, ge=0, le=1000),
    offset: int = Query(default=0, ge=0),
    match_all: bool = Query(default=False),
    user: AccessContext = Depends(get_current_user),
    app: AppContext = Depends(get_context),
):
    builder = _builder(app)
    await _authorize(app, user, table)
    config = _base_config(app, table)
    update: Dict[str, Any] = {"offset": offset}
    if limit:
        update["limit"] = limit

    with _search_errors():
        update["filters"] = list(config.filters) + await _tenant_filters(
            builder, user, table
        )
        config = config.model_copy(update=update)
        result = await builder.execute_full_text_search(
            table, q, config, match_all=match_all
        )
    return result.model_dump(mode="json")
