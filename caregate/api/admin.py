from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from ..audit.models import AuditCategory
from ..context import AppContext, get_context
from ..errors import SearchExecutionError
from ..identity.auth import get_current_user, require_roles
from ..routing.models import AccessContext
from .models import ConfigSetRequest


admin_router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_roles(["admin"]))],
)


@admin_router.get("/config")
async def get_effective_config(
    reveal: bool = Query(default=False),
    user: AccessContext = Depends(get_current_user),
    app: AppContext = Depends(get_context),
):
    # only super admins may read sensitive values in clear
    return await app.config.get_all(reveal=reveal and user.is_super_admin)


@admin_router.put("/config")
async def set_config(
    payload: ConfigSetRequest,
    user: AccessContext = Depends(get_current_user),
    app: AppContext = Depends(get_context),
):
    await app.config.set(
        payload.key,
        payload.value,
        is_sensitive=payload.is_sensitive,
        updated_by=user.user_id,
        reason=payload.reason,
    )
    await app.audit.log_event(
        event_type="config_update",
        category=AuditCategory.SYSTEM,
        action="set_config",
        result="success",
        description=f"Config {payload.key} updated",
        resource_type="config",
        resource_id=payload.key,
        user_id=user.user_id,
        details={"reason": payload.reason},
    )
    return {"status": "ok", "key": payload.key}


@admin_router.get("/audit")
async def list_audit_events(
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    app: AppContext = Depends(get_context),
):
    return await app.audit.list_events(limit=limit, offset=offset)


def _catalog(app: AppContext):
    if app.search is None:
        raise HTTPException(status_code=503, detail="Search is not configured")
    return app.search.catalog


@admin_router.get("/search/tables")
async def list_database_tables(app: AppContext = Depends(get_context)):
    catalog = _catalog(app)
    try:
        tables = await catalog.table_names()
    except SearchExecutionError as e:
        raise HTTPException(status_code=502, detail=f"Search backend failed: {e}")
    modules = {m.table_name for m in await app.modules.list_modules()}
    return {
        "tables": [{"name": t, "module": t in modules} for t in sorted(tables)]
    }


@admin_router.post("/search/refresh")
async def refresh_search_configs(
    user: AccessContext = Depends(get_current_user),
    app: AppContext = Depends(get_context),
):
    """Forget reflected tables and detect search configs again."""
    _catalog(app).invalidate()
    stored = await app.search_manager.auto_detect_search_capabilities()
    await app.audit.log_event(
        event_type="search_refresh",
        category=AuditCategory.SYSTEM,
        action="refresh_search",
        result="success",
        description=f"Search configs refreshed for {stored} tables",
        user_id=user.user_id,
        details={"configs": stored},
    )
    return {"status": "ok", "configs": stored}
