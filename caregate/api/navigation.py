"""
Navigation and route introspection endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from ..context import AppContext, get_context
from ..identity.auth import get_current_user, require_roles
from ..routing.models import AccessContext, RouteSummary

navigation_router = APIRouter(tags=["navigation"])


@navigation_router.get("/navigation")
async def navigation(
    user: AccessContext = Depends(get_current_user),
    app: AppContext = Depends(get_context),
):
    groups = app.routes.get_navigation_items(context=user)
    return {"groups": [g.model_dump(mode="json") for g in groups]}


@navigation_router.get("/routes")
async def list_routes(
    user: AccessContext = Depends(get_current_user),
    app: AppContext = Depends(get_context),
):
    routes = app.routes.get_accessible_routes(context=user)
    return {"routes": [RouteSummary.from_config(r).model_dump(mode="json") for r in routes]}


@navigation_router.get(
    "/routes/stats", dependencies=[Depends(require_roles(["admin"]))]
)
async def route_stats(app: AppContext = Depends(get_context)):
    stats = app.routes.get_stats().model_dump()
    stats["conflicts"] = [c.model_dump() for c in app.routes.find_conflicts()]
    return stats


@navigation_router.get("/routes/access")
async def route_access(
    path: str = Query(..., min_length=1),
    user: AccessContext = Depends(get_current_user),
    app: AppContext = Depends(get_context),
):
    if path not in app.routes:
        matched = app.routes.match(path)
        if matched is None:
            raise HTTPException(status_code=404, detail="Unknown route")
        path = matched[0].path
    decision = app.routes.resolve(path, user)
    return {"path": path, "allowed": decision.allowed, "reason": decision.reason}
