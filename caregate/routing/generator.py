"""
Turns the route registry into FastAPI page routes.

Every page is wrapped, outermost first, in:

- an auth gate (only when ``requires_auth and not is_public``) that asks the
  registry whether the caller may open the route;
- an error boundary that logs and audits a failing page and answers 500 for
  that route alone;
- a loading boundary that gives the page, including lazy import of its
  component, ``render_timeout`` seconds before answering 202 "loading".

Routes without an auth gate still ask the registry, so a deactivated or
unregistered route answers 404 on every endpoint.

A 202 means the render timed out and was cancelled; nothing keeps running
for that request and the client is expected to retry. A component import
that finished in its worker thread stays cached in ``sys.modules``, so the
retry does not pay for it again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional
import asyncio
import importlib
import inspect
import logging
import math
import time

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from ..audit.models import AuditCategory
from ..identity.auth import require_route_access
from ..monitoring.metrics import page_render_duration, page_renders_total
from .models import CLOSED_REASONS, AccessContext, RouteConfig
from .registry import RouteRegistry

logger = logging.getLogger(__name__)


@dataclass
class RenderContext:
    """What a page component receives."""

    route: RouteConfig
    request: Request
    user: Optional[AccessContext] = None
    params: Dict[str, str] = field(default_factory=dict)

    @property
    def app(self) -> Any:
        return self.request.app.state.context


def to_fastapi_path(path: str) -> str:
    segments = []
    for segment in path.strip("/").split("/"):
        if not segment:
            continue
        if segment.startswith(":"):
            segments.append("{" + segment[1:] + "}")
        elif segment == "*":
            segments.append("{wildcard:path}")
        else:
            segments.append(segment)
    return "/" + "/".join(segments)


def load_component(reference: Any) -> Callable[..., Any]:
    """Resolve ``"package.module:attribute"`` references; callables pass through."""
    if callable(reference):
        return reference
    if not isinstance(reference, str) or ":" not in reference:
        raise TypeError(f"Invalid component reference: {reference!r}")
    module_name, attr = reference.split(":", 1)
    module = importlib.import_module(module_name)
    component = getattr(module, attr)
    if not callable(component):
        raise TypeError(f"Component {reference} is not callable")
    return component


class RouteGenerator:
    def __init__(self, registry: RouteRegistry, render_timeout: float = 10.0):
        self.registry = registry
        self.render_timeout = render_timeout
        self._components: Dict[str, Callable[..., Any]] = {}

    def build_router(self) -> APIRouter:
        router = APIRouter(tags=["pages"])
        for route in self.registry.get_all_routes():
            self._add_route(router, route)
        logger.info("Generated %d page routes", len(self.registry))
        return router

    def _add_route(self, router: APIRouter, route: RouteConfig) -> None:
        gated = route.requires_auth and not route.is_public
        endpoint = self._gated_endpoint(route) if gated else self._open_endpoint(route)
        api_path = to_fastapi_path(route.path)
        router.add_api_route(
            api_path,
            endpoint,
            methods=["GET"],
            name=f"page:{route.path}",
            summary=route.title,
            description=route.description,
        )
        if not route.exact:
            router.add_api_route(
                api_path.rstrip("/") + "/{subpath:path}",
                endpoint,
                methods=["GET"],
                name=f"page:{route.path}:nested",
                include_in_schema=False,
            )

    def _gated_endpoint(self, route: RouteConfig):
        gate = require_route_access(route.path)

        async def endpoint(request: Request, user: AccessContext = Depends(gate)):
            return await self.render(route, request, user)

        return endpoint

    def _open_endpoint(self, route: RouteConfig):
        async def endpoint(request: Request):
            decision = self.registry.resolve(
                route.path, AccessContext(authenticated=False)
            )
            if not decision.allowed:
                if decision.reason in CLOSED_REASONS:
                    raise HTTPException(status_code=404, detail="Not found")
                raise HTTPException(
                    status_code=403, detail=f"Forbidden: {decision.reason}"
                )
            return await self.render(route, request, None)

        return endpoint

    async def _component(self, route: RouteConfig) -> Callable[..., Any]:
        component = self._components.get(route.path)
        if component is None:
            if isinstance(route.component, str):
                component = await asyncio.to_thread(load_component, route.component)
            else:
                component = load_component(route.component)
            self._components[route.path] = component
        return component

    async def _invoke(self, route: RouteConfig, ctx: RenderContext) -> Any:
        component = await self._component(route)
        result = component(ctx)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def render(
        self, route: RouteConfig, request: Request, user: Optional[AccessContext]
    ):
        ctx = RenderContext(
            route=route,
            request=request,
            user=user,
            params=dict(request.path_params),
        )
        started = time.perf_counter()
        try:
            payload = await asyncio.wait_for(
                self._invoke(route, ctx), timeout=self.render_timeout
            )
        except asyncio.TimeoutError:
            page_renders_total.labels(route=route.path, status="loading").inc()
            logger.info("Page %s timed out after %.1fs", route.path, self.render_timeout)
            return JSONResponse(
                status_code=202,
                content={"status": "loading", "route": route.path, "title": route.title},
                headers={"Retry-After": str(max(1, math.ceil(self.render_timeout)))},
            )
        except HTTPException:
            raise
        except Exception as e:  # noqa: BLE001
            page_renders_total.labels(route=route.path, status="error").inc()
            logger.exception("Page %s failed to render", route.path)
            await request.app.state.context.audit.log_event(
                event_type="page_render",
                category=AuditCategory.SYSTEM,
                action="render",
                result="failure",
                description=f"Render of {route.path} failed",
                resource_type="route",
                resource_id=route.path,
                user_id=user.user_id if user else None,
                details={"error_type": type(e).__name__},
            )
            return JSONResponse(
                status_code=500,
                content={
                    "status": "error",
                    "route": route.path,
                    "error": "page_render_failed",
                },
            )
        finally:
            page_render_duration.labels(route=route.path).observe(
                time.perf_counter() - started
            )

        page_renders_total.labels(route=route.path, status="ok").inc()
        return {
            "status": "ok",
            "route": route.path,
            "title": route.title,
            "category": route.category.value,
            "params": ctx.params,
            "page": payload,
        }
