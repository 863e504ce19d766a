"""
Role- and facility-aware route registry.

The registry is the catalogue of every navigable path in the console. It
answers three kinds of questions:

- lookup: which route handles a path (exact key or ``:param`` pattern)
- access: may this caller open this route, and if not, why
- navigation: which routes does this caller see, grouped by category

A registry is an ordinary object; the application builds one at startup
and hands it to whatever needs it.
"""

from __future__ import annotations

from dataclasses import fields, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Pattern, Tuple, Union
import json
import logging
import re

from ..errors import RouteConfigurationError
from .models import (
    AccessContext,
    AccessDecision,
    NavigationGroup,
    RouteCategory,
    RouteConfig,
    RouteConflict,
    RouteStats,
    RouteSummary,
)

logger = logging.getLogger(__name__)

RouteInput = Union[RouteConfig, Mapping[str, Any]]

_ROUTE_FIELDS = {f.name for f in fields(RouteConfig)}


def compile_route_pattern(path: str, exact: bool = True) -> Pattern[str]:
    """Compile ``/onboarding/:id`` style paths into an anchored regex."""
    parts = []
    for segment in path.strip("/").split("/"):
        if not segment:
            continue
        if segment.startswith(":"):
            parts.append(f"(?P<{segment[1:]}>[^/]+)")
        elif segment == "*":
            parts.append(".*")
        else:
            parts.append(re.escape(segment))
    body = "/" + "/".join(parts)
    if not exact:
        body = body.rstrip("/") + "(?:/.*)?"
    return re.compile(f"^{body}$")


def _sample_path(path: str) -> str:
    return re.sub(r":[^/]+|\*", "x", path)


def _is_dynamic(path: str) -> bool:
    return ":" in path or "*" in path


class RouteRegistry:
    def __init__(self, routes: Optional[Iterable[RouteInput]] = None):
        self._routes: Dict[str, RouteConfig] = {}
        self._patterns: Dict[str, Pattern[str]] = {}
        if routes:
            self.register_batch(routes)

    # -- registration -----------------------------------------------------

    def register(self, config: RouteInput) -> RouteConfig:
        """Add a route. Re-registering a path replaces the previous entry."""
        if isinstance(config, RouteConfig):
            route = replace(config)
        else:
            data = dict(config)
            if not data.get("path") or data.get("component") is None:
                raise RouteConfigurationError(
                    "Route configuration must include path and component"
                )
            unknown = set(data) - _ROUTE_FIELDS
            if unknown:
                raise RouteConfigurationError(
                    f"Unknown route fields for {data['path']}: {sorted(unknown)}"
                )
            route = RouteConfig(**data)

        if not route.path or route.component is None:
            raise RouteConfigurationError(
                "Route configuration must include path and component"
            )

        if route.path in self._routes:
            logger.warning("Route %s re-registered; replacing previous entry", route.path)
        else:
            self._warn_on_conflicts(route)

        self._routes[route.path] = route
        self._patterns[route.path] = compile_route_pattern(route.path, route.exact)
        logger.debug("Route registered: %s (%s)", route.path, route.category.value)
        return route

    def register_batch(self, configs: Iterable[RouteInput]) -> List[RouteConfig]:
        registered = [self.register(c) for c in configs]
        logger.info("Registered %d routes", len(registered))
        return registered

    def update_route(self, path: str, partial: Mapping[str, Any]) -> Optional[RouteConfig]:
        """Shallow-merge ``partial`` into an existing route. Unknown paths are ignored."""
        route = self._routes.get(path)
        if route is None:
            return None
        changes = {k: v for k, v in partial.items() if k in _ROUTE_FIELDS and k != "path"}
        ignored = set(partial) - set(changes)
        if ignored:
            logger.warning("update_route(%s) ignored fields: %s", path, sorted(ignored))
        updated = replace(route, **changes)
        if updated.component is None:
            raise RouteConfigurationError(f"Route {path} cannot drop its component")
        self._routes[path] = updated
        self._patterns[path] = compile_route_pattern(path, updated.exact)
        return updated

    def unregister(self, path: str) -> bool:
        removed = self._routes.pop(path, None)
        self._patterns.pop(path, None)
        if removed is not None:
            logger.debug("Route unregistered: %s", path)
        return removed is not None

    # -- lookup -----------------------------------------------------------

    def get_route(self, path: str) -> Optional[RouteConfig]:
        return self._routes.get(path)

    def get_all_routes(self) -> List[RouteConfig]:
        return list(self._routes.values())

    def get_routes_by_category(self, category: Union[RouteCategory, str]) -> List[RouteConfig]:
        category = RouteCategory(category)
        return [r for r in self._routes.values() if r.category == category]

    def match(self, url_path: str) -> Optional[Tuple[RouteConfig, Dict[str, str]]]:
        """Find the route serving a concrete URL path and its parameters.

        Static keys win over patterns; among patterns, exact ones are tried
        before prefix routes, and longer prefixes before shorter ones.
        """
        route = self._routes.get(url_path)
        if route is not None:
            return route, {}
        candidates = sorted(
            self._routes.values(),
            key=lambda r: (not r.exact, -len(r.path)),
        )
        for candidate in candidates:
            m = self._patterns[candidate.path].match(url_path)
            if m:
                return candidate, {k: v for k, v in m.groupdict().items() if v is not None}
        return None

    def find_conflicts(self) -> List[RouteConflict]:
        """Pairs of dynamic routes that would both claim the same URLs."""
        conflicts: List[RouteConflict] = []
        routes = list(self._routes.values())
        for i, a in enumerate(routes):
            for b in routes[i + 1 :]:
                if self._routes_conflict(a, b):
                    conflicts.append(RouteConflict(routes=[a.path, b.path]))
        return conflicts

    def _routes_conflict(self, a: RouteConfig, b: RouteConfig) -> bool:
        if not (_is_dynamic(a.path) or _is_dynamic(b.path)):
            return False
        pa = self._patterns.get(a.path) or compile_route_pattern(a.path, a.exact)
        pb = self._patterns.get(b.path) or compile_route_pattern(b.path, b.exact)
        return bool(pa.match(_sample_path(b.path)) and pb.match(_sample_path(a.path)))

    def _warn_on_conflicts(self, route: RouteConfig) -> None:
        for existing in self._routes.values():
            if self._routes_conflict(route, existing):
                logger.warning(
                    "Route conflict detected: %s overlaps %s", route.path, existing.path
                )

    # -- access -----------------------------------------------------------

    def resolve(self, path: str, context: AccessContext) -> AccessDecision:
        route = self._routes.get(path)
        if route is None:
            return AccessDecision(False, "not_found")
        decision = self._evaluate(route, context)
        logger.debug(
            "access_decision=%s",
            json.dumps(
                {
                    "path": path,
                    "user": context.user_id,
                    "allowed": decision.allowed,
                    "reason": decision.reason,
                },
                separators=(",", ":"),
            ),
        )
        return decision

    @staticmethod
    def _evaluate(route: RouteConfig, ctx: AccessContext) -> AccessDecision:
        """Apply every access rule a route declares.

        Rules, first failure wins:
        1. inactive routes are closed to everyone
        2. public routes are open to everyone
        3. auth-required routes need an authenticated caller
        4. super admins pass every remaining check
        5. allowed_roles: at least one shared role
        6. required_permissions: all of them
        7. tenant-scoped (not cross-tenant) or require_facility_context:
           a selected facility
        8. facility_types: the selected facility has one of these types
        9. facility_permission: the caller's level at that facility is high enough
        """
        if not route.is_active:
            return AccessDecision(False, "inactive")
        if route.is_public:
            return AccessDecision(True, "public")
        if route.requires_auth and not ctx.authenticated:
            return AccessDecision(False, "authentication_required")
        if ctx.is_super_admin:
            return AccessDecision(True, "super_admin")
        if route.allowed_roles and not (route.allowed_roles & ctx.roles):
            return AccessDecision(False, "role_required")
        if route.required_permissions and not route.required_permissions <= ctx.permissions:
            return AccessDecision(False, "permission_required")

        needs_facility = (
            (route.tenant_scoped and not route.cross_tenant)
            or route.require_facility_context
            or bool(route.facility_types)
            or route.facility_permission is not None
        )
        if needs_facility and not ctx.facility_id:
            return AccessDecision(False, "facility_context_required")
        if route.facility_types and ctx.facility_type not in route.facility_types:
            return AccessDecision(False, "facility_type_not_allowed")
        if route.facility_permission is not None and (
            ctx.facility_access is None
            or not ctx.facility_access.satisfies(route.facility_permission)
        ):
            return AccessDecision(False, "facility_permission_required")
        return AccessDecision(True, "granted")

    @staticmethod
    def _context(
        user_roles: Iterable[str],
        current_facility_id: Optional[str],
        is_super_admin: bool,
        context: Optional[AccessContext],
    ) -> AccessContext:
        if context is not None:
            return context
        return AccessContext(
            roles=frozenset(user_roles or ()),
            facility_id=current_facility_id,
            is_super_admin=is_super_admin,
        )

    def can_access(
        self,
        path: str,
        user_roles: Iterable[str] = (),
        current_facility_id: Optional[str] = None,
        is_super_admin: bool = False,
        *,
        context: Optional[AccessContext] = None,
    ) -> bool:
        ctx = self._context(user_roles, current_facility_id, is_super_admin, context)
        return self.resolve(path, ctx).allowed

    def get_accessible_routes(
        self,
        user_roles: Iterable[str] = (),
        current_facility_id: Optional[str] = None,
        is_super_admin: bool = False,
        *,
        context: Optional[AccessContext] = None,
    ) -> List[RouteConfig]:
        ctx = self._context(user_roles, current_facility_id, is_super_admin, context)
        return [r for r in self._routes.values() if self._evaluate(r, ctx).allowed]

    def get_navigation_items(
        self,
        user_roles: Iterable[str] = (),
        current_facility_id: Optional[str] = None,
        is_super_admin: bool = False,
        *,
        context: Optional[AccessContext] = None,
    ) -> List[NavigationGroup]:
        accessible = self.get_accessible_routes(
            user_roles, current_facility_id, is_super_admin, context=context
        )
        groups: List[NavigationGroup] = []
        for category in RouteCategory:
            routes = sorted(
                (r for r in accessible if r.category == category),
                key=lambda r: r.title,
            )
            if routes:
                groups.append(
                    NavigationGroup(
                        category=category,
                        routes=[RouteSummary.from_config(r) for r in routes],
                    )
                )
        return groups

    # -- reporting --------------------------------------------------------

    def get_stats(self) -> RouteStats:
        routes = list(self._routes.values())
        return RouteStats(
            total_routes=len(routes),
            by_category={
                c.value: sum(1 for r in routes if r.category == c) for c in RouteCategory
            },
            auth_required=sum(1 for r in routes if r.requires_auth and not r.is_public),
            public_routes=sum(1 for r in routes if r.is_public),
            tenant_scoped=sum(1 for r in routes if r.tenant_scoped),
            active_routes=sum(1 for r in routes if r.is_active),
        )

    def __len__(self) -> int:
        return len(self._routes)

    def __contains__(self, path: object) -> bool:
        return path in self._routes
