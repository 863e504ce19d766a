from .models import (
    AccessContext,
    AccessDecision,
    FacilityPermission,
    NavigationGroup,
    RouteCategory,
    RouteConfig,
    RouteStats,
    RouteSummary,
)
from .registry import RouteRegistry

__all__ = [
    "AccessContext",
    "AccessDecision",
    "FacilityPermission",
    "NavigationGroup",
    "RouteCategory",
    "RouteConfig",
    "RouteRegistry",
    "RouteStats",
    "RouteSummary",
]
