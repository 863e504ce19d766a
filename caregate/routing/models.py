"""
Route registry data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from pydantic import BaseModel, Field


class RouteCategory(str, Enum):
    MANAGEMENT = "management"
    ADMIN = "admin"
    REPORTING = "reporting"
    SYSTEM = "system"


class FacilityPermission(str, Enum):
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _FACILITY_RANK[self]

    def satisfies(self, required: "FacilityPermission") -> bool:
        return self.rank >= required.rank


_FACILITY_RANK = {
    FacilityPermission.READ: 1,
    FacilityPermission.WRITE: 2,
    FacilityPermission.ADMIN: 3,
}


def _frozen(values: Optional[Iterable[str]]) -> FrozenSet[str]:
    if values is None:
        return frozenset()
    if isinstance(values, str):
        return frozenset([values])
    return frozenset(values)


@dataclass
class RouteConfig:
    """One navigable path and the rules for reaching it."""

    path: str
    component: Any = None
    title: str = ""
    description: str = ""
    requires_auth: bool = True
    is_public: bool = False
    allowed_roles: FrozenSet[str] = field(default_factory=frozenset)
    required_permissions: FrozenSet[str] = field(default_factory=frozenset)
    category: RouteCategory = RouteCategory.MANAGEMENT
    tenant_scoped: bool = False
    cross_tenant: bool = False
    facility_types: FrozenSet[str] = field(default_factory=frozenset)
    facility_permission: Optional[FacilityPermission] = None
    require_facility_context: bool = False
    is_active: bool = True
    exact: bool = True

    def __post_init__(self) -> None:
        self.allowed_roles = _frozen(self.allowed_roles)
        self.required_permissions = _frozen(self.required_permissions)
        self.facility_types = _frozen(self.facility_types)
        self.category = RouteCategory(self.category)
        if self.facility_permission is not None:
            self.facility_permission = FacilityPermission(self.facility_permission)
        if not self.title:
            self.title = self.path


@dataclass
class AccessContext:
    """Who is asking, and from which facility."""

    roles: FrozenSet[str] = field(default_factory=frozenset)
    facility_id: Optional[str] = None
    is_super_admin: bool = False
    permissions: FrozenSet[str] = field(default_factory=frozenset)
    facility_type: Optional[str] = None
    facility_access: Optional[FacilityPermission] = None
    authenticated: bool = True
    user_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.roles = _frozen(self.roles)
        self.permissions = _frozen(self.permissions)
        if self.facility_access is not None:
            self.facility_access = FacilityPermission(self.facility_access)


# denial reasons under which a route is treated as absent
CLOSED_REASONS = frozenset({"inactive", "not_found"})


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allowed


class RouteSummary(BaseModel):
    path: str
    title: str
    description: str = ""
    category: RouteCategory
    requires_auth: bool
    is_public: bool
    tenant_scoped: bool = False

    @classmethod
    def from_config(cls, route: RouteConfig) -> "RouteSummary":
        return cls(
            path=route.path,
            title=route.title,
            description=route.description,
            category=route.category,
            requires_auth=route.requires_auth,
            is_public=route.is_public,
            tenant_scoped=route.tenant_scoped,
        )


class NavigationGroup(BaseModel):
    category: RouteCategory
    routes: List[RouteSummary] = Field(default_factory=list)


class RouteStats(BaseModel):
    total_routes: int
    by_category: Dict[str, int]
    auth_required: int
    public_routes: int
    tenant_scoped: int
    active_routes: int


class RouteConflict(BaseModel):
    routes: List[str]
    type: str = "pattern_overlap"
