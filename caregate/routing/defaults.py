"""
The console's built-in routes.
"""

from __future__ import annotations

from typing import List

from .models import FacilityPermission, RouteCategory, RouteConfig
from .registry import RouteRegistry

ADMINS = {"superAdmin", "admin"}
CLINICAL = {"provider", "nurse", "caregiver"}


def default_routes() -> List[RouteConfig]:
    return [
        RouteConfig(
            path="/",
            component="caregate.pages:dashboard",
            title="Dashboard",
            description="Main dashboard",
            category=RouteCategory.MANAGEMENT,
        ),
        RouteConfig(
            path="/login",
            component="caregate.pages:login",
            title="Login",
            description="User authentication",
            requires_auth=False,
            is_public=True,
            category=RouteCategory.SYSTEM,
        ),
        RouteConfig(
            path="/users",
            component="caregate.pages:users",
            title="Users",
            description="User management",
            allowed_roles=ADMINS,
            required_permissions={"users.read"},
            category=RouteCategory.ADMIN,
        ),
        RouteConfig(
            path="/patients",
            component="caregate.pages:patients",
            title="Patients",
            description="Patient management",
            allowed_roles=ADMINS | CLINICAL,
            category=RouteCategory.MANAGEMENT,
            tenant_scoped=True,
            facility_permission=FacilityPermission.READ,
        ),
        RouteConfig(
            path="/facilities",
            component="caregate.pages:facilities",
            title="Facilities",
            description="Facility management",
            allowed_roles=ADMINS,
            category=RouteCategory.ADMIN,
            tenant_scoped=True,
            cross_tenant=True,
        ),
        RouteConfig(
            path="/onboarding",
            component="caregate.pages:onboarding",
            title="Onboarding",
            description="Treatment center onboarding",
            allowed_roles={"onboardingTeam"} | ADMINS,
            category=RouteCategory.MANAGEMENT,
        ),
        RouteConfig(
            path="/onboarding/:id",
            component="caregate.pages:onboarding_detail",
            title="Onboarding Details",
            description="Specific onboarding case",
            allowed_roles={"onboardingTeam"} | ADMINS,
            category=RouteCategory.MANAGEMENT,
        ),
        RouteConfig(
            path="/modules",
            component="caregate.pages:modules",
            title="Modules",
            description="Module catalogue",
            allowed_roles=ADMINS,
            category=RouteCategory.SYSTEM,
        ),
        RouteConfig(
            path="/api-services",
            component="caregate.pages:api_services",
            title="API Services",
            description="Internal and external API registry",
            allowed_roles=ADMINS | {"technicalServices"},
            category=RouteCategory.SYSTEM,
        ),
        RouteConfig(
            path="/security",
            component="caregate.pages:security",
            title="Security",
            description="Security settings",
            allowed_roles=ADMINS | {"compliance"},
            category=RouteCategory.ADMIN,
        ),
        RouteConfig(
            path="/reports",
            component="caregate.pages:reports",
            title="Reports",
            description="System reports",
            allowed_roles=ADMINS | {"provider", "billing", "compliance"},
            category=RouteCategory.REPORTING,
            tenant_scoped=True,
        ),
        RouteConfig(
            path="/testing",
            component="caregate.pages:testing",
            title="Testing",
            description="Test case dashboard",
            allowed_roles=ADMINS | {"technicalServices"},
            category=RouteCategory.REPORTING,
        ),
        RouteConfig(
            path="/role-management",
            component="caregate.pages:role_management",
            title="Role Management",
            description="Roles and permissions",
            allowed_roles={"superAdmin"},
            category=RouteCategory.ADMIN,
        ),
        RouteConfig(
            path="/profile",
            component="caregate.pages:profile",
            title="Profile",
            description="User profile",
            category=RouteCategory.SYSTEM,
        ),
        RouteConfig(
            path="/settings",
            component="caregate.pages:settings",
            title="Settings",
            description="Application settings",
            category=RouteCategory.SYSTEM,
        ),
    ]


def initialize_routes(registry: RouteRegistry) -> RouteRegistry:
    """Register the built-in routes. Called once when the app is wired."""
    registry.register_batch(default_routes())
    return registry
