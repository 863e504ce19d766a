from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set
import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import AuthManager
from .models import Facility, Role, UserFacilityAccess, UserRole


DEFAULT_ROLES = [
    ("superAdmin", "System Super Administrator - Full Access", 1),
    ("admin", "Facility Administrator", 2),
    ("provider", "Healthcare Provider", 3),
    ("nurse", "Nursing Staff", 4),
    ("onboardingTeam", "Onboarding Team Member", 5),
    ("technicalServices", "Technical Services", 6),
    ("billing", "Billing Department", 7),
    ("compliance", "Compliance Officer", 8),
    ("caregiver", "Patient Caregiver", 9),
    ("patient", "Patient", 10),
]


@dataclass
class AccessProfile:
    user_id: str
    roles: Set[str] = field(default_factory=set)
    permissions: Set[str] = field(default_factory=set)
    facilities: Dict[str, Dict] = field(default_factory=dict)


class IdentityService:
    def __init__(self, db: AsyncSession, auth: AuthManager):
        self.db = db
        self.auth = auth
        self.logger = logging.getLogger(__name__)

    async def ensure_default_roles(self) -> None:
        for name, description, level in DEFAULT_ROLES:
            role = await self.db.scalar(select(Role).where(Role.name == name))
            if not role:
                self.db.add(
                    Role(name=name, description=description, hierarchy_level=level)
                )
        await self.db.commit()

    async def assign_role(
        self, user_id: str, role_name: str, facility_id: Optional[str] = None
    ) -> UserRole:
        role = await self.db.scalar(select(Role).where(Role.name == role_name))
        if role is None:
            raise ValueError(f"Unknown role: {role_name}")
        grant = UserRole(user_id=user_id, role_id=role.id, facility_id=facility_id)
        self.db.add(grant)
        await self.db.commit()
        self.logger.info(
            "Role %s granted to %s (facility=%s)", role_name, user_id, facility_id
        )
        return grant

    async def grant_facility_access(
        self, user_id: str, facility_id: str, access_level: str = "read"
    ) -> UserFacilityAccess:
        grant = UserFacilityAccess(
            user_id=user_id, facility_id=facility_id, access_level=access_level
        )
        self.db.add(grant)
        await self.db.commit()
        return grant

    async def build_access_profile(self, user_id: str) -> AccessProfile:
        """Collect a user's active roles, permissions and facility grants.

        Roles granted with a facility are scoped to that facility and are only
        effective when it is the selected facility.
        """
        now = datetime.utcnow()
        profile = AccessProfile(user_id=user_id)

        role_grants = await self.db.scalars(
            select(UserRole).where(
                UserRole.user_id == user_id,
                UserRole.is_active.is_(True),
                or_(UserRole.expires_at.is_(None), UserRole.expires_at > now),
            )
        )
        scoped_roles: Dict[str, List[str]] = {}
        for grant in role_grants:
            role = grant.role
            if role is None or not role.is_active:
                continue
            if grant.facility_id:
                scoped_roles.setdefault(grant.facility_id, []).append(role.name)
            else:
                profile.roles.add(role.name)
            profile.permissions.update(p.name for p in role.permissions)

        facility_grants = await self.db.scalars(
            select(UserFacilityAccess)
            .join(Facility, Facility.id == UserFacilityAccess.facility_id)
            .where(
                UserFacilityAccess.user_id == user_id,
                UserFacilityAccess.is_active.is_(True),
                Facility.is_active.is_(True),
                or_(
                    UserFacilityAccess.expires_at.is_(None),
                    UserFacilityAccess.expires_at > now,
                ),
            )
        )
        for grant in facility_grants:
            profile.facilities[grant.facility_id] = {
                "access": grant.access_level,
                "type": grant.facility.facility_type,
                "roles": sorted(scoped_roles.pop(grant.facility_id, [])),
            }

        for facility_id in scoped_roles:
            self.logger.warning(
                "User %s holds roles at facility %s without facility access",
                user_id,
                facility_id,
            )
        return profile

    async def issue_token(self, user_id: str, expires_minutes: int = 15) -> str:
        profile = await self.build_access_profile(user_id)
        return self.auth.generate_user_token(
            user_id,
            profile.roles,
            profile.permissions,
            profile.facilities,
            expires_minutes=expires_minutes,
        )
