"""
Identity and authentication helpers.

JWTs issued here (or by the hosted auth provider with the same secret)
carry the caller's roles, permissions and per-facility access. FastAPI
dependencies turn a bearer token plus the ``X-Facility-Id`` header into an
``AccessContext`` and gate routes through the route registry.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional
import json
import logging
import os

import jwt
from fastapi import Depends, Header, HTTPException, Request

from ..monitoring.metrics import route_access_denied_total
from ..routing.models import CLOSED_REASONS, AccessContext, FacilityPermission

logger = logging.getLogger(__name__)

SUPER_ADMIN_ROLE = "superAdmin"


class AuthManager:
    """JWT manager for console users."""

    def __init__(self, jwt_secret: str):
        if not jwt_secret or jwt_secret == "change-this-secret":
            logger.warning(
                "Using default/weak JWT secret. Set JWT_SECRET in production."
            )
        self.jwt_secret = jwt_secret

    def generate_user_token(
        self,
        user_id: str,
        roles: Iterable[str],
        permissions: Iterable[str] = (),
        facilities: Optional[Dict[str, Dict[str, str]]] = None,
        expires_minutes: int = 15,
    ) -> str:
        """Issue a user token.

        ``facilities`` maps facility id to
        ``{"access": level, "type": facility_type, "roles": [...]}``.
        """
        now = datetime.now(tz=timezone.utc)
        payload = {
            "sub": user_id,
            "type": "user",
            "roles": sorted(set(roles or [])),
            "permissions": sorted(set(permissions or [])),
            "facilities": facilities or {},
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=expires_minutes)).timestamp()),
            "jti": os.urandom(8).hex(),
        }
        return jwt.encode(payload, self.jwt_secret, algorithm="HS256")

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            return jwt.decode(token, self.jwt_secret, algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            logger.info("JWT expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.info("Invalid JWT: %s", e)
            return None


def context_from_claims(
    claims: Dict[str, Any], facility_id: Optional[str] = None
) -> AccessContext:
    """Build an AccessContext from verified claims and the selected facility.

    A facility that is not listed in the claims is ignored unless the caller
    is a super admin, so a client cannot select a tenant it has no access to.
    """
    roles = frozenset(claims.get("roles") or [])
    is_super_admin = SUPER_ADMIN_ROLE in roles
    facilities: Dict[str, Dict[str, str]] = claims.get("facilities") or {}

    selected: Optional[str] = None
    facility_type: Optional[str] = None
    access: Optional[FacilityPermission] = None
    if facility_id:
        grant = facilities.get(facility_id)
        if grant is not None:
            selected = facility_id
            facility_type = grant.get("type")
            level = grant.get("access")
            access = FacilityPermission(level) if level else None
            # roles granted only within this facility
            roles = roles | frozenset(grant.get("roles") or [])
        elif is_super_admin:
            selected = facility_id
            access = FacilityPermission.ADMIN
        else:
            logger.info(
                "Ignoring facility %s not granted to user %s",
                facility_id,
                claims.get("sub"),
            )

    return AccessContext(
        roles=roles,
        facility_id=selected,
        is_super_admin=is_super_admin,
        permissions=frozenset(claims.get("permissions") or []),
        facility_type=facility_type,
        facility_access=access,
        authenticated=True,
        user_id=str(claims.get("sub")) if claims.get("sub") else None,
    )


def get_auth_manager(request: Request) -> AuthManager:
    return request.app.state.context.auth


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    x_facility_id: Optional[str] = Header(default=None, alias="X-Facility-Id"),
) -> AccessContext:
    """FastAPI dependency resolving the caller into an AccessContext."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=401, detail="Missing or invalid Authorization header"
        )

    token = authorization.split(" ", 1)[1]
    claims = get_auth_manager(request).verify_token(token)
    if not claims or claims.get("type") != "user":
        raise HTTPException(status_code=401, detail="Invalid token")

    return context_from_claims(claims, x_facility_id)


def require_roles(
    roles: Optional[List[str]] = None,
) -> Callable[..., Awaitable[AccessContext]]:
    """Dependency enforcing at least one of ``roles``; super admins always pass.

    Usage in FastAPI routes:
      @router.get(..., dependencies=[Depends(require_roles(["admin"]))])
    """

    async def _dep(user: AccessContext = Depends(get_current_user)) -> AccessContext:
        if not roles or user.is_super_admin:
            return user
        if not user.roles.intersection(roles):
            raise HTTPException(status_code=403, detail="Forbidden: insufficient role")
        return user

    return _dep


def require_route_access(path: str) -> Callable[..., Awaitable[AccessContext]]:
    """Auth gate for a generated page route.

    Delegates the decision to the application's route registry. Denials are
    403, except inactive or unregistered routes, which answer 404.
    """

    async def _dep(
        request: Request, user: AccessContext = Depends(get_current_user)
    ) -> AccessContext:
        ctx = request.app.state.context
        decision = ctx.routes.resolve(path, user)
        if not decision.allowed:
            logger.info(
                "access_decision=%s",
                json.dumps(
                    {
                        "path": path,
                        "user": user.user_id,
                        "decision": "deny",
                        "reason": decision.reason,
                    },
                    separators=(",", ":"),
                ),
            )
            await ctx.audit.log_event(
                event_type="route_access",
                category="security",
                action="open_route",
                result="denied",
                description=f"Access to {path} denied",
                resource_type="route",
                resource_id=path,
                user_id=user.user_id,
                details={"reason": decision.reason},
            )
            route_access_denied_total.labels(route=path, reason=decision.reason).inc()
            if decision.reason in CLOSED_REASONS:
                raise HTTPException(status_code=404, detail="Not found")
            raise HTTPException(status_code=403, detail=f"Forbidden: {decision.reason}")
        return user

    return _dep


def dev_mode_enabled() -> bool:
    return os.getenv("DEV_MODE", "false").lower() in {"1", "true", "yes"}


def dev_issue_admin_token(auth: AuthManager) -> str:
    """Issue a short-lived super admin token for local/dev usage."""
    if not dev_mode_enabled():
        raise PermissionError("Dev login disabled")
    return auth.generate_user_token(
        "dev-admin", [SUPER_ADMIN_ROLE, "admin"], expires_minutes=30
    )
