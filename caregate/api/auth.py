from __future__ import annotations

from typing import Optional
import hmac

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy import select

from ..audit.models import AuditCategory
from ..context import AppContext, get_context
from ..identity.auth import (
    dev_issue_admin_token,
    dev_mode_enabled,
    get_auth_manager,
    get_current_user,
)
from ..identity.models import Profile
from ..identity.service import IdentityService
from ..routing.models import AccessContext
from .models import TokenRequest


auth_router = APIRouter(prefix="/auth", tags=["auth"])


@auth_router.post("/dev-login")
async def dev_login(request: Request):
    if not dev_mode_enabled():
        raise HTTPException(status_code=404, detail="Not found")
    token = dev_issue_admin_token(get_auth_manager(request))
    return {"access_token": token, "token_type": "bearer"}


@auth_router.post("/token")
async def issue_token(
    payload: TokenRequest,
    x_service_key: Optional[str] = Header(default=None, alias="X-Service-Key"),
    app: AppContext = Depends(get_context),
):
    """Issue a console token for a profile, built from its stored grants.

    Called by the hosted auth provider after sign-in; authenticated with the
    backend service key.
    """
    expected = app.config.setting("backend.service_key")
    if not expected or not x_service_key or not hmac.compare_digest(
        x_service_key, expected
    ):
        raise HTTPException(status_code=401, detail="Invalid service key")
    if app.sessions is None:
        raise HTTPException(status_code=503, detail="Identity store is not configured")

    async with app.sessions() as session:
        profile = await session.scalar(
            select(Profile).where(
                Profile.id == payload.user_id, Profile.is_active.is_(True)
            )
        )
        if profile is None:
            raise HTTPException(status_code=404, detail="Unknown user")
        token = await IdentityService(session, app.auth).issue_token(
            payload.user_id, expires_minutes=payload.expires_minutes
        )

    await app.audit.log_event(
        event_type="token_issued",
        category=AuditCategory.SECURITY,
        action="issue_token",
        result="success",
        description=f"Token issued for {payload.user_id}",
        resource_type="user",
        resource_id=payload.user_id,
        user_id=payload.user_id,
    )
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_in": payload.expires_minutes * 60,
    }


@auth_router.get("/me")
async def me(user: AccessContext = Depends(get_current_user)):
    return {
        "id": user.user_id,
        "roles": sorted(user.roles),
        "permissions": sorted(user.permissions),
        "facility_id": user.facility_id,
        "facility_type": user.facility_type,
        "facility_access": user.facility_access.value if user.facility_access else None,
        "is_super_admin": user.is_super_admin,
    }
