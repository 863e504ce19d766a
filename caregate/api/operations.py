"""
Console actions served by the hosted backend.

``POST /testing/run`` executes the comprehensive test suite RPC and
``POST /users/manage`` forwards a profile action to the
``manage-user-profiles`` edge function. Each is gated by the page route it
belongs to.
"""

from __future__ import annotations

from typing import Any, Awaitable
import logging

from fastapi import APIRouter, Depends, HTTPException

from ..audit.models import AuditCategory
from ..backend.client import BackendClient
from ..context import AppContext, get_context
from ..errors import BackendError
from ..identity.auth import require_route_access
from ..routing.models import AccessContext
from .models import ProfileActionRequest, SuiteRunRequest

logger = logging.getLogger(__name__)

operations_router = APIRouter(tags=["operations"])


def _backend(app: AppContext) -> BackendClient:
    if app.backend is None:
        raise HTTPException(status_code=503, detail="Backend is not configured")
    return app.backend


async def _call(
    app: AppContext, user: AccessContext, action: str, call: Awaitable[Any]
) -> Any:
    try:
        result = await call
    except BackendError as e:
        await app.audit.log_event(
            event_type="backend_call",
            category=AuditCategory.SYSTEM,
            action=action,
            result="failure",
            description=f"{action} failed",
            user_id=user.user_id,
            details={"status_code": e.status_code},
        )
        raise HTTPException(
            status_code=502,
            detail={"error": str(e), "status_code": e.status_code, "body": e.body},
        )
    await app.audit.log_event(
        event_type="backend_call",
        category=AuditCategory.USER_ACTION,
        action=action,
        result="success",
        description=f"{action} completed",
        user_id=user.user_id,
    )
    return result


@operations_router.post("/testing/run")
async def run_test_suite(
    payload: SuiteRunRequest,
    user: AccessContext = Depends(require_route_access("/testing")),
    app: AppContext = Depends(get_context),
):
    backend = _backend(app)
    logger.info("Test suite %s requested by %s", payload.suite_type or "all", user.user_id)
    result = await _call(
        app,
        user,
        "execute_comprehensive_test_suite",
        backend.rpc(
            "execute_comprehensive_test_suite",
            {"suite_type": payload.suite_type, "batch_size": payload.batch_size},
        ),
    )
    return {"status": "completed", "suite_type": payload.suite_type, "result": result}


@operations_router.post("/users/manage")
async def manage_user_profiles(
    payload: ProfileActionRequest,
    user: AccessContext = Depends(require_route_access("/users")),
    app: AppContext = Depends(get_context),
):
    backend = _backend(app)
    return await _call(
        app,
        user,
        "manage-user-profiles",
        backend.invoke_function(
            "manage-user-profiles", {"action": payload.action, **payload.data}
        ),
    )
