import os

# Dev login and in-memory SQLite must be allowed before the app is imported
os.environ.setdefault("DEV_MODE", "true")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.pop("DATABASE_URL", None)
os.environ.pop("BACKEND_URL", None)

from typing import Iterable, Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from caregate.config.service import ConfigService  # noqa: E402
from caregate.context import AppContext, build_context  # noqa: E402
from caregate.main import create_app  # noqa: E402
from caregate.routing.registry import RouteRegistry  # noqa: E402


def make_context(
    routes: Optional[RouteRegistry] = None,
    env: Optional[dict] = None,
    modules: Optional[Iterable] = None,
    engine=None,
) -> AppContext:
    environ = {"JWT_SECRET": "test-secret"}
    environ.update(env or {})
    return build_context(
        config=ConfigService(environ=environ),
        routes=routes,
        modules=modules,
        engine=engine,
    )


def bearer(ctx: AppContext, roles, **claims) -> dict:
    user_id = claims.pop("user_id", "user-1")
    facility = claims.pop("facility", None)
    token = ctx.auth.generate_user_token(user_id, roles, **claims)
    headers = {"Authorization": f"Bearer {token}"}
    if facility:
        headers["X-Facility-Id"] = facility
    return headers


@pytest.fixture
def app_context() -> AppContext:
    return make_context()


@pytest.fixture
def client(app_context: AppContext) -> TestClient:
    return TestClient(create_app(app_context))
