import asyncio
import json

import httpx
from fastapi.testclient import TestClient

from caregate.backend import BackendClient
from caregate.main import create_app

from conftest import bearer, make_context


def _client(handler):
    ctx = make_context()
    ctx.backend = BackendClient(
        "https://backend.example.org",
        service_key="service-key",
        transport=httpx.MockTransport(handler),
    )
    return ctx, TestClient(create_app(ctx))


def test_run_test_suite_calls_rpc():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"total_tests": 12, "passed_tests": 11})

    ctx, client = _client(handler)
    r = client.post(
        "/testing/run",
        json={"suite_type": "security"},
        headers=bearer(ctx, ["technicalServices"]),
    )
    assert r.status_code == 200, r.text
    assert r.json()["result"] == {"total_tests": 12, "passed_tests": 11}
    assert seen["path"] == "/rest/v1/rpc/execute_comprehensive_test_suite"
    assert seen["body"] == {"suite_type": "security", "batch_size": 50}


def test_run_test_suite_follows_testing_route_access():
    ctx, client = _client(lambda request: httpx.Response(200, json={}))
    r = client.post("/testing/run", json={}, headers=bearer(ctx, ["nurse"]))
    assert r.status_code == 403
    assert client.post("/testing/run", json={}).status_code == 401


def test_backend_failure_maps_to_bad_gateway():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "suite crashed"})

    ctx, client = _client(handler)
    r = client.post("/testing/run", json={}, headers=bearer(ctx, ["admin"]))
    assert r.status_code == 502
    detail = r.json()["detail"]
    assert detail["status_code"] == 500
    assert detail["body"] == {"message": "suite crashed"}

    events = asyncio.run(ctx.audit.list_events())
    assert events["items"][0]["result"] == "failure"


def test_manage_user_profiles_forwards_action():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "data": []})

    ctx, client = _client(handler)
    headers = bearer(ctx, ["admin"], permissions=["users.read"])
    r = client.post(
        "/users/manage",
        json={"action": "assign_role", "data": {"user_id": "u-1", "role": "nurse"}},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json() == {"success": True, "data": []}
    assert seen["path"] == "/functions/v1/manage-user-profiles"
    assert seen["body"] == {"action": "assign_role", "user_id": "u-1", "role": "nurse"}

    # admin role without users.read
    r = client.post("/users/manage", json={"action": "list"}, headers=bearer(ctx, ["admin"]))
    assert r.status_code == 403


def test_operations_need_a_backend(client, app_context):
    r = client.post("/testing/run", json={}, headers=bearer(app_context, ["admin"]))
    assert r.status_code == 503
