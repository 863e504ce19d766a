import asyncio
import json

import httpx
import pytest

from caregate.backend import BackendClient
from caregate.errors import BackendError


def run(coro):
    return asyncio.run(coro)


def _client(handler, service_key="service-key"):
    return BackendClient(
        "https://backend.example.org/",
        service_key=service_key,
        transport=httpx.MockTransport(handler),
    )


def test_invoke_function_posts_json_with_service_key():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["apikey"] = request.headers.get("apikey")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True})

    async def scenario():
        client = _client(handler)
        try:
            return await client.invoke_function("manage-user-profiles", {"action": "list"})
        finally:
            await client.stop()

    assert run(scenario()) == {"ok": True}
    assert seen["url"] == "https://backend.example.org/functions/v1/manage-user-profiles"
    assert seen["auth"] == "Bearer service-key"
    assert seen["apikey"] == "service-key"
    assert seen["body"] == {"action": "list"}


def test_rpc_handles_empty_and_text_bodies():
    responses = iter([httpx.Response(204), httpx.Response(200, text="done")])

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/rest/v1/rpc/execute_comprehensive_test_suite"
        return next(responses)

    async def scenario():
        client = _client(handler, service_key=None)
        try:
            first = await client.rpc("execute_comprehensive_test_suite")
            second = await client.rpc("execute_comprehensive_test_suite", {"suite": "all"})
            return first, second
        finally:
            await client.stop()

    assert run(scenario()) == (None, "done")


def test_error_status_raises_backend_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"message": "permission denied"})

    async def scenario():
        client = _client(handler)
        try:
            await client.rpc("secret_fn")
        finally:
            await client.stop()

    with pytest.raises(BackendError) as exc:
        run(scenario())
    assert exc.value.status_code == 403
    assert exc.value.body == {"message": "permission denied"}


def test_transport_failure_raises_backend_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        client = _client(handler)
        try:
            await client.invoke_function("healthcare-context-ai")
        finally:
            await client.stop()

    with pytest.raises(BackendError) as exc:
        run(scenario())
    assert exc.value.status_code is None
