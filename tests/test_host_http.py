import json

import httpx
import pytest

from hostrpc.apps import make_guestbook_module
from hostrpc.client import RpcClient
from hostrpc.config.schema import ClientConfig, Config
from hostrpc.host import HttpHostClient
from hostrpc.utils.exceptions import HostCallError, UnsupportedOperationError


def _client(handler, **config) -> HttpHostClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpHostClient(ClientConfig(url="http://host.test/", **config), http_client=http)


@pytest.mark.asyncio
async def test_query_posts_path_args_and_format():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, str(request.url), json.loads(request.content)))
        return httpx.Response(200, json={"status": "success", "value": {"_tag": "Success", "value": 3}})

    client = _client(handler, function_prefix="rpc/")
    value = await client.query("notes:count", {"key": "k"})
    assert value == {"_tag": "Success", "value": 3}
    assert seen == [
        ("POST", "http://host.test/api/query", {"path": "rpc/notes:count", "args": {"key": "k"}, "format": "json"})
    ]
    await client.close()


@pytest.mark.asyncio
async def test_mutation_and_action_use_their_routes():
    routes = []

    def handler(request: httpx.Request) -> httpx.Response:
        routes.append(request.url.path)
        return httpx.Response(200, json={"status": "success", "value": None})

    client = _client(handler)
    await client.mutation("a", {})
    await client.action("b", {})
    assert routes == ["/api/mutation", "/api/action"]


@pytest.mark.asyncio
async def test_error_status_raises_sanitized_host_call_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            500,
            json={"status": "error", "errorMessage": 'Server crashed token=abc123 at File "/srv/app.py", line 1'},
        )

    with pytest.raises(HostCallError) as info:
        await _client(handler).query("x", {})
    assert info.value.details["status_code"] == 500
    assert "abc123" not in info.value.message
    assert "/srv/app.py" not in info.value.message


@pytest.mark.asyncio
async def test_non_json_and_unexpected_bodies_raise():
    bodies = iter([
        httpx.Response(502, text="<html>bad gateway</html>"),
        httpx.Response(200, json=["not", "an", "object"]),
        httpx.Response(200, json={"status": "pending"}),
    ])

    client = _client(lambda request: next(bodies))
    with pytest.raises(HostCallError, match="non-JSON"):
        await client.query("x", {})
    with pytest.raises(HostCallError, match="not an object"):
        await client.query("x", {})
    with pytest.raises(HostCallError, match="pending"):
        await client.query("x", {})


@pytest.mark.asyncio
async def test_transport_error_raises_host_call_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(HostCallError, match="connection refused"):
        await _client(handler).query("x", {})


def test_live_subscriptions_are_unsupported():
    client = _client(lambda request: httpx.Response(200))
    with pytest.raises(UnsupportedOperationError):
        client.on_update("x", {}, lambda wire: None)


@pytest.mark.asyncio
async def test_rpc_client_over_http():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["args"]["privateAccessKey"] == "k"
        return httpx.Response(200, json={"status": "success", "value": {"_tag": "Success", "value": []}})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    config = Config()
    config.client.url = "http://host.test"
    module = make_guestbook_module("k")
    client = RpcClient.from_config(module, config, get_shared=lambda: {"privateAccessKey": "k"}, http_client=http)

    result = await client["list"].query().load()
    assert result.is_success
    assert result.value == []

    live = client["list"].subscription()
    assert live.state.is_failure
    assert live.state.error["_tag"] == "UnsupportedOperationError"
    await client.close()
