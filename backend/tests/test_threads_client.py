import json

import httpx
import pytest

from codegen_versions.clients.threads import ThreadClient, normalize_api_key
from codegen_versions.errors import ConfigurationError, ResponseShapeError


def make_client(handler, api_key="Bearer sk-assistant"):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ThreadClient(api_key, base_url="https://assistant.test", client=http)


def test_normalize_api_key_strips_bearer_prefix():
    assert normalize_api_key("  Bearer sk-1 ") == "sk-1"
    assert normalize_api_key("sk-2") == "sk-2"


@pytest.mark.asyncio
async def test_create_thread_is_scoped_to_user():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"thread_id": "thread_1"})

    client = make_client(handler)

    assert await client.create_thread("user_1", "Todo app") == "thread_1"
    request = seen[0]
    assert request.headers["Authorization"] == "Bearer sk-assistant"
    assert request.url.params["user_id"] == "user_1"
    assert json.loads(request.content)["metadata"] == {"projectName": "Todo app"}


@pytest.mark.asyncio
async def test_create_thread_without_id_is_rejected():
    client = make_client(lambda request: httpx.Response(200, json={}))

    with pytest.raises(ResponseShapeError):
        await client.create_thread("user_1", "Todo app")


@pytest.mark.asyncio
async def test_empty_key_fails_before_any_call():
    calls = []
    client = make_client(lambda request: calls.append(request), api_key=" ")

    with pytest.raises(ConfigurationError):
        await client.delete_thread("user_1", "thread_1")
    assert calls == []
