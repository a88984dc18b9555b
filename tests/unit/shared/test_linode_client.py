"""
Tests for the provider HTTP client: pagination, retry and error mapping.
"""
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.shared.adapters.linode import LinodeClient, _endpoint_label
from app.shared.core.exceptions import ConfigurationError, ExternalAPIError

BASE_URL = "https://api.test/v4"


def _client(handler, **kwargs) -> LinodeClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)
    return LinodeClient("secret-token", base_url=BASE_URL, http_client=http_client, **kwargs)


@pytest.fixture(autouse=True)
def no_backoff():
    with patch("app.shared.adapters.http_retry.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


def test_missing_token_is_configuration_error():
    with pytest.raises(ConfigurationError):
        LinodeClient(None)


def test_endpoint_label_collapses_ids():
    assert _endpoint_label("/nodebalancers/401/configs/12/nodes") == "/nodebalancers/{id}/configs/{id}/nodes"
    assert _endpoint_label("/linode/types/g6-standard-2?page=1") == "/linode/types/g6-standard-2"


@pytest.mark.asyncio
async def test_list_all_follows_pagination():
    seen_pages = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer secret-token"
        page = int(request.url.params["page"])
        seen_pages.append(page)
        return httpx.Response(200, json={"data": [{"id": page}], "page": page, "pages": 3})

    async with _client(handler, page_size=1) as client:
        items = await client.list_all("/linode/instances")

    assert [item["id"] for item in items] == [1, 2, 3]
    assert seen_pages == [1, 2, 3]


@pytest.mark.asyncio
async def test_list_page_reads_only_first_page():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.params["page_size"])
        return httpx.Response(200, json={"data": [{"id": 1}, {"id": 2}], "pages": 9})

    async with _client(handler) as client:
        items = await client.list_page("/account/events", page_size=2)

    assert len(items) == 2
    assert calls == ["2"]


@pytest.mark.asyncio
async def test_retries_transient_status_then_succeeds(no_backoff):
    responses = iter([httpx.Response(503), httpx.Response(200, json={"id": 7})])

    async with _client(lambda request: next(responses), max_retries=3) as client:
        payload = await client.get("/linode/instances/7")

    assert payload == {"id": 7}
    no_backoff.assert_awaited_once()


@pytest.mark.asyncio
async def test_client_error_is_not_retried_and_keeps_status():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"errors": [{"reason": "not supported"}]})

    async with _client(handler, max_retries=3) as client:
        with pytest.raises(ExternalAPIError) as exc_info:
            await client.get("/lke/clusters/1/control_plane_acl")

    assert exc_info.value.upstream_status == 400
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_transport_errors_exhaust_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler, max_retries=2) as client:
        with pytest.raises(ExternalAPIError) as exc_info:
            await client.get("/volumes")

    assert exc_info.value.upstream_status is None
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_non_object_payload_is_rejected():
    async with _client(lambda request: httpx.Response(200, json=[1, 2])) as client:
        with pytest.raises(ExternalAPIError, match="non-object"):
            await client.get("/volumes")


@pytest.mark.asyncio
async def test_use_outside_context_manager_fails():
    client = LinodeClient("secret-token", base_url=BASE_URL)
    with pytest.raises(RuntimeError):
        await client.get("/volumes")
