"""Tests for the async Graph client: pagination, retries, $count, read-only enforcement."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from guest_mau_engine.config import INITIAL_BACKOFF_SECONDS, MAX_BACKOFF_SECONDS
from guest_mau_engine.graph.client import GraphAPIError, GraphClient, _retry_after
from guest_mau_engine.graph.surfaces import probe_dependency
from guest_mau_engine.safety.guardian import SafetyGuardian, SafetyViolation


def _response(status, json=None, text=None, headers=None):
    if json is not None:
        return httpx.Response(status, json=json, headers=headers)
    return httpx.Response(status, text=text or "", headers=headers)


@pytest.fixture
def client():
    return GraphClient("token-1", SafetyGuardian())


class TestUrlsAndHeaders:

    def test_build_url_per_version(self, client):
        assert client._build_url("users") == "https://graph.microsoft.com/v1.0/users"
        assert client._build_url("/users", version="beta") == "https://graph.microsoft.com/beta/users"

    def test_absolute_url_passes_through(self, client):
        url = "https://graph.microsoft.com/v1.0/users?$skiptoken=abc"
        assert client._build_url(url, version="beta") == url

    def test_headers_request_eventual_consistency(self, client):
        headers = client._headers()
        assert headers["ConsistencyLevel"] == "eventual"
        assert headers["Authorization"] == "Bearer token-1"

    def test_set_access_token(self, client):
        client.set_access_token("token-2")
        assert client._headers()["Authorization"] == "Bearer token-2"


class TestPagination:

    @pytest.mark.asyncio
    async def test_follows_next_link(self, client):
        next_url = "https://graph.microsoft.com/v1.0/users?$skiptoken=p2"
        client._execute_raw = AsyncMock(side_effect=[
            _response(200, json={"value": [{"id": "1"}, {"id": "2"}], "@odata.nextLink": next_url}),
            _response(200, json={"value": [{"id": "3"}]}),
        ])
        items = await client.get_all_pages("users", params={"$filter": "x"}, top=2)
        assert [i["id"] for i in items] == ["1", "2", "3"]

        first, second = client._execute_raw.await_args_list
        assert first.kwargs["params"] == {"$filter": "x", "$top": "2"}
        assert second.args[1] == next_url
        assert second.kwargs["params"] is None

    @pytest.mark.asyncio
    async def test_single_object_value_is_normalized(self, client):
        client._execute_raw = AsyncMock(return_value=_response(200, json={"value": {"id": "only"}}))
        assert await client.get_all_pages("users") == [{"id": "only"}]

    @pytest.mark.asyncio
    async def test_page_cap(self):
        client = GraphClient("t", SafetyGuardian(), max_pages=2)
        client._execute_raw = AsyncMock(return_value=_response(
            200, json={"value": [{"id": "x"}], "@odata.nextLink": "https://graph.microsoft.com/v1.0/users?n"}
        ))
        assert len(await client.get_all_pages("users")) == 2
        assert client._execute_raw.await_count == 2

    @pytest.mark.asyncio
    async def test_forbidden_raises(self, client):
        client._execute_raw = AsyncMock(return_value=_response(
            403, json={"error": {"message": "Insufficient privileges to complete the operation."}}
        ))
        with pytest.raises(GraphAPIError) as exc_info:
            await client.get_all_pages("auditLogs/directoryAudits")
        assert exc_info.value.status_code == 403
        assert "Insufficient privileges" in str(exc_info.value)


class TestRetry:

    @pytest.mark.asyncio
    async def test_throttle_then_success(self, client):
        client._execute_raw = AsyncMock(side_effect=[
            _response(429, headers={"Retry-After": "0"}),
            _response(200, json={"value": [{"id": "1"}]}),
        ])
        with patch("guest_mau_engine.graph.client.asyncio.sleep", new=AsyncMock()) as sleep:
            data = await client.get("users")
        assert data == {"value": [{"id": "1"}]}
        sleep.assert_awaited_once()
        assert client.get_stats() == {"total_requests": 2, "throttle_events": 1}

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, client):
        client._execute_raw = AsyncMock(return_value=_response(503))
        with patch("guest_mau_engine.graph.client.asyncio.sleep", new=AsyncMock()):
            data = await client.get("users")
        assert data["_max_retries_exceeded"] is True

    @pytest.mark.asyncio
    async def test_not_found_is_flagged(self, client):
        client._execute_raw = AsyncMock(return_value=_response(404))
        assert (await client.get("users"))["_not_found"] is True

    @pytest.mark.asyncio
    async def test_other_errors_raise(self, client):
        client._execute_raw = AsyncMock(return_value=_response(400, json={"error": {"message": "Bad filter"}}))
        with pytest.raises(GraphAPIError, match="Bad filter"):
            await client.get("users")

    @pytest.mark.asyncio
    async def test_connect_error_is_retried(self, client):
        client._execute_raw = AsyncMock(side_effect=[
            httpx.ConnectError("reset"),
            _response(200, json={"value": []}),
        ])
        with patch("guest_mau_engine.graph.client.asyncio.sleep", new=AsyncMock()):
            assert await client.get("users") == {"value": []}

    @pytest.mark.asyncio
    async def test_http_date_retry_after(self, client):
        client._execute_raw = AsyncMock(side_effect=[
            _response(429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}),
            _response(200, json={"value": [{"id": "1"}]}),
        ])
        with patch("guest_mau_engine.graph.client.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await probe_dependency(client, "stable", "users") is True
        sleep.assert_awaited_once_with(INITIAL_BACKOFF_SECONDS)


class TestRetryAfter:

    def test_seconds(self):
        assert _retry_after("7", 2.0) == 7.0

    def test_missing_or_garbage_uses_default(self):
        assert _retry_after(None, 2.0) == 2.0
        assert _retry_after("soon", 2.0) == 2.0

    def test_past_http_date_is_not_positive(self):
        assert _retry_after("Wed, 21 Oct 2015 07:28:00 GMT", 2.0) <= 0

    def test_future_http_date_is_capped(self):
        assert _retry_after("Fri, 31 Dec 9999 23:59:59 GMT", 2.0) == MAX_BACKOFF_SECONDS


class TestCount:

    @pytest.mark.asyncio
    async def test_count(self, client):
        client._execute_raw = AsyncMock(return_value=_response(200, text="1234\n"))
        assert await client.get_count("users", params={"$filter": "userType eq 'Guest'"}, version="beta") == 1234
        args, kwargs = client._execute_raw.await_args
        assert args[1] == "https://graph.microsoft.com/beta/users/$count"
        assert kwargs["params"] == {"$filter": "userType eq 'Guest'"}

    @pytest.mark.asyncio
    async def test_count_error_status(self, client):
        client._execute_raw = AsyncMock(return_value=_response(400, text="Request_BadRequest"))
        with pytest.raises(GraphAPIError):
            await client.get_count("users")

    @pytest.mark.asyncio
    async def test_count_non_numeric(self, client):
        client._execute_raw = AsyncMock(return_value=_response(200, text="<html>"))
        with pytest.raises(GraphAPIError, match="Non-numeric"):
            await client.get_count("users")

    @pytest.mark.asyncio
    async def test_count_is_retried_when_throttled(self, client):
        client._execute_raw = AsyncMock(side_effect=[
            _response(429, headers={"Retry-After": "1"}),
            _response(200, text="42"),
        ])
        with patch("guest_mau_engine.graph.client.asyncio.sleep", new=AsyncMock()):
            assert await client.get_count("users") == 42
        assert client.get_stats() == {"total_requests": 2, "throttle_events": 1}

    @pytest.mark.asyncio
    async def test_count_throttled_past_retries(self, client):
        client._execute_raw = AsyncMock(return_value=_response(429))
        with patch("guest_mau_engine.graph.client.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(GraphAPIError) as exc_info:
                await client.get_count("users")
        assert exc_info.value.status_code == 429


class TestReadOnly:

    @pytest.mark.asyncio
    async def test_uninitialized_client(self, client):
        with pytest.raises(RuntimeError):
            await client.get("users")

    @pytest.mark.asyncio
    async def test_raw_layer_rejects_writes(self, client):
        client._client = object()
        with pytest.raises(SafetyViolation):
            await client._execute_raw("POST", "https://graph.microsoft.com/v1.0/users")

    @pytest.mark.asyncio
    async def test_every_request_is_validated(self, client):
        client._execute_raw = AsyncMock(return_value=_response(200, json={"value": []}))
        await client.get("users")
        await client.get_all_pages("users")
        assert client.guardian.checks_performed == 2
