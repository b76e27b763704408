"""Entity store HTTP client: URLs, envelopes, paging and error mapping."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from connectors.entity_store.client import (
    EntityStoreClient,
    StoreApiError,
    StoreAuthenticationError,
    StoreNotFoundError,
    StoreRateLimitError,
    StoreValidationError,
    parse_retry_after,
)
from core.config import RetryConfig, StoreConfig


def make_client(max_retries=2):
    config = StoreConfig(
        base_url="https://store.test/",
        app_id="app1",
        retry_config=RetryConfig(max_retries=max_retries, base_delay=0),
    )
    return EntityStoreClient(config, "tok")


class FakeResponse:

    def __init__(self, status, text="", headers=None):
        self.status = status
        self._text = text
        self.headers = headers or {}

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None


class FakeSession:
    """Replays canned responses and records the requests made."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, headers=None, params=None, json=None, timeout=None):
        self.requests.append({"method": method, "url": url, "headers": headers, "params": params, "json": json})
        return self.responses.pop(0)

    async def close(self):
        pass


def call(client, session, coro_fn):
    client._session = session
    return asyncio.run(coro_fn())


class TestUrls:

    def test_collection_and_record_urls(self):
        config = make_client().config
        assert config.get_entities_url("Role") == "https://store.test/api/apps/app1/entities/Role"
        assert config.get_record_url("Role", "r1").endswith("/entities/Role/r1")
        assert config.get_me_url().endswith("/entities/User/me")


class TestOperations:

    def test_list_sends_paging_params_and_token(self):
        client = make_client()
        session = FakeSession(FakeResponse(200, '[{"id": "a"}]'))

        records = call(client, session, lambda: client.list("Role", sort="-created_date", limit=50, skip=100))

        assert records == [{"id": "a"}]
        sent = session.requests[0]
        assert sent["method"] == "GET"
        assert sent["params"] == {"sort": "-created_date", "limit": "50", "skip": "100"}
        assert sent["headers"]["Authorization"] == "Bearer tok"

    @pytest.mark.parametrize("body", ['{"items": [{"id": "a"}]}', '{"value": [{"id": "a"}]}'])
    def test_list_unwraps_envelopes(self, body):
        client = make_client()
        records = call(client, FakeSession(FakeResponse(200, body)), lambda: client.list("Role"))
        assert records == [{"id": "a"}]

    def test_update_uses_put(self):
        client = make_client()
        session = FakeSession(FakeResponse(200, '{"id": "r1", "level": 5}'))

        call(client, session, lambda: client.update("Role", "r1", {"level": 5}))

        assert session.requests[0]["method"] == "PUT"
        assert session.requests[0]["json"] == {"level": 5}

    def test_delete_accepts_empty_body(self):
        client = make_client()
        assert call(client, FakeSession(FakeResponse(204)), lambda: client.delete("Role", "r1")) is None

    def test_me(self):
        client = make_client()
        body = '{"id": "u1", "email": "a@b.c", "role": "admin", "extra": 1}'

        user = call(client, FakeSession(FakeResponse(200, body)), client.me)

        assert user.is_admin
        assert user.email == "a@b.c"

    def test_list_all_pages_until_short_page(self):
        client = make_client()
        pages = [[{"id": 1}, {"id": 2}], [{"id": 3}, {"id": 4}], [{"id": 5}]]
        with patch.object(client, "list", AsyncMock(side_effect=pages)) as listed:
            records = asyncio.run(client.list_all("Role", page_size=2))

        assert [r["id"] for r in records] == [1, 2, 3, 4, 5]
        assert [c.kwargs["skip"] for c in listed.call_args_list] == [0, 2, 4]

    def test_list_all_stops_when_store_ignores_skip(self):
        client = make_client()
        page = [{"id": 1}, {"id": 2}]
        with patch.object(client, "list", AsyncMock(return_value=page)) as listed:
            records = asyncio.run(client.list_all("Role", page_size=2))

        assert [r["id"] for r in records] == [1, 2]
        assert listed.await_count == 2

    def test_list_all_page_cap(self):
        client = make_client()
        pages = ([{"id": n}, {"id": n + 100}] for n in range(10))
        with patch.object(client, "list", AsyncMock(side_effect=pages)) as listed:
            records = asyncio.run(client.list_all("Role", page_size=2, max_pages=3))

        assert len(records) == 6
        assert listed.await_count == 3


class TestErrors:

    @pytest.mark.parametrize("status,error", [
        (401, StoreAuthenticationError),
        (403, StoreAuthenticationError),
        (404, StoreNotFoundError),
        (422, StoreValidationError),
    ])
    def test_status_mapping(self, status, error):
        client = make_client()
        with pytest.raises(error) as exc_info:
            call(client, FakeSession(FakeResponse(status, "nope")), lambda: client.list("Role"))
        assert exc_info.value.status_code == status

    def test_server_errors_retried_then_raised(self):
        client = make_client(max_retries=2)
        session = FakeSession(*[FakeResponse(503, "busy") for _ in range(3)])

        with pytest.raises(StoreApiError) as exc_info:
            call(client, session, lambda: client.list("Role"))

        assert exc_info.value.status_code == 503
        assert len(session.requests) == 3

    def test_server_error_recovers(self):
        client = make_client()
        session = FakeSession(FakeResponse(500, "oops"), FakeResponse(200, "[]"))

        assert call(client, session, lambda: client.list("Role")) == []
        assert len(session.requests) == 2

    def test_rate_limit_exhausted(self):
        client = make_client(max_retries=1)
        session = FakeSession(*[FakeResponse(429, "", {"Retry-After": "0"}) for _ in range(2)])

        with pytest.raises(StoreRateLimitError):
            call(client, session, lambda: client.list("Role"))

    def test_rate_limit_with_http_date_falls_back_to_backoff(self):
        client = make_client()
        session = FakeSession(
            FakeResponse(429, "", {"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}),
            FakeResponse(200, '{"id": "r1"}'),
        )

        with patch("connectors.entity_store.client.asyncio.sleep", AsyncMock()) as sleep:
            created = call(client, session, lambda: client.create("Role", {"code": "OP"}))

        assert created == {"id": "r1"}
        assert len(session.requests) == 2
        sleep.assert_awaited_once_with(0)

    def test_rate_limit_honours_numeric_retry_after(self):
        client = make_client()
        session = FakeSession(FakeResponse(429, "", {"Retry-After": "3"}), FakeResponse(200, "[]"))

        with patch("connectors.entity_store.client.asyncio.sleep", AsyncMock()) as sleep:
            call(client, session, lambda: client.list("Role"))

        sleep.assert_awaited_once_with(3.0)

    @pytest.mark.parametrize("header,expected", [
        (None, 1.5),
        ("2", 2.0),
        ("-4", 1.5),
        ("soon", 1.5),
        ("Wed, 21 Oct 2026 07:28:00 GMT", 1.5),
    ])
    def test_parse_retry_after(self, header, expected):
        assert parse_retry_after(header, 1.5) == expected

    def test_not_connected(self):
        client = make_client()
        with pytest.raises(StoreApiError):
            asyncio.run(client.list("Role"))
