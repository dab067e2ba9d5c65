"""
Tests for the partner portal client, using httpx.MockTransport.
"""

from urllib.parse import parse_qs

import httpx
import pytest

from services.dashboard_service.clients.alwatani_client import (
    AlwataniAuthError,
    AlwataniClient,
    AlwataniUnavailable,
    extract_account_id,
    normalize_collection,
)

BASE_URL = "https://portal.test"


class PortalStub:
    """Minimal upstream: one token endpoint and one customers endpoint."""

    def __init__(self, customers=None, expire_first_token=False, login_status=200):
        self.customers = customers or []
        self.expire_first_token = expire_first_token
        self.login_status = login_status
        self.logins = 0
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/api/auth/Contractor/token":
            self.logins += 1
            if self.login_status != 200:
                return httpx.Response(
                    self.login_status, json={"error_description": "bad credentials"}
                )
            return httpx.Response(200, json={"access_token": f"token-{self.logins}"})

        if request.url.path == "/api/customers":
            token = request.headers.get("Authorization")
            if self.expire_first_token and token == "Bearer token-1":
                return httpx.Response(401)
            size = int(request.url.params["pageSize"])
            number = int(request.url.params["pageNumber"])
            items = self.customers[(number - 1) * size : number * size]
            return httpx.Response(200, json={"items": items, "totalCount": len(self.customers)})

        return httpx.Response(404)


def customers(count: int) -> list[dict]:
    return [{"self": {"id": str(1000 + i), "displayValue": f"Customer {i}"}} for i in range(count)]


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_posts_password_grant(self):
        portal = PortalStub()
        async with AlwataniClient(
            BASE_URL, "bot.n8nf", "secret", transport=httpx.MockTransport(portal)
        ) as client:
            token = await client.login()

        assert token == "token-1"
        form = parse_qs(portal.requests[0].content.decode())
        assert form["grant_type"] == ["password"]
        assert form["username"] == ["bot.n8nf"]
        assert form["password"] == ["secret"]

    @pytest.mark.asyncio
    async def test_refused_login(self):
        portal = PortalStub(login_status=400)
        async with AlwataniClient(
            BASE_URL, "bot.n8nf", "wrong", transport=httpx.MockTransport(portal)
        ) as client:
            with pytest.raises(AlwataniAuthError) as exc_info:
                await client.fetch_customers_page(1)

        assert exc_info.value.status_code == 401
        assert "bad credentials" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with AlwataniClient(
            BASE_URL, "bot.n8nf", "secret", transport=httpx.MockTransport(refuse)
        ) as client:
            with pytest.raises(AlwataniUnavailable) as exc_info:
                await client.login()

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_client_requires_context_manager(self):
        client = AlwataniClient(BASE_URL, "bot.n8nf", "secret")
        with pytest.raises(RuntimeError):
            await client.login()


class TestFetchCustomersPage:
    @pytest.mark.asyncio
    async def test_pages(self):
        portal = PortalStub(customers=customers(5))
        async with AlwataniClient(
            BASE_URL, "bot.n8nf", "secret", page_size=2, transport=httpx.MockTransport(portal)
        ) as client:
            first = await client.fetch_customers_page(1)
            last = await client.fetch_customers_page(3)

        assert len(first.items) == 2
        assert first.total_count == 5
        assert len(last.items) == 1
        assert portal.logins == 1

        params = portal.requests[1].url.params
        assert params["sortCriteria.property"] == "self.displayValue"
        assert params["sortCriteria.direction"] == "asc"
        assert portal.requests[1].headers["Authorization"] == "Bearer token-1"

    @pytest.mark.asyncio
    async def test_expired_token_logs_in_again(self):
        portal = PortalStub(customers=customers(3), expire_first_token=True)
        async with AlwataniClient(
            BASE_URL, "bot.n8nf", "secret", transport=httpx.MockTransport(portal)
        ) as client:
            page = await client.fetch_customers_page(1)

        assert portal.logins == 2
        assert len(page.items) == 3

    @pytest.mark.asyncio
    async def test_unexpected_status(self):
        def handler(request):
            if request.url.path.endswith("/token"):
                return httpx.Response(200, json={"access_token": "t"})
            return httpx.Response(502, text="bad gateway")

        async with AlwataniClient(
            BASE_URL, "bot.n8nf", "secret", transport=httpx.MockTransport(handler)
        ) as client:
            with pytest.raises(AlwataniUnavailable, match="status 502"):
                await client.fetch_customers_page(1)


class TestPayloadHelpers:
    @pytest.mark.parametrize(
        "payload, expected",
        [
            ({"items": [{"a": 1}]}, [{"a": 1}]),
            ({"data": [{"a": 1}]}, [{"a": 1}]),
            ({"models": [{"a": 1}]}, [{"a": 1}]),
            ([{"a": 1}], [{"a": 1}]),
            ({"unrelated": 1}, []),
            (None, []),
        ],
    )
    def test_normalize_collection(self, payload, expected):
        assert normalize_collection(payload) == expected

    @pytest.mark.parametrize(
        "record, expected",
        [
            ({"accountId": 5}, "5"),
            ({"customerId": "7"}, "7"),
            ({"self": {"id": "9"}}, "9"),
            ({"id": 11}, "11"),
            ({"name": "x"}, None),
            ({}, None),
        ],
    )
    def test_extract_account_id(self, record, expected):
        assert extract_account_id(record) == expected
