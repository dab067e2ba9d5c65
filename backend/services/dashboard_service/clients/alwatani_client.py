"""
Client for the upstream FTTH partner portal (Alwatani).

This module wraps the two upstream calls a customer sync needs: the contractor
token login and the paginated customers listing. It performs the network calls
only; progress reporting and storage belong to the sync job.

Upstream API:
    POST /api/auth/Contractor/token
        Form-encoded ``grant_type=password`` login, returns ``access_token``.
    GET /api/customers?pageSize=&pageNumber=&sortCriteria.property=self.displayValue
                      &sortCriteria.direction=asc
        Bearer-authenticated page of customers. The list is under ``items``
        (or ``data``/``models``) and the total under ``totalCount``.

Error Handling:
    - Non-200 login or missing token: AlwataniAuthError (401 to our callers)
    - Network failure or unexpected status: AlwataniUnavailable (503)
    - An expired token (401 on a page) triggers one re-login and one retry

Example:
    ```python
    async with AlwataniClient(base_url, "bot.n8nf", "secret") as client:
        page = await client.fetch_customers_page(1)
        print(page.total_count, len(page.items))
    ```
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger

from ftth_common.exceptions import (
    HTTP_401_UNAUTHORIZED,
    HTTP_503_SERVICE_UNAVAILABLE,
    APIError,
)

TOKEN_PATH = "/api/auth/Contractor/token"
CUSTOMERS_PATH = "/api/customers"
SORT_PROPERTY = "self.displayValue"
COLLECTION_KEYS = ("items", "data", "models")


class AlwataniAuthError(APIError):
    def __init__(self, username: str, detail: str | None = None) -> None:
        self.username = username
        super().__init__(
            f"Login to the partner portal failed for {username}"
            + (f": {detail}" if detail else ""),
            status_code=HTTP_401_UNAUTHORIZED,
        )


class AlwataniUnavailable(APIError):
    def __init__(self, detail: str, internal_error: Exception | None = None) -> None:
        super().__init__(
            f"Partner portal unavailable: {detail}",
            status_code=HTTP_503_SERVICE_UNAVAILABLE,
            internal_error=internal_error,
        )


@dataclass
class CustomerPage:
    page_number: int
    items: list[dict[str, Any]] = field(default_factory=list)
    total_count: int | None = None


def normalize_collection(payload: Any) -> list[dict[str, Any]]:
    """Return the list of records in an upstream payload, whatever key holds it."""
    if not payload:
        return []
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in COLLECTION_KEYS:
            if isinstance(payload.get(key), list):
                return payload[key]
    return []


def extract_account_id(record: dict[str, Any]) -> str | None:
    """Find the customer's account id among the field names the portal uses."""
    if not record:
        return None
    self_ref = record.get("self") or {}
    for value in (
        record.get("accountId"),
        record.get("AccountId"),
        record.get("customerAccountId"),
        record.get("customerId"),
        self_ref.get("accountId"),
        self_ref.get("id"),
        record.get("id"),
    ):
        if value not in (None, ""):
            return str(value)
    return None


def _total_count(payload: Any) -> int | None:
    if isinstance(payload, dict):
        for key in ("totalCount", "total"):
            value = payload.get(key)
            if isinstance(value, int) and value >= 0:
                return value
    return None


class AlwataniClient:
    """
    Authenticated session against the partner portal for one linked account.

    Use as an async context manager so the underlying httpx.AsyncClient is
    closed. The token is obtained lazily on the first page request.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        page_size: int = 100,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.username = username
        self._password = password
        self.page_size = page_size
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._token: str | None = None

    async def __aenter__(self) -> "AlwataniClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "AlwataniClient must be used as an async context manager"
            raise RuntimeError(msg)
        return self._client

    async def login(self) -> str:
        """
        Exchange the account credentials for a bearer token.

        Raises:
            AlwataniAuthError: The portal refused the credentials.
            AlwataniUnavailable: The portal could not be reached.
        """
        logger.info(f"Logging in to partner portal as {self.username}")
        try:
            response = await self.client.post(
                TOKEN_PATH,
                data={
                    "grant_type": "password",
                    "scope": "openid profile",
                    "client_id": "",
                    "username": self.username,
                    "password": self._password,
                },
                headers={"Referer": f"{self.base_url}/auth/login"},
            )
        except httpx.RequestError as e:
            logger.error(f"Partner portal login request failed: {e}")
            raise AlwataniUnavailable(str(e), internal_error=e) from e

        payload = _json_or_none(response)
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if response.status_code != 200 or not token:
            detail = None
            if isinstance(payload, dict):
                detail = (
                    payload.get("error_description")
                    or payload.get("error")
                    or payload.get("title")
                )
            logger.warning(
                f"Partner portal login refused for {self.username} "
                f"(status {response.status_code})"
            )
            raise AlwataniAuthError(self.username, detail)

        self._token = token
        return token

    async def fetch_customers_page(self, page_number: int) -> CustomerPage:
        """
        Fetch one page of customers (1-based).

        Raises:
            AlwataniAuthError: Login failed, including after a token refresh.
            AlwataniUnavailable: Network failure or unexpected status.
        """
        if self._token is None:
            await self.login()

        response = await self._get_customers(page_number)
        if response.status_code == HTTP_401_UNAUTHORIZED:
            logger.info(f"Partner portal token expired for {self.username}, logging in again")
            await self.login()
            response = await self._get_customers(page_number)

        if response.status_code != 200:
            raise AlwataniUnavailable(
                f"customers page {page_number} returned status {response.status_code}"
            )

        payload = _json_or_none(response)
        return CustomerPage(
            page_number=page_number,
            items=normalize_collection(payload),
            total_count=_total_count(payload),
        )

    async def _get_customers(self, page_number: int) -> httpx.Response:
        try:
            return await self.client.get(
                CUSTOMERS_PATH,
                params={
                    "pageSize": self.page_size,
                    "pageNumber": page_number,
                    "sortCriteria.property": SORT_PROPERTY,
                    "sortCriteria.direction": "asc",
                },
                headers={"Authorization": f"Bearer {self._token}"},
            )
        except httpx.RequestError as e:
            logger.error(f"Partner portal customers request failed: {e}")
            raise AlwataniUnavailable(str(e), internal_error=e) from e


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
