"""
Craftify Sync - Remote Store Client

Async HTTP client for the backing store: paginated record queries, record
create/delete, the per-user private key-value store, and query subscriptions.
Transport and HTTP failures are mapped onto the sync error hierarchy. There is
no retry loop here; retrying is a user action.
"""

import logging
from typing import Any, Optional

import httpx

from .config import SyncConfig
from .connectivity import ConnectivityMonitor
from .errors import (
    AuthenticationError,
    ConnectivityError,
    NetworkError,
    NotFoundError,
    RemoteError,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class RemoteStore:
    """Client for the public records store and the private per-user store."""

    def __init__(
        self,
        config: SyncConfig,
        monitor: Optional[ConnectivityMonitor] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.monitor = monitor or ConnectivityMonitor()
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None
        self._user_id: Optional[str] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.config.api_base_url,
                timeout=httpx.Timeout(self.config.api_timeout),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    def _auth_headers(self) -> dict[str, str]:
        if not self.config.access_token:
            raise AuthenticationError("No access token configured", status_code=401)
        return {"Authorization": f"Bearer {self.config.access_token}"}

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        """Make an authenticated API request."""
        if not self.monitor.is_connected:
            raise ConnectivityError("No internet connection")

        client = await self._get_http_client()
        headers = kwargs.pop("headers", {})
        headers.update(self._auth_headers())

        try:
            response = await client.request(
                method,
                f"{API_PREFIX}{endpoint}",
                headers=headers,
                **kwargs,
            )
            response.raise_for_status()
            return response

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            if status == 404:
                raise NotFoundError(f"Not found: {endpoint}") from e
            if status in (401, 403):
                raise AuthenticationError(f"Authentication failed: {detail}", status_code=status) from e
            raise RemoteError(f"API error: {status} - {detail}", status_code=status) from e

        except httpx.RequestError as e:
            logger.warning(f"Network error on {method} {endpoint}: {e}")
            raise NetworkError(str(e) or type(e).__name__) from e

    # === Identity ===

    async def fetch_user_id(self) -> str:
        """Return the current user's identity, cached after the first call."""
        if self._user_id is None:
            response = await self._request("GET", "/users/me")
            self._user_id = response.json()["user_id"]
        return self._user_id

    async def health_check(self) -> bool:
        """Check if the API is reachable."""
        client = await self._get_http_client()
        return await self.monitor.probe(client, "/health")

    async def start_probing(self, interval: float) -> None:
        """Feed the connectivity monitor from periodic health checks."""
        client = await self._get_http_client()
        self.monitor.start_probing(client, "/health", interval)

    # === Records ===

    async def query(
        self,
        record_type: str,
        filters: Optional[dict[str, Any]] = None,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> tuple[list[dict], Optional[str]]:
        """Fetch one page of records; returns (records, next_cursor)."""
        params: dict[str, Any] = dict(filters or {})
        params["limit"] = limit or self.config.page_size
        if cursor:
            params["cursor"] = cursor

        response = await self._request("GET", f"/records/{record_type}", params=params)
        data = response.json()
        return data.get("records", []), data.get("cursor")

    async def query_all(
        self,
        record_type: str,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[dict]:
        """
        Follow cursors until the store reports no more pages.

        Any page error propagates, so callers never see a truncated result.
        """
        records: list[dict] = []
        cursor: Optional[str] = None
        pages = 0

        while True:
            page, cursor = await self.query(record_type, filters, cursor=cursor)
            records.extend(page)
            pages += 1
            if not cursor:
                break

        logger.debug(f"Fetched {len(records)} {record_type} records in {pages} page(s)")
        return records

    async def create_record(
        self,
        record_type: str,
        fields: dict[str, Any],
        record_name: Optional[str] = None,
    ) -> dict:
        """Create a record and return it as stored."""
        payload: dict[str, Any] = {"fields": fields}
        if record_name is not None:
            payload["record_name"] = record_name
        response = await self._request("POST", f"/records/{record_type}", json=payload)
        return response.json()

    async def delete_record(self, record_type: str, record_name: str) -> None:
        """Delete a record; raises NotFoundError if it does not exist."""
        await self._request("DELETE", f"/records/{record_type}/{record_name}")

    # === Private Key-Value Store ===

    async def get_value(self, key: str) -> Any:
        """Read a private value; None when the key was never written."""
        try:
            response = await self._request("GET", f"/private/{key}")
        except NotFoundError:
            return None
        return response.json()["value"]

    async def set_value(self, key: str, value: Any) -> None:
        """Write a private value; the latest write wins."""
        await self._request("PUT", f"/private/{key}", json={"value": value})

    async def delete_value(self, key: str) -> None:
        """Delete a private value; a missing key is not an error."""
        try:
            await self._request("DELETE", f"/private/{key}")
        except NotFoundError:
            pass

    # === Subscriptions ===

    async def fetch_subscription(self, subscription_id: str) -> Optional[dict]:
        """Return the subscription, or None if it does not exist."""
        try:
            response = await self._request("GET", f"/subscriptions/{subscription_id}")
        except NotFoundError:
            return None
        return response.json()

    async def save_subscription(self, subscription_id: str, body: dict[str, Any]) -> dict:
        """Create or replace a subscription."""
        response = await self._request("PUT", f"/subscriptions/{subscription_id}", json=body)
        return response.json()

    async def delete_subscription(self, subscription_id: str) -> None:
        """Delete a subscription; raises NotFoundError if it does not exist."""
        await self._request("DELETE", f"/subscriptions/{subscription_id}")


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)
