"""
Authenticated REST client for the store backend.

Every request carries the current bearer token. A 401 on anything other than
login/refresh triggers exactly one token refresh, shared by all requests that
fail concurrently, and the original request is retried once. If the refresh
fails the credential provider clears the session and fires its logout
callback; callers see `AuthenticationExpiredError`.
"""
import asyncio
from datetime import datetime
from typing import Any, Optional, Protocol

import httpx
import structlog

from shared.config.settings import API_BASE_URL, REQUEST_TIMEOUT_SECONDS
from services.order_service.exceptions import (
    ApiError,
    AuthenticationExpiredError,
    NoDriversAvailableError,
    TransportError,
)

logger = structlog.get_logger(__name__)

LOGIN_PATH = "/store-managers/login"
REFRESH_PATH = "/auth/refresh"
_NO_REFRESH_PATHS = (LOGIN_PATH, REFRESH_PATH)


class CredentialProvider(Protocol):
    def get_auth_headers(self) -> dict: ...

    async def refresh_credentials(self) -> bool:
        """Obtain a new access token. On failure, clear credentials, log out and return False."""


class StoreApiClient:
    def __init__(
        self,
        base_url: str = API_BASE_URL,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        credentials: CredentialProvider = None,
        http_client: httpx.AsyncClient = None,
    ):
        self.credentials = credentials
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._refresh_task: Optional[asyncio.Task] = None

    async def aclose(self):
        await self._client.aclose()

    # --- transport ---

    def _auth_headers(self) -> dict:
        if self.credentials is None:
            return {}
        return dict(self.credentials.get_auth_headers() or {})

    async def _send(self, method: str, path: str, headers: dict, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as e:
            logger.warning("api_transport_error", method=method, path=path, error=str(e))
            raise TransportError(f"{method} {path} failed: {e}") from e

    async def _refresh_once(self) -> bool:
        # Concurrent 401s join the refresh already in flight
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self.credentials.refresh_credentials())
        task = self._refresh_task
        try:
            return await asyncio.shield(task)
        except Exception:
            logger.exception("token_refresh_crashed")
            return False

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = self._auth_headers()
        response = await self._send(method, path, headers, **kwargs)

        if response.status_code == 401 and self.credentials is not None and path not in _NO_REFRESH_PATHS:
            sent_token = headers.get("Authorization")
            current = self._auth_headers()
            # Someone else may already have refreshed while this request was in flight
            if current.get("Authorization") == sent_token or not current:
                if not await self._refresh_once():
                    raise AuthenticationExpiredError("Session expired; please sign in again")
                current = self._auth_headers()
            response = await self._send(method, path, current, **kwargs)

        if response.is_error:
            raise ApiError(response.status_code, _error_message(response))
        return response

    # --- endpoints ---

    async def login(self, username: str, password: str) -> Any:
        response = await self.request("POST", LOGIN_PATH, json={"username": username, "password": password})
        return _json(response)

    async def refresh_token(self, refresh_token: str) -> Any:
        response = await self.request("POST", REFRESH_PATH, json={"refreshToken": refresh_token})
        return _json(response)

    async def fetch_orders(self, store_id: str, status: str = None) -> Any:
        params = {"status": status} if status else None
        response = await self.request("GET", f"/orders/by-store/{store_id}", params=params)
        return _json(response)

    async def fetch_order(self, order_id: str) -> Any:
        response = await self.request("GET", f"/orders/{order_id}")
        return _json(response)

    async def update_order_status(self, order_id: str, status: str) -> Any:
        response = await self.request("PUT", f"/orders/{order_id}/status", json={"status": status})
        return _json(response)

    async def assign_driver(self, order_id: str, store_id: str) -> Any:
        try:
            response = await self.request(
                "POST", "/orders/assign-driver-fromstore", json={"orderId": order_id, "storeId": store_id}
            )
        except ApiError as e:
            if NoDriversAvailableError.matches(e.message):
                raise NoDriversAvailableError(e.status_code, e.message) from e
            raise
        return _json(response)

    async def persist_item_scan(
        self,
        order_id: str,
        barcode: str,
        picked_quantity: int,
        scanned_at: datetime,
        item_id: str = None,
    ) -> Any:
        body = {
            "scanned": True,
            "pickedQuantity": picked_quantity,
            "scannedAt": scanned_at.isoformat(),
        }
        if item_id:
            body["itemId"] = item_id
        response = await self.request("PUT", f"/orders/{order_id}/items/{barcode}/scan", json=body)
        return _json(response)

    async def register_push_token(self, manager_id: str, body: dict) -> Any:
        response = await self.request("POST", f"/store-managers/{manager_id}/register-token", json=body)
        return _json(response)


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            if payload.get(key):
                return str(payload[key])
    return response.text
