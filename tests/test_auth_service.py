from __future__ import annotations

import asyncio
import unittest
from datetime import datetime, timedelta, timezone

import httpx
from jose import jwt

from fakes import FakeBackend, make_session_factory, wait_until
from services.auth_service.repository import CredentialRepository
from services.auth_service.service import AuthSession
from services.order_service.exceptions import ApiError, AuthenticationExpiredError
from services.sync_service.engine import SyncEngine
from shared.security import is_token_expired

LOGIN = "/store-managers/login"
REFRESH = "/auth/refresh"
ORDERS = "/orders/by-store/7"
MANAGER = {"id": 11, "storeId": 7, "name": "Pat Lee", "username": "pat", "storeName": "Downtown"}


def _jwt(minutes: int) -> str:
    exp = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    return jwt.encode({"sub": "11", "exp": int(exp.timestamp())}, "test-secret", algorithm="HS256")


class TokenExpiryTests(unittest.TestCase):
    def test_expiry_rules(self) -> None:
        self.assertTrue(is_token_expired(""))
        self.assertTrue(is_token_expired(_jwt(-5)))
        self.assertFalse(is_token_expired(_jwt(5)))
        self.assertFalse(is_token_expired("opaque-session-token"))
        self.assertFalse(is_token_expired(jwt.encode({"sub": "11"}, "test-secret", algorithm="HS256")))


class AuthSessionTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db_engine, self.session_factory = await make_session_factory()
        self.backend = FakeBackend()
        self.api = self.backend.api()
        self.auth = AuthSession(self.api, session_factory=self.session_factory)
        self.api.credentials = self.auth
        self.logouts = 0

    async def asyncTearDown(self) -> None:
        await self.api.aclose()
        await self.db_engine.dispose()

    async def _on_logout(self):
        self.logouts += 1

    async def _stored(self):
        async with self.session_factory() as db:
            return await CredentialRepository.get(db)

    async def _login(self, token="access-1", refresh="refresh-1"):
        self.backend.on("POST", LOGIN, {"token": token, "refreshToken": refresh, "manager": MANAGER})
        return await self.auth.login("pat", "secret")

    async def test_login_persists_session(self) -> None:
        manager = await self._login()
        self.assertEqual(manager.id, "11")
        self.assertEqual(manager.store_id, "7")
        self.assertEqual(manager.store_name, "Downtown")
        self.assertTrue(self.auth.is_authenticated)
        self.assertEqual(self.auth.get_auth_headers()["Authorization"], "Bearer access-1")
        self.assertEqual(self.backend.bodies("POST", LOGIN), [{"username": "pat", "password": "secret"}])
        stored = await self._stored()
        self.assertEqual((stored.access_token, stored.refresh_token), ("access-1", "refresh-1"))

    async def test_bad_login_response_is_an_api_error(self) -> None:
        self.backend.on("POST", LOGIN, {"token": "x"})
        with self.assertRaises(ApiError):
            await self.auth.login("pat", "secret")
        self.assertFalse(self.auth.is_authenticated)

    async def test_restore_resumes_stored_session(self) -> None:
        await self._login(token=_jwt(30))
        fresh = AuthSession(self.api, session_factory=self.session_factory)
        self.assertTrue(await fresh.restore())
        self.assertEqual(fresh.manager.store_id, "7")
        self.assertEqual(fresh.refresh_token, "refresh-1")

    async def test_restore_keeps_expired_token_with_refresh_token(self) -> None:
        await self._login(token=_jwt(-30))
        fresh = AuthSession(self.api, session_factory=self.session_factory)
        self.assertTrue(await fresh.restore())

    async def test_restore_discards_expired_session_without_refresh_token(self) -> None:
        await self._login(token=_jwt(-30), refresh=None)
        fresh = AuthSession(self.api, session_factory=self.session_factory)
        self.assertFalse(await fresh.restore())
        self.assertIsNone(await self._stored())

    async def test_restore_without_stored_session(self) -> None:
        self.assertFalse(await self.auth.restore())

    async def test_expired_token_is_refreshed_transparently(self) -> None:
        await self._login()

        async def orders(request):
            if request.headers.get("Authorization") == "Bearer access-2":
                return httpx.Response(200, json=[])
            return httpx.Response(401, json={"message": "jwt expired"})

        self.backend.on("GET", ORDERS, orders).on("POST", REFRESH, {"accessToken": "access-2"})
        self.assertEqual(await self.api.fetch_orders("7"), [])
        self.assertEqual(self.backend.bodies("POST", REFRESH), [{"refreshToken": "refresh-1"}])
        stored = await self._stored()
        self.assertEqual((stored.access_token, stored.refresh_token), ("access-2", "refresh-1"))

    async def test_failed_refresh_logs_out(self) -> None:
        await self._login()
        self.auth.add_logout_listener(self._on_logout)
        self.backend.on("GET", ORDERS, httpx.Response(401)).on("POST", REFRESH, httpx.Response(401))

        with self.assertRaises(AuthenticationExpiredError):
            await self.api.fetch_orders("7")

        self.assertEqual(self.logouts, 1)
        self.assertFalse(self.auth.is_authenticated)
        self.assertEqual(self.auth.get_auth_headers(), {"Content-Type": "application/json"})
        self.assertIsNone(await self._stored())

    async def test_failed_refresh_during_poll_stops_polling(self) -> None:
        await self._login()
        self.backend.on("GET", ORDERS, httpx.Response(401)).on("POST", REFRESH, httpx.Response(401))
        engine = SyncEngine(self.api, store_id="7", poll_interval=0.01)
        self.auth.add_logout_listener(engine.stop)
        self.auth.add_logout_listener(self._on_logout)

        engine.start()
        await wait_until(lambda: self.logouts == 1)

        self.assertFalse(engine.poller.running)
        await asyncio.sleep(0.05)
        self.assertEqual(len(self.backend.calls("GET", ORDERS)), 1)
        self.assertEqual(len(self.backend.calls("POST", REFRESH)), 1)
        self.assertFalse(self.auth.is_authenticated)

    async def test_refresh_without_refresh_token_logs_out(self) -> None:
        await self._login(refresh=None)
        calls = []
        self.auth.add_logout_listener(lambda: calls.append("sync"))
        self.assertFalse(await self.auth.refresh_credentials())
        self.assertEqual(calls, ["sync"])
        self.assertEqual(self.backend.calls("POST", REFRESH), [])


if __name__ == "__main__":
    unittest.main()
