from __future__ import annotations

import unittest

import httpx
from fastapi.testclient import TestClient

from fakes import FakeBackend
from services.auth_service.schemas import Manager
from services.notification_service.main import create_notification_app
from services.notification_service.service import PushTokenService
from shared.security.api_key import NOTIFICATION_RELAY_KEY, verify_api_key


class _Poller:
    running = True


class RecordingEngine:
    def __init__(self):
        self.events = []
        self.poller = _Poller()
        self.orders = (object(), object())

    async def handle_notification(self, event):
        self.events.append(event)
        return True


class NotificationAppTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = RecordingEngine()
        self.client = TestClient(create_notification_app(self.engine, observability=False))
        self.headers = {"X-Notification-Key": NOTIFICATION_RELAY_KEY}

    def test_missing_or_wrong_key_is_rejected(self) -> None:
        self.assertEqual(self.client.post("/notifications", json={"type": "grocery_order"}).status_code, 403)
        response = self.client.post(
            "/notifications", json={"type": "grocery_order"}, headers={"X-Notification-Key": "wrong"}
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.engine.events, [])

    def test_delivery_is_acknowledged_and_applied(self) -> None:
        response = self.client.post(
            "/notifications", json={"type": "grocery_order", "orderId": 42, "title": "New order"}, headers=self.headers
        )
        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.json(), {"accepted": True, "type": "grocery_order"})
        self.assertEqual(len(self.engine.events), 1)
        event = self.engine.events[0]
        self.assertEqual(event["type"], "grocery_order")
        self.assertEqual(event["orderId"], 42)
        self.assertEqual(event["title"], "New order")

    def test_malformed_delivery(self) -> None:
        response = self.client.post("/notifications", json={"orderId": 1}, headers=self.headers)
        self.assertEqual(response.status_code, 422)

    def test_no_engine_yet(self) -> None:
        client = TestClient(create_notification_app(observability=False))
        response = client.post("/notifications", json={"type": "order_updated"}, headers=self.headers)
        self.assertEqual(response.status_code, 503)

    def test_health(self) -> None:
        self.assertEqual(
            self.client.get("/health").json(),
            {"service": "store_ops", "status": "running", "polling": True, "orders": 2},
        )

    def test_key_comparison(self) -> None:
        self.assertTrue(verify_api_key("k", expected_key="k"))
        self.assertFalse(verify_api_key("", expected_key=""))
        self.assertFalse(verify_api_key("k", expected_key="other"))


class PushTokenServiceTests(unittest.IsolatedAsyncioTestCase):
    PATH = "/store-managers/11/register-token"

    async def test_registration_body(self) -> None:
        backend = FakeBackend().on("POST", self.PATH, {"success": True})
        api = backend.api()
        manager = Manager(id="11", store_id="7")
        self.assertEqual(await PushTokenService.register(api, manager, "push-abc", platform="android"), {"success": True})
        body = backend.bodies("POST", self.PATH)[0]
        self.assertEqual(body["storeManagerId"], "11")
        self.assertEqual(body["storeId"], "7")
        self.assertEqual(body["pushToken"], "push-abc")
        self.assertEqual(body["deviceInfo"]["platform"], "android")
        await api.aclose()

    async def test_registration_failure_is_swallowed(self) -> None:
        backend = FakeBackend().on("POST", self.PATH, httpx.Response(500, json={"message": "push service down"}))
        api = backend.api()
        self.assertIsNone(await PushTokenService.register(api, Manager(id="11", store_id="7"), "push-abc"))
        self.assertIsNone(await PushTokenService.register(api, None, "push-abc"))
        await api.aclose()


if __name__ == "__main__":
    unittest.main()
