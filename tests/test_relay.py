import os
import sys
import unittest
from unittest import mock

import requests

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from core.errors import ConflictError, NotFoundError, TransportError, ValidationError  # noqa: E402
from sync.relay import RelayTransport  # noqa: E402


def response(status=200, body=None, reason="OK"):
    resp = mock.Mock(spec=requests.Response)
    resp.status_code = status
    resp.reason = reason
    if isinstance(body, Exception):
        resp.json.side_effect = body
    else:
        resp.json.return_value = body
    return resp


class RelayTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.session = mock.Mock(spec=requests.Session)
        self.relay = RelayTransport(
            "http://relay.local/api/", timeout=8, health_timeout=2, session=self.session
        )

    def _last_call(self):
        args, kwargs = self.session.request.call_args
        return args[0], args[1], kwargs

    async def test_health_uses_short_timeout(self):
        self.session.request.return_value = response(body={"status": "ok"})
        self.assertEqual(await self.relay.health(), {"status": "ok"})
        method, url, kwargs = self._last_call()
        self.assertEqual((method, url), ("GET", "http://relay.local/api/health"))
        self.assertEqual(kwargs["timeout"], 2)

    async def test_product_endpoints(self):
        self.session.request.return_value = response(body=[])
        await self.relay.list_products_by_category("Canned Goods")
        method, url, kwargs = self._last_call()
        self.assertEqual((method, url), ("GET", "http://relay.local/api/products"))
        self.assertEqual(kwargs["params"], {"category": "Canned Goods"})
        self.assertEqual(kwargs["timeout"], 8)

        self.session.request.return_value = response(201, {"id": "x"})
        await self.relay.add_product({"name": "Chippy", "category": "Snacks", "price": 10})
        method, url, kwargs = self._last_call()
        self.assertEqual((method, url), ("POST", "http://relay.local/api/products"))
        self.assertEqual(kwargs["json"]["name"], "Chippy")

        await self.relay.delete_product("a/b")
        method, url, _ = self._last_call()
        self.assertEqual((method, url), ("DELETE", "http://relay.local/api/products/a%2Fb"))

    async def test_price_update_uses_find_update(self):
        self.session.request.return_value = response(body={"id": "x"})
        await self.relay.update_product_by_lookup("Chippy", "Snacks", {"price": 12, "name": "Chippy"})
        method, url, kwargs = self._last_call()
        self.assertEqual((method, url), ("PUT", "http://relay.local/api/products/find/update"))
        self.assertEqual(kwargs["json"], {"name": "Chippy", "category": "Snacks", "price": 12})

    async def test_rename_resolves_id_then_puts(self):
        self.session.request.side_effect = [
            response(body=[{"id": "p9", "name": "Chippy", "category": "Snacks"}]),
            response(body={"id": "p9"}),
        ]
        await self.relay.update_product_by_lookup(
            "Chippy", "Snacks", {"name": "Chippy BBQ", "category": "Snacks", "price": 12}
        )
        method, url, kwargs = self._last_call()
        self.assertEqual((method, url), ("PUT", "http://relay.local/api/products/p9"))
        self.assertEqual(kwargs["json"]["name"], "Chippy BBQ")

    async def test_lookup_miss_and_ambiguity(self):
        self.session.request.return_value = response(body=[])
        with self.assertRaises(NotFoundError):
            await self.relay.delete_product_by_lookup("Chippy", "Snacks")

        twice = [{"id": "a", "name": "Chippy"}, {"id": "b", "name": "Chippy"}]
        self.session.request.return_value = response(body=twice)
        with self.assertRaises(ConflictError):
            await self.relay.delete_product_by_lookup("Chippy", "Snacks")

    async def test_sales_endpoints(self):
        self.session.request.return_value = response(body=[])
        await self.relay.list_session_purchases("s 1")
        _, url, _ = self._last_call()
        self.assertEqual(url, "http://relay.local/api/purchases/session/s%201")

        await self.relay.update_session("s1", {"status": "ended"})
        method, url, _ = self._last_call()
        self.assertEqual((method, url), ("PUT", "http://relay.local/api/sessions/s1"))

    async def test_status_codes_map_to_errors(self):
        cases = [
            (400, ValidationError, None),
            (404, NotFoundError, None),
            (409, ConflictError, None),
            (403, TransportError, "permission-denied"),
            (500, TransportError, "http-500"),
        ]
        for status, error, code in cases:
            self.session.request.return_value = response(
                status, {"error": "Nope", "details": "why"}, reason="Err"
            )
            with self.assertRaises(error) as ctx:
                await self.relay.list_products()
            self.assertIn("Nope (why)", str(ctx.exception))
            if code:
                self.assertEqual(ctx.exception.code, code)

    async def test_network_failures(self):
        self.session.request.side_effect = requests.Timeout("slow")
        with self.assertRaises(TransportError) as ctx:
            await self.relay.list_products()
        self.assertEqual(ctx.exception.code, "timeout")

        self.session.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(TransportError) as ctx:
            await self.relay.list_products()
        self.assertEqual(ctx.exception.code, "unavailable")

    async def test_invalid_json_body(self):
        self.session.request.return_value = response(body=ValueError("no json"))
        with self.assertRaises(TransportError):
            await self.relay.list_purchases()


if __name__ == "__main__":
    unittest.main()
