import asyncio
import os
import sys
import unittest

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from core.errors import NotFoundError, TransportError, ValidationError  # noqa: E402
from sync.facade import Liveness, RemoteFacade  # noqa: E402


class ScriptedTransport:
    """Transport whose behaviour per call is set by the test."""

    def __init__(self, name, result=None, error=None, delay=0.0, healthy=True):
        self.name = name
        self.result = result if result is not None else []
        self.error = error
        self.delay = delay
        self.healthy = healthy
        self.calls = []
        self.finished = []

    async def _run(self, op, *args):
        self.calls.append((op, args))
        if self.delay:
            await asyncio.sleep(self.delay)
        self.finished.append(op)
        if self.error is not None:
            raise self.error
        return self.result

    async def health(self):
        if not self.healthy:
            raise TransportError("down", "unavailable")
        return {"status": "ok"}

    async def list_products(self):
        return await self._run("list_products")

    async def add_product(self, data):
        return await self._run("add_product", data)

    async def update_product_by_lookup(self, name, category, changes):
        return await self._run("update_product_by_lookup", name, category, changes)

    async def add_purchase(self, data):
        return await self._run("add_purchase", data)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FacadeTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_primary_success_skips_relay(self):
        primary = ScriptedTransport("store", result=[{"id": "a"}])
        relay = ScriptedTransport("relay")
        facade = RemoteFacade(primary, relay)

        self.assertEqual(await facade.list_products(), [{"id": "a"}])
        self.assertEqual(relay.calls, [])

    async def test_falls_back_to_relay(self):
        primary = ScriptedTransport("store", error=TransportError("denied", "permission-denied"))
        relay = ScriptedTransport("relay", result=[{"id": "b"}])
        facade = RemoteFacade(primary, relay)

        self.assertEqual(await facade.list_products(), [{"id": "b"}])
        self.assertTrue(facade.liveness.known)

    async def test_primary_timeout_falls_back_and_call_finishes_later(self):
        primary = ScriptedTransport("store", result=[{"id": "slow"}], delay=0.2)
        relay = ScriptedTransport("relay", result=[{"id": "fast"}])
        facade = RemoteFacade(primary, relay, primary_timeout=0.05)

        self.assertEqual(await facade.list_products(), [{"id": "fast"}])
        # the timed-out call was not cancelled
        await asyncio.sleep(0.3)
        self.assertEqual(primary.finished, ["list_products"])

    async def test_both_failing_raises_transport_error(self):
        primary = ScriptedTransport("store", error=TransportError("offline", "unavailable"))
        relay = ScriptedTransport("relay", error=TransportError("502", "http-502"))
        facade = RemoteFacade(primary, relay)

        with self.assertRaises(TransportError) as ctx:
            await facade.list_products()
        self.assertIn("Failed to sync", str(ctx.exception))
        self.assertFalse(facade.liveness.known)

    async def test_no_relay_configured(self):
        primary = ScriptedTransport("store", error=TransportError("offline", "unavailable"))
        facade = RemoteFacade(primary)

        with self.assertRaises(TransportError) as ctx:
            await facade.list_products()
        self.assertEqual(ctx.exception.code, "unavailable")

    async def test_unhealthy_relay_is_not_called(self):
        primary = ScriptedTransport("store", error=TransportError("offline", "unavailable"))
        relay = ScriptedTransport("relay", healthy=False)
        facade = RemoteFacade(primary, relay)

        with self.assertRaises(TransportError):
            await facade.list_products()
        self.assertEqual(relay.calls, [])

    async def test_relay_health_answering_with_an_error_counts_as_down(self):
        primary = ScriptedTransport("store", error=TransportError("offline", "unavailable"))
        relay = ScriptedTransport("relay")

        async def health():
            raise NotFoundError("no health route")

        relay.health = health
        facade = RemoteFacade(primary, relay)

        with self.assertRaises(TransportError) as ctx:
            await facade.list_products()
        self.assertIn("Failed to sync", str(ctx.exception))
        self.assertEqual(relay.calls, [])
        self.assertFalse(facade.liveness.known)

    async def test_semantic_errors_do_not_fall_back(self):
        primary = ScriptedTransport("store", error=NotFoundError("Product not found: x (y)"))
        relay = ScriptedTransport("relay")
        facade = RemoteFacade(primary, relay)

        with self.assertRaises(NotFoundError):
            await facade.update_product_by_lookup("x", "y", {"price": 1})
        self.assertEqual(relay.calls, [])

    async def test_payload_validated_before_any_call(self):
        primary = ScriptedTransport("store")
        facade = RemoteFacade(primary)

        with self.assertRaises(ValidationError):
            await facade.add_product({"name": "", "category": "Snacks", "price": 1})
        with self.assertRaises(ValidationError):
            await facade.update_product_by_lookup("Chippy", "Snacks", {"price": -2})
        with self.assertRaises(ValidationError):
            await facade.add_purchase({"items": [], "total": 0})
        with self.assertRaises(ValidationError):
            await facade.add_purchase(
                {"items": [{"id": "1", "name": "Chippy", "price": "10", "quantity": 1}], "total": 10}
            )
        self.assertEqual(primary.calls, [])


class LivenessTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_verdict_cached_until_ttl(self):
        checks = []

        async def check():
            checks.append(1)
            return len(checks) > 1

        clock = FakeClock()
        liveness = Liveness(check, ttl=60, clock=clock)

        self.assertFalse(await liveness.is_reachable())
        clock.now = 30
        self.assertFalse(await liveness.is_reachable())
        self.assertEqual(len(checks), 1)

        clock.now = 61
        self.assertTrue(await liveness.is_reachable())
        self.assertEqual(len(checks), 2)

    async def test_mark_overrides_until_ttl(self):
        async def check():
            return True

        clock = FakeClock()
        liveness = Liveness(check, ttl=10, clock=clock)
        self.assertIsNone(liveness.known)
        liveness.mark(False)
        self.assertFalse(await liveness.is_reachable())
        clock.now = 10
        self.assertTrue(await liveness.is_reachable())


if __name__ == "__main__":
    unittest.main()
