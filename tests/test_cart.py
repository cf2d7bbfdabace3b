import dataclasses
import os
import sys
import tempfile
import unittest
from decimal import Decimal

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from core.baseline import BASELINE_PRODUCTS  # noqa: E402
from core.cart import CartManager  # noqa: E402
from core.errors import NotFoundError, ValidationError  # noqa: E402
from db import cache as keys  # noqa: E402
from db.cache import LocalCache  # noqa: E402
from db.models import Product, ProductRef  # noqa: E402

CHIPPY, PIATTOS, COKE = BASELINE_PRODUCTS[0], BASELINE_PRODUCTS[1], BASELINE_PRODUCTS[5]


class CartTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.cache = LocalCache(os.path.join(self.temp_dir.name, "cache.sqlite"))
        self.cart = CartManager(self.cache)

    def tearDown(self):
        self.temp_dir.cleanup()

    async def test_add_merges_same_product(self):
        await self.cart.add(CHIPPY)
        await self.cart.add(CHIPPY)
        await self.cart.add(PIATTOS)

        self.assertEqual(len(self.cart.lines), 2)
        self.assertEqual(self.cart.lines[0].quantity, 2)
        self.assertEqual(self.cart.item_count, 3)
        self.assertEqual(self.cart.total, Decimal(35))

    async def test_add_rejects_non_positive_quantity(self):
        with self.assertRaises(ValidationError):
            await self.cart.add(CHIPPY, 0)
        self.assertTrue(self.cart.is_empty)

    async def test_total_after_mixed_operations(self):
        await self.cart.add(CHIPPY)
        await self.cart.add(PIATTOS)
        await self.cart.add(COKE)
        await self.cart.update_quantity(CHIPPY.ref, 4)
        await self.cart.update_quantity(PIATTOS.ref, 0)
        await self.cart.add(COKE)
        await self.cart.remove(COKE.ref)
        await self.cart.add(COKE)

        expected = sum(line.price * line.quantity for line in self.cart.lines)
        self.assertEqual(self.cart.total, expected)
        self.assertEqual(self.cart.total, Decimal(55))
        self.assertEqual([line.ref for line in self.cart.lines], [CHIPPY.ref, COKE.ref])

    async def test_negative_quantity_removes_line(self):
        await self.cart.add(CHIPPY)
        self.assertIsNone(await self.cart.update_quantity(CHIPPY.ref, -3))
        self.assertTrue(self.cart.is_empty)

    async def test_unknown_line_raises(self):
        with self.assertRaises(NotFoundError):
            await self.cart.update_quantity(CHIPPY.ref, 2)
        with self.assertRaises(NotFoundError):
            await self.cart.remove(CHIPPY.ref)

    async def test_snapshot_survives_reload(self):
        await self.cart.add(CHIPPY, 2)
        await self.cart.add(COKE)

        reloaded = CartManager(self.cache)
        await reloaded.load()
        self.assertEqual(reloaded.lines, self.cart.lines)
        self.assertEqual(reloaded.total, Decimal(35))

        await reloaded.clear()
        self.assertEqual(await self.cache.get(keys.CART_KEY), [])

    async def test_sync_refreshes_price_by_id(self):
        await self.cart.add(CHIPPY, 2)
        repriced = dataclasses.replace(CHIPPY, price=Decimal(12))

        await self.cart.sync([repriced, PIATTOS])
        line = self.cart.lines[0]
        self.assertEqual(line.price, Decimal(12))
        self.assertEqual(line.quantity, 2)
        self.assertEqual(self.cart.total, Decimal(24))

    async def test_sync_matches_by_name_and_adopts_new_id(self):
        await self.cart.add(CHIPPY, 3)
        stored = Product(ProductRef.remote("xyz"), "chippy ", "Snacks", Decimal(11))

        await self.cart.sync([stored])
        line = self.cart.lines[0]
        self.assertEqual(line.ref, ProductRef.remote("xyz"))
        self.assertEqual(line.price, Decimal(11))
        self.assertEqual(line.quantity, 3)

    async def test_sync_keeps_lines_whose_product_is_gone(self):
        await self.cart.add(CHIPPY)
        await self.cart.add(PIATTOS)

        await self.cart.sync([PIATTOS])
        self.assertEqual([line.name for line in self.cart.lines], ["Chippy", "Piattos"])

    async def test_sync_does_not_merge_two_lines_into_one_id(self):
        await self.cart.add(CHIPPY)
        renamed = Product(ProductRef.baseline(99), "Chippy", "Candies", Decimal(5))
        await self.cart.add(renamed)

        # the store now has only one "chippy" record
        stored = Product(ProductRef.remote("xyz"), "Chippy", "Snacks", Decimal(10))
        await self.cart.sync([stored])
        refs = [line.ref for line in self.cart.lines]
        self.assertEqual(refs, [ProductRef.remote("xyz"), ProductRef.baseline(99)])


if __name__ == "__main__":
    unittest.main()
