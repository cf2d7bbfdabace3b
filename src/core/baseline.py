"""Seed catalog compiled into the application, and helpers tied to it."""

import re
from decimal import Decimal
from typing import List, Optional, Tuple

from db.models import Product, ProductRef

CATEGORIES: Tuple[str, ...] = (
    "Snacks",
    "Drinks",
    "Condiments",
    "Biscuits",
    "Candies",
    "Canned Goods",
    "Noodles",
)

# rank given to categories outside CATEGORIES
UNKNOWN_CATEGORY_RANK = 999

_NON_WORD = re.compile(r"[^a-z0-9\s-]")


def image_key(name: str) -> str:
    """First word of the name, lower-cased, stripped of special characters."""
    cleaned = _NON_WORD.sub("", name.lower()).strip()
    return cleaned.split()[0] if cleaned else ""


def image_for(name: str, category: str, manual: Optional[str] = None) -> str:
    """
    Image path for a product.

    A manual path always wins; otherwise the file is looked up by the first
    word of the product name, e.g. "Coca Cola" -> /images/coca.jpg.
    Category is accepted for callers that want to theme placeholders.
    """
    if manual:
        return manual
    return f"/images/{image_key(name)}.jpg"


_SEED = [
    # Snacks
    (1, "Chippy", 10, "Snacks", "/images/chippy.jpg"),
    (2, "Piattos", 15, "Snacks", "/images/piattos.png"),
    (3, "Nova", 12, "Snacks", "/images/nova.jpg"),
    (4, "Oishi", 8, "Snacks", None),
    (5, "Clover Chips", 20, "Snacks", None),
    # Drinks
    (6, "Coca Cola", 15, "Drinks", None),
    (7, "Sprite", 15, "Drinks", None),
    (8, "Royal", 15, "Drinks", None),
    (9, "Pepsi", 15, "Drinks", None),
    (10, "Mountain Dew", 15, "Drinks", None),
    (11, "Zesto", 12, "Drinks", None),
    (12, "C2", 18, "Drinks", None),
    # Condiments
    (13, "Silver Swan Soy Sauce", 25, "Condiments", None),
    (14, "Datu Puti Vinegar", 20, "Condiments", None),
    (15, "Mang Tomas", 35, "Condiments", None),
    (16, "Jufran Banana Ketchup", 30, "Condiments", None),
    (17, "Knorr Seasoning", 5, "Condiments", None),
    (39, "Bawang", 8, "Condiments", None),
    (40, "Sibuyas", 8, "Condiments", None),
    (41, "Vetsin", 5, "Condiments", None),
    (42, "Magic Sarap", 6, "Condiments", None),
    # Biscuits
    (18, "Rebisco", 12, "Biscuits", None),
    (19, "Skyflakes", 15, "Biscuits", None),
    (20, "Fita", 15, "Biscuits", None),
    (21, "Cracklings", 10, "Biscuits", None),
    (22, "M.Y. San Grahams", 18, "Biscuits", None),
    # Candies
    (23, "Chocnut", 5, "Candies", None),
    (24, "Hany", 5, "Candies", None),
    (25, "Maxx", 5, "Candies", None),
    (26, "Stick-O", 8, "Candies", None),
    (27, "Flat Tops", 5, "Candies", None),
    # Canned Goods
    (28, "Corned Beef", 45, "Canned Goods", None),
    (29, "Sardines", 20, "Canned Goods", None),
    (30, "Tuna Flakes", 35, "Canned Goods", None),
    (31, "Beef Loaf", 25, "Canned Goods", None),
    (32, "Spam", 120, "Canned Goods", None),
    # Noodles
    (33, "Lucky Me Pancit Canton", 12, "Noodles", None),
    (34, "Lucky Me Beef", 12, "Noodles", None),
    (35, "Lucky Me Chicken", 12, "Noodles", None),
    (36, "Payless Pancit Canton", 10, "Noodles", None),
    (37, "Indomie", 15, "Noodles", None),
    (38, "Lucky Me Bulalo", 12, "Noodles", None),
]

BASELINE_PRODUCTS: Tuple[Product, ...] = tuple(
    Product(
        ref=ProductRef.baseline(pid),
        name=name,
        category=category,
        price=Decimal(price),
        image=image_for(name, category, image),
    )
    for pid, name, price, category, image in _SEED
)


def baseline_max_id(baseline: List[Product] | Tuple[Product, ...]) -> int:
    return max((p.ref.value for p in baseline if p.ref.is_baseline), default=0)
