# provide dataclass models

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Literal, Optional, Tuple

TEMP_ID_PREFIX = "local-"


def to_decimal(value) -> Decimal:
    """Parse a price/total coming from JSON, a form input or the cache."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Not a number: {value!r}")


def money_to_json(value: Decimal) -> float | int:
    # integral amounts stay ints so stored documents read naturally
    if value == value.to_integral_value():
        return int(value)
    return float(value)


@dataclass(frozen=True)
class ProductRef:
    """
    Product identifier tagged with its id space.

    "baseline" ids are small integers (seed catalog and locally added items),
    "remote" ids are opaque strings assigned by the document store.
    """

    kind: Literal["baseline", "remote"]
    value: int | str

    @classmethod
    def baseline(cls, value: int) -> ProductRef:
        return cls("baseline", int(value))

    @classmethod
    def remote(cls, value: str) -> ProductRef:
        return cls("remote", str(value))

    @classmethod
    def parse(cls, raw: Any) -> ProductRef:
        """Tag a raw id read from JSON: integers (or digit strings) are baseline."""
        if isinstance(raw, ProductRef):
            return raw
        if isinstance(raw, bool):
            raise ValueError(f"Invalid product id: {raw!r}")
        if isinstance(raw, int):
            return cls.baseline(raw)
        if isinstance(raw, str) and raw.strip():
            if raw.isdigit():
                return cls.baseline(int(raw))
            return cls.remote(raw)
        raise ValueError(f"Invalid product id: {raw!r}")

    @property
    def is_baseline(self) -> bool:
        return self.kind == "baseline"

    @property
    def is_remote(self) -> bool:
        return self.kind == "remote"

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Product:
    ref: ProductRef
    name: str
    category: str
    price: Decimal
    image: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def id(self) -> int | str:
        return self.ref.value

    def to_dict(self) -> dict:
        data = {
            "id": self.ref.value,
            "name": self.name,
            "category": self.category,
            "price": money_to_json(self.price),
        }
        if self.image:
            data["image"] = self.image
        if self.created_at:
            data["createdAt"] = self.created_at
        if self.updated_at:
            data["updatedAt"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Product:
        return cls(
            ref=ProductRef.parse(data["id"]),
            name=str(data["name"]),
            category=str(data.get("category") or ""),
            price=to_decimal(data.get("price", 0)),
            image=data.get("image") or None,
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass(frozen=True)
class ProductEdit:
    """Override for a baseline product; None keeps the baseline value."""

    name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[Decimal] = None

    def to_dict(self) -> dict:
        data = {}
        if self.name is not None:
            data["name"] = self.name
        if self.category is not None:
            data["category"] = self.category
        if self.price is not None:
            data["price"] = str(self.price)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> ProductEdit:
        price = data.get("price")
        return cls(
            name=data.get("name") or None,
            category=data.get("category") or None,
            price=to_decimal(price) if price is not None else None,
        )


@dataclass(frozen=True)
class CartLine:
    ref: ProductRef
    name: str
    category: str
    price: Decimal
    quantity: int
    image: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity

    @classmethod
    def from_product(cls, product: Product, quantity: int = 1) -> CartLine:
        return cls(
            ref=product.ref,
            name=product.name,
            category=product.category,
            price=product.price,
            quantity=quantity,
            image=product.image,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.ref.value,
            "name": self.name,
            "category": self.category,
            "price": str(self.price),
            "quantity": self.quantity,
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: dict) -> CartLine:
        return cls(
            ref=ProductRef.parse(data["id"]),
            name=data["name"],
            category=data.get("category") or "",
            price=to_decimal(data["price"]),
            quantity=int(data["quantity"]),
            image=data.get("image"),
        )


@dataclass(frozen=True)
class PurchaseItem:
    id: str
    name: str
    price: Decimal
    quantity: int
    image: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "price": money_to_json(self.price),
            "quantity": self.quantity,
        }
        # the store rejects empty optional fields
        if self.image:
            data["image"] = self.image
        if self.category:
            data["category"] = self.category
        return data

    @classmethod
    def from_dict(cls, data: dict) -> PurchaseItem:
        return cls(
            id=str(data["id"]),
            name=data["name"],
            price=to_decimal(data["price"]),
            quantity=int(data["quantity"]),
            image=data.get("image"),
            category=data.get("category"),
        )


@dataclass(frozen=True)
class PurchaseRecord:
    id: str
    date: datetime
    items: Tuple[PurchaseItem, ...]
    total: Decimal
    synced: bool = False

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)

    def to_payload(self) -> dict:
        """Body sent to the store; the store assigns the id."""
        return {
            "date": self.date.isoformat(),
            "items": [item.to_dict() for item in self.items],
            "total": money_to_json(self.total),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "synced": self.synced,
            **self.to_payload(),
            "total": str(self.total),
        }

    @classmethod
    def from_dict(cls, data: dict) -> PurchaseRecord:
        return cls(
            id=str(data["id"]),
            date=datetime.fromisoformat(data["date"]),
            items=tuple(PurchaseItem.from_dict(i) for i in data["items"]),
            total=to_decimal(data["total"]),
            synced=bool(data.get("synced", False)),
        )


@dataclass(frozen=True)
class SessionSummary:
    start_time: datetime
    end_time: datetime
    earnings: Decimal
    purchase_count: int
    purchase_ids: Tuple[str, ...] = field(default_factory=tuple)
    status: str = "ended"
    id: Optional[str] = None

    def to_payload(self) -> dict:
        return {
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
            "earnings": money_to_json(self.earnings),
            "purchaseCount": self.purchase_count,
            "purchaseIds": list(self.purchase_ids),
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: dict) -> SessionSummary:
        return cls(
            start_time=datetime.fromisoformat(data["startTime"]),
            end_time=datetime.fromisoformat(data["endTime"]),
            earnings=to_decimal(data.get("earnings", 0)),
            purchase_count=int(data.get("purchaseCount", 0)),
            purchase_ids=tuple(data.get("purchaseIds") or ()),
            status=data.get("status", "ended"),
            id=data.get("id"),
        )
