"""Cart models with Decimal-based pricing.

Records are persisted as a JSON array using the field names the browser
layers already read: id, title, image, price, quantity, discountPercent,
addedAt.
"""
import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from marketcart.logging import get_logger, sanitize_id_for_logging
from marketcart.money import discount_multiplier, multiply, round_money, to_float

logger = get_logger(__name__)

ItemId = Union[int, str]


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed); naive values are UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a UTC datetime as ISO-8601 with a ``Z`` suffix."""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _finite_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e
    if not number.is_finite():
        raise ValueError(f"{name} must be finite, got {value!r}")
    return number


def _normalize_discount(value: Any) -> Optional[int]:
    if value is None:
        return None
    percent = _finite_decimal(value, "discount_percent")
    if percent != percent.to_integral_value():
        raise ValueError(f"discount_percent must be a whole number, got {value!r}")
    if percent == 0:
        return None
    if percent < 0 or percent >= 100:
        raise ValueError(f"discount_percent must be between 0 and 100, got {value!r}")
    return int(percent)


@dataclass(frozen=True)
class CartItem:
    """Single line item in the cart."""
    id: ItemId
    price: Decimal
    quantity: int = 1
    title: str = ""
    image: str = ""
    discount_percent: Optional[int] = None
    added_at: Optional[datetime] = None

    def __post_init__(self):
        if self.id is None or self.id == "" or isinstance(self.id, bool):
            raise ValueError("id must be a non-empty int or string")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"quantity must be an integer, got {self.quantity!r}")
        if self.quantity < 1:
            raise ValueError("quantity must be a positive integer")

        price = _finite_decimal(self.price, "price")
        if price < 0:
            raise ValueError("price must be non-negative")

        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "price", price)
        object.__setattr__(self, "discount_percent", _normalize_discount(self.discount_percent))
        if self.added_at is not None:
            object.__setattr__(self, "added_at", parse_timestamp(self.added_at))

    @property
    def has_discount(self) -> bool:
        return self.discount_percent is not None

    @property
    def effective_price(self) -> Decimal:
        """Unit price after the item's discount (unrounded)."""
        if self.discount_percent is None:
            return self.price
        return multiply(self.price, discount_multiplier(self.discount_percent))

    @property
    def line_total(self) -> Decimal:
        """Discounted total for all units (unrounded)."""
        return multiply(self.effective_price, self.quantity)

    @property
    def original_line_total(self) -> Decimal:
        return multiply(self.price, self.quantity)

    def to_dict(self) -> dict:
        """Convert to the persisted record."""
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "image": self.image,
            "price": to_float(self.price),
            "quantity": self.quantity,
        }
        if self.discount_percent is not None:
            data["discountPercent"] = self.discount_percent
        if self.added_at is not None:
            data["addedAt"] = format_timestamp(self.added_at)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CartItem":
        """
        Create from a persisted record.

        Raises KeyError, TypeError or ValueError on malformed records.
        """
        if not isinstance(data, dict):
            raise TypeError(f"cart record must be an object, got {type(data).__name__}")
        return cls(
            id=data["id"],
            title=data.get("title") or "",
            image=data.get("image") or "",
            price=data["price"],
            quantity=data["quantity"],
            discount_percent=data.get("discountPercent"),
            added_at=data.get("addedAt"),
        )


@dataclass(frozen=True)
class CartTotals:
    """Cart totals re-derived from the current entries."""
    total_quantity: int = 0
    original_total: Decimal = Decimal("0")
    discounted_total: Decimal = Decimal("0")
    total_savings: Decimal = Decimal("0")

    def rounded(self) -> Dict[str, Any]:
        """Presentation values, rounded to cents."""
        return {
            "total_quantity": self.total_quantity,
            "original_total": round_money(self.original_total),
            "discounted_total": round_money(self.discounted_total),
            "total_savings": round_money(self.total_savings),
        }


@dataclass(frozen=True)
class Cart:
    """Shopping cart: an ordered, immutable sequence of items."""
    items: Tuple[CartItem, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))

    def __iter__(self) -> Iterator[CartItem]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __bool__(self) -> bool:
        return bool(self.items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Cart):
            return self.items == other.items
        if isinstance(other, (list, tuple)):
            return list(self.items) == list(other)
        return NotImplemented

    @property
    def ids(self) -> List[ItemId]:
        return [item.id for item in self.items]

    def get(self, item_id: ItemId) -> Optional[CartItem]:
        return next((item for item in self.items if item.id == item_id), None)

    def __contains__(self, item_id: object) -> bool:
        return any(item.id == item_id for item in self.items)

    def with_items(self, items: Iterable[CartItem]) -> "Cart":
        return Cart(items=tuple(items))

    def replace_item(self, item_id: ItemId, **changes: Any) -> "Cart":
        return self.with_items(
            replace(item, **changes) if item.id == item_id else item for item in self.items
        )

    def without(self, item_id: ItemId) -> "Cart":
        return self.with_items(item for item in self.items if item.id != item_id)

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    def totals(self) -> CartTotals:
        """Recompute totals from scratch; rounding is left to presentation."""
        original = sum((item.original_line_total for item in self.items), Decimal("0"))
        discounted = sum((item.line_total for item in self.items), Decimal("0"))
        return CartTotals(
            total_quantity=self.total_quantity,
            original_total=original,
            discounted_total=discounted,
            total_savings=original - discounted,
        )

    def to_records(self) -> List[dict]:
        return [item.to_dict() for item in self.items]

    def to_json(self) -> str:
        return json.dumps(self.to_records())

    @classmethod
    def from_records(cls, records: Any, default_added_at: Optional[datetime] = None) -> "Cart":
        """
        Build a cart from persisted records.

        Duplicate ids are merged (quantities summed, first record wins for
        everything else). Records without addedAt get ``default_added_at``.
        Raises KeyError, TypeError or ValueError on malformed data.
        """
        if not isinstance(records, list):
            raise TypeError(f"cart must be a list, got {type(records).__name__}")

        merged: Dict[Any, CartItem] = {}
        for record in records:
            item = CartItem.from_dict(record)
            if item.added_at is None and default_added_at is not None:
                item = replace(item, added_at=default_added_at)
            existing = merged.get(item.id)
            if existing is not None:
                logger.warning(
                    f"Duplicate cart id {sanitize_id_for_logging(item.id)} in storage, merging quantities"
                )
                merged[item.id] = replace(existing, quantity=existing.quantity + item.quantity)
            else:
                merged[item.id] = item
        return cls(items=tuple(merged.values()))

    @classmethod
    def from_json(cls, raw: str, default_added_at: Optional[datetime] = None) -> "Cart":
        return cls.from_records(json.loads(raw), default_added_at=default_added_at)
