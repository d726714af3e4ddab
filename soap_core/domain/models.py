# =============================================================================
# soap_core/domain/models.py
# Domain Entities: sales, payments, supermarkets, orders, stock
# =============================================================================
"""
Typed entities shared by the local store, the remote store and the
business-logic functions.

Records travel between stores as plain dictionaries whose keys are the
remote column names; every entity converts to and from that shape with
``to_record()`` / ``from_record()``.
"""

from __future__ import annotations
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd

UNITS_PER_CARTON = 9


class OrderStatus(Enum):
    """Order lifecycle states."""
    PENDING = "pending"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class StockMovementType(Enum):
    """Stock history movement kinds."""
    ADDED = "added"
    REMOVED = "removed"
    ADJUSTED = "adjusted"


# =============================================================================
# HELPERS
# =============================================================================

def new_id() -> str:
    """Client-generated identifier, stable across local and remote stores."""
    return str(uuid.uuid4())


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO strings and timestamps into naive local datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = pd.Timestamp(value).to_pydatetime()
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _distribution(value: Any) -> Optional[Dict[str, int]]:
    if not value:
        return None
    return {str(k): int(v) for k, v in value.items()}


# =============================================================================
# ENTITIES
# =============================================================================

@dataclass
class Payment:
    """One installment paid against a sale. Immutable once recorded."""
    amount: float
    date: datetime = field(default_factory=datetime.now)
    note: Optional[str] = None
    id: str = field(default_factory=new_id)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": format_datetime(self.date),
            "amount": float(self.amount),
            "note": self.note,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Payment:
        return cls(
            id=str(record["id"]),
            date=parse_datetime(record.get("date")) or datetime.now(),
            amount=float(record.get("amount", 0)),
            note=record.get("note"),
        )


@dataclass
class Sale:
    """A delivery of cartons to a supermarket and its payment state."""
    supermarket_id: str
    quantity: int
    price_per_unit: float
    date: datetime = field(default_factory=datetime.now)
    cartons: Optional[int] = None
    total_value: Optional[float] = None
    is_paid: bool = False
    payment_date: Optional[datetime] = None
    payment_note: Optional[str] = None
    expected_payment_date: Optional[datetime] = None
    remaining_amount: Optional[float] = None
    payments: List[Payment] = field(default_factory=list)
    fragrance_distribution: Optional[Dict[str, int]] = None
    from_order: bool = False
    note: Optional[str] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        if self.cartons is None:
            self.cartons = self.quantity // UNITS_PER_CARTON
        if self.total_value is None:
            self.total_value = self.quantity * self.price_per_unit
        if self.remaining_amount is None:
            self.remaining_amount = 0.0 if self.is_paid else self.total_value - self.amount_paid

    @property
    def amount_paid(self) -> float:
        return sum(p.amount for p in self.payments)

    def recompute_balance(self, paid_on: Optional[datetime] = None) -> None:
        """Derive remaining amount and paid flag from the payment list."""
        self.remaining_amount = max(self.total_value - self.amount_paid, 0.0)
        self.is_paid = self.remaining_amount <= 0
        if self.is_paid and self.payment_date is None:
            self.payment_date = paid_on or datetime.now()

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": format_datetime(self.date),
            "supermarket_id": self.supermarket_id,
            "quantity": int(self.quantity),
            "cartons": int(self.cartons),
            "price_per_unit": float(self.price_per_unit),
            "total_value": float(self.total_value),
            "is_paid": bool(self.is_paid),
            "payment_date": format_datetime(self.payment_date),
            "payment_note": self.payment_note,
            "expected_payment_date": format_datetime(self.expected_payment_date),
            "remaining_amount": float(self.remaining_amount),
            "payments": [p.to_record() for p in self.payments],
            "fragrance_distribution": self.fragrance_distribution,
            "from_order": bool(self.from_order),
            "note": self.note,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Sale:
        payments = sorted(
            (Payment.from_record(p) for p in record.get("payments") or []),
            key=lambda p: p.date,
        )
        return cls(
            id=str(record["id"]),
            date=parse_datetime(record.get("date")) or datetime.now(),
            supermarket_id=str(record.get("supermarket_id", "")),
            quantity=int(record.get("quantity", 0)),
            cartons=record.get("cartons"),
            price_per_unit=float(record.get("price_per_unit", 0)),
            total_value=record.get("total_value"),
            is_paid=bool(record.get("is_paid", False)),
            payment_date=parse_datetime(record.get("payment_date")),
            payment_note=record.get("payment_note"),
            expected_payment_date=parse_datetime(record.get("expected_payment_date")),
            remaining_amount=record.get("remaining_amount"),
            payments=payments,
            fragrance_distribution=_distribution(record.get("fragrance_distribution")),
            from_order=bool(record.get("from_order", False)),
            note=record.get("note"),
        )


@dataclass
class PhoneNumber:
    """A named contact number for a supermarket."""
    name: str
    number: str


@dataclass
class Supermarket:
    """A customer store. Running totals change only through sales."""
    name: str
    address: str
    phone_numbers: List[PhoneNumber] = field(default_factory=list)
    email: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    total_sales: int = 0
    total_value: float = 0.0
    legacy_id: Optional[str] = None
    id: str = field(default_factory=new_id)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone_numbers": [asdict(p) for p in self.phone_numbers],
            "email": self.email,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "total_sales": int(self.total_sales),
            "total_value": float(self.total_value),
            "legacy_id": self.legacy_id,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Supermarket:
        phones = record.get("phone_numbers") or []
        # Legacy records carry a single "phone" string
        if not phones and record.get("phone"):
            phones = [{"name": "Principal", "number": record["phone"]}]
        return cls(
            id=str(record["id"]),
            name=record.get("name", ""),
            address=record.get("address", ""),
            phone_numbers=[PhoneNumber(p.get("name", ""), p.get("number", "")) for p in phones],
            email=record.get("email"),
            latitude=record.get("latitude"),
            longitude=record.get("longitude"),
            total_sales=int(record.get("total_sales") or 0),
            total_value=float(record.get("total_value") or 0),
            legacy_id=record.get("legacy_id"),
        )


@dataclass
class Order:
    """A pending request for cartons from a supermarket."""
    supermarket_id: str
    quantity: int
    price_per_unit: float
    date: datetime = field(default_factory=datetime.now)
    supermarket_name: str = "Unknown"
    status: OrderStatus = OrderStatus.PENDING
    id: str = field(default_factory=new_id)

    @property
    def total_value(self) -> float:
        return self.quantity * self.price_per_unit

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": format_datetime(self.date),
            "supermarket_id": self.supermarket_id,
            "supermarket_name": self.supermarket_name,
            "quantity": int(self.quantity),
            "price_per_unit": float(self.price_per_unit),
            "status": self.status.value,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Order:
        return cls(
            id=str(record["id"]),
            date=parse_datetime(record.get("date")) or datetime.now(),
            supermarket_id=str(record.get("supermarket_id", "")),
            supermarket_name=record.get("supermarket_name") or "Unknown",
            quantity=int(record.get("quantity", 0)),
            price_per_unit=float(record.get("price_per_unit", 0)),
            status=OrderStatus(record.get("status", "pending")),
        )


@dataclass
class StockHistoryEntry:
    """Audit record of one stock movement and the resulting total."""
    quantity: int
    type: StockMovementType
    reason: str
    current_stock: int
    date: datetime = field(default_factory=datetime.now)
    fragrance_distribution: Optional[Dict[str, int]] = None
    id: str = field(default_factory=new_id)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": format_datetime(self.date),
            "quantity": int(self.quantity),
            "type": self.type.value,
            "reason": self.reason,
            "current_stock": int(self.current_stock),
            "fragrance_distribution": self.fragrance_distribution,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> StockHistoryEntry:
        return cls(
            id=str(record["id"]),
            date=parse_datetime(record.get("date")) or datetime.now(),
            quantity=int(record.get("quantity", 0)),
            type=StockMovementType(record.get("type", "adjusted")),
            reason=record.get("reason") or "",
            current_stock=int(record.get("current_stock") or 0),
            fragrance_distribution=_distribution(record.get("fragrance_distribution")),
        )


@dataclass
class FragranceStock:
    """Carton count for one fragrance. The sum over fragrances is the stock."""
    fragrance_id: str
    name: str
    quantity: int = 0
    color: str = "#9F7AEA"

    def to_record(self) -> Dict[str, Any]:
        return {
            "fragrance_id": self.fragrance_id,
            "name": self.name,
            "quantity": int(self.quantity),
            "color": self.color,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> FragranceStock:
        return cls(
            fragrance_id=str(record.get("fragrance_id") or record.get("id")),
            name=record.get("name", ""),
            quantity=int(record.get("quantity") or 0),
            color=record.get("color") or "#9F7AEA",
        )


DEFAULT_FRAGRANCES = (
    FragranceStock("1", "Lavande", 0, "#9F7AEA"),
    FragranceStock("2", "Rose", 0, "#F687B3"),
    FragranceStock("3", "Citron", 0, "#FBBF24"),
    FragranceStock("4", "Fraîcheur Marine", 0, "#60A5FA"),
    FragranceStock("5", "Vanille", 0, "#F59E0B"),
    FragranceStock("6", "Grenade", 0, "#F97316"),
    FragranceStock("7", "Jasmin", 0, "#10B981"),
    FragranceStock("8", "Amande", 0, "#8B5CF6"),
)


def default_fragrance_records() -> List[Dict[str, Any]]:
    """Fresh copies of the eight known fragrances at zero stock."""
    return [f.to_record() for f in DEFAULT_FRAGRANCES]


# Entity name -> (model class, primary key column)
ENTITY_MODELS = {
    "sales": (Sale, "id"),
    "orders": (Order, "id"),
    "supermarkets": (Supermarket, "id"),
    "stock_history": (StockHistoryEntry, "id"),
    "fragrance_stock": (FragranceStock, "fragrance_id"),
}


def primary_key(entity: str) -> str:
    return ENTITY_MODELS[entity][1]


def to_model(entity: str, record: Dict[str, Any]):
    """Convert a store record into its entity dataclass."""
    return ENTITY_MODELS[entity][0].from_record(record)
