"""
Domain model of an order as it is accepted over HTTP and kept in storage.

Objects are frozen: an order is created once and never changes afterwards.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Tuple


def _pick(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    # неизвестные ключи игнорируем, отсутствующие берут значения по умолчанию
    if not isinstance(data, dict):
        raise TypeError(f"{cls.__name__} must be a mapping, got {type(data).__name__}")
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in data.items() if key in names}


@dataclass(frozen=True)
class Delivery:
    name: str
    phone: str
    zip: str
    city: str
    address: str
    region: str
    email: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Delivery":
        return cls(**_pick(cls, data))


@dataclass(frozen=True)
class Payment:
    transaction: str
    currency: str
    provider: str
    amount: int
    request_id: str = ""
    bank: str = ""
    payment_dt: int = 0
    delivery_cost: int = 0
    goods_total: int = 0
    custom_fee: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Payment":
        return cls(**_pick(cls, data))


@dataclass(frozen=True)
class Item:
    chrt_id: int
    price: int
    rid: str
    name: str
    brand: str
    track_number: str = ""
    sale: int = 0
    size: str = ""
    total_price: int = 0
    nm_id: int = 0
    status: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        return cls(**_pick(cls, data))


@dataclass(frozen=True)
class Order:
    """Aggregate root. ``order_uid`` identifies the order everywhere."""

    order_uid: str
    track_number: str
    entry: str
    delivery: Delivery
    payment: Payment
    items: Tuple[Item, ...] = field(default_factory=tuple)
    locale: str = ""
    internal_signature: str = ""
    customer_id: str = ""
    delivery_service: str = ""
    shardkey: str = ""
    sm_id: int = 0
    date_created: str = ""
    oof_shard: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        """Build an order from a JSON-shaped mapping.

        Raises ``KeyError``, ``TypeError`` or ``ValueError`` when the mapping
        does not have the structure of an order.
        """
        values = _pick(cls, data)
        values["delivery"] = Delivery.from_dict(data["delivery"])
        values["payment"] = Payment.from_dict(data["payment"])
        values["items"] = tuple(Item.from_dict(item) for item in data["items"])
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["items"] = list(data["items"])
        return data
