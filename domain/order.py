"""
Domain: customer orders.

An Order is a single customer purchase. It is created by the order
orchestrator; its status is moved forward by fulfillment (carrier events,
returns) and it is only ever deleted through the cancel flow.

Invariants:
- sale_id is unique and strictly increasing within a business day.
- tracking_number stays empty until a carrier call succeeds (or a marketplace
  supplies one).
- customer_category is fixed at creation; only the edit flow may change it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from .customer import CustomerCategory
from .time import require_utc_timestamp


class Platform(str, Enum):
    FACEBOOK = "Facebook"
    SHOPEE = "Shopee"
    TIKTOK = "Tiktok"
    DATABASE = "Database"
    GOOGLE = "Google"
    WHATSAPP = "WhatsApp"

    @property
    def is_marketplace(self) -> bool:
        """Marketplace orders are shipped by the marketplace, not by our carrier."""
        return self in (Platform.SHOPEE, Platform.TIKTOK)

    @property
    def price_group(self) -> str:
        if self is Platform.SHOPEE:
            return "shopee"
        if self is Platform.TIKTOK:
            return "tiktok"
        return "normal"


class PaymentMethod(str, Enum):
    COD = "COD"
    PREPAID = "CASH"


class ClosingChannel(str, Enum):
    MANUAL = "Manual"
    WHATSAPP_BOT = "WhatsappBot"
    WEBSITE = "Website"
    CALL = "Call"
    LIVE = "Live"
    SHOP = "Shop"


class OrderStatus(str, Enum):
    """`delivery_status` values as the back office stores them."""

    PENDING = "Pending"
    SHIPPED = "Shipped"
    DELIVERED = "Success"
    RETURNED = "Return"

    @classmethod
    def _missing_(cls, value):
        # Case-insensitive, and accepts the member names ("Delivered", "Returned").
        if isinstance(value, str):
            wanted = value.strip().lower()
            for status in cls:
                if wanted in (status.value.lower(), status.name.lower()):
                    return status
        return None


CARRIER_NAME = "Ninjavan"


def courier_for(platform: Platform, payment_method: PaymentMethod) -> str:
    """Courier label stored on the order."""

    if platform.is_marketplace:
        return platform.value
    return f"{CARRIER_NAME} {payment_method.value}"


@dataclass(frozen=True, slots=True)
class Order:
    """Immutable snapshot of a `customer_orders` row."""

    order_id: Optional[str]
    order_number: str
    sale_id: str
    marketer_id: Optional[str]
    marketer_staff_id: str
    customer_name: str
    phone: str
    address: str
    postcode: str
    city: str
    state: str
    product: str
    quantity: int
    unit_price: Decimal
    payment_method: PaymentMethod
    platform: Platform
    closing_channel: ClosingChannel
    customer_category: CustomerCategory
    courier: str
    tracking_number: str
    status: OrderStatus
    order_date: date
    created_at: datetime
    processed_at: Optional[datetime] = None
    notes: str = ""

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.processed_at is not None:
            require_utc_timestamp("processed_at", self.processed_at)
        if self.quantity < 1:
            raise ValueError("quantity must be at least 1")
        if self.unit_price < 0:
            raise ValueError("unit_price must not be negative")

    @property
    def is_carrier_fulfilled(self) -> bool:
        return not self.platform.is_marketplace

    @property
    def cod_amount(self) -> Decimal:
        """Amount the carrier collects on delivery."""
        if self.payment_method is PaymentMethod.COD:
            return self.unit_price
        return Decimal("0")
