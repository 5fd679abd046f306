"""
Domain: Lead (prospect) entity.

A Lead is a contactable phone number owned by one marketer.

Invariants:
- For classification, only the most recently created lead per
  (marketer, phone) pair is consulted.
- order_count increments exactly once per completed order attributed to it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from .customer import CustomerCategory
from .time import require_utc_timestamp

CLOSED_STATUS = "closed"


@dataclass(frozen=True, slots=True)
class Lead:
    """
    Immutable snapshot of a lead row.

    `category` is None when the row has no NP/EP value yet (leads created
    from the dashboard before the first order).
    """

    lead_id: str
    marketer_staff_id: str
    name: str
    phone: str
    niche: str
    category: Optional[CustomerCategory]
    first_contact_date: Optional[date]
    order_count: int = 0
    closed_status: str = ""
    closed_price: Decimal = Decimal("0")
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.order_count < 0:
            raise ValueError("order_count must not be negative")

    @property
    def has_completed_order(self) -> bool:
        """Closed leads count as purchased even when order_count predates tracking."""
        return self.order_count > 0 or self.closed_status == CLOSED_STATUS
