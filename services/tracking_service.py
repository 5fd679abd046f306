"""
Carrier tracking events.

The carrier posts `{tracking_id, event}` whenever a parcel moves. The latest
event text is kept on the order; delivery and return events also move the
order status and stamp the matching date.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from domain.errors import OrderNotFoundError, ValidationError
from domain.order import OrderStatus
from domain.time import business_date, utc_now
from repositories.order_repository import find_order_by_tracking, update_order_fields
from repositories.store import Store

logger = logging.getLogger(__name__)

DELIVERED_EVENT_LABEL = "Successfull Delivery"


@dataclass(frozen=True, slots=True)
class TrackingUpdate:
    order_id: str
    tracking_number: str
    event: str
    status: Optional[OrderStatus]


def classify_event(event: str) -> Optional[OrderStatus]:
    """Status an event moves the order to, or None for in-transit events."""

    lowered = event.lower()
    if "delivered" in lowered:
        return OrderStatus.DELIVERED
    if "returned to sender" in lowered:
        return OrderStatus.RETURNED
    return None


def apply_tracking_event(
    store: Store,
    tracking_number: str,
    event: str,
    *,
    clock: Callable[[], datetime] = utc_now,
) -> TrackingUpdate:
    """
    Record a carrier event on the order with `tracking_number`.

    Raises:
        ValidationError: tracking number or event missing.
        OrderNotFoundError: no order carries the tracking number.
        PersistenceError: the update failed.
    """

    if not tracking_number:
        raise ValidationError("tracking_id is required")
    if not event:
        raise ValidationError("event is required")

    order = find_order_by_tracking(store, tracking_number)
    if order is None or order.order_id is None:
        raise OrderNotFoundError(f"Order not found for tracking {tracking_number}")

    now = clock()
    today = business_date(now).isoformat()
    status = classify_event(event)

    patch: dict[str, Any] = {"seo": event, "updated_at": now.isoformat()}
    if status is OrderStatus.DELIVERED:
        patch.update(seo=DELIVERED_EVENT_LABEL, delivery_status=status.value, tarikh_bayaran=today)
    elif status is OrderStatus.RETURNED:
        patch.update(delivery_status=status.value, date_return=today)

    update_order_fields(store, order.order_id, patch)
    logger.info("Tracking %s: %s (order %s)", tracking_number, event, order.order_number)
    return TrackingUpdate(order_id=order.order_id, tracking_number=tracking_number, event=event, status=status)


__all__ = ["TrackingUpdate", "classify_event", "apply_tracking_event"]
