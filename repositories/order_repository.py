"""
Order repository (persistence).

Persistence operations for `customer_orders`. Column names follow the
existing back-office schema; this module is the only place that knows them.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from domain.customer import CustomerCategory
from domain.errors import OrderNotFoundError, PersistenceError
from domain.order import ClosingChannel, Order, OrderStatus, PaymentMethod, Platform
from domain.time import BUSINESS_TZ, parse_date, parse_utc_datetime
from repositories.store import Store

_ORDERS_TABLE: str = "customer_orders"


def _order_to_row(order: Order) -> dict[str, Any]:
    """Convert a domain Order to a Supabase row payload (without `id`)."""

    local_created = order.created_at.astimezone(BUSINESS_TZ)
    return {
        "no_tempahan": order.order_number,
        "id_sale": order.sale_id,
        "marketer_id": order.marketer_id,
        "marketer_id_staff": order.marketer_staff_id,
        # The back-office schema stores the customer name in marketer_name.
        "marketer_name": order.customer_name,
        "no_phone": order.phone,
        "alamat": order.address,
        "poskod": order.postcode,
        "bandar": order.city,
        "negeri": order.state,
        "produk": order.product,
        "sku": order.product,
        "kuantiti": order.quantity,
        "harga_jualan_produk": float(order.unit_price),
        "harga_jualan_sebenar": float(order.unit_price),
        "cara_bayaran": order.payment_method.value,
        "jenis_platform": order.platform.value,
        "jenis_closing": order.closing_channel.value,
        "jenis_customer": order.customer_category.value,
        "kurier": order.courier,
        "no_tracking": order.tracking_number,
        "delivery_status": order.status.value,
        "status_parcel": order.status.value,
        "date_order": order.order_date.isoformat(),
        "tarikh_tempahan": local_created.strftime("%d/%m/%Y %I:%M %p"),
        "created_at": order.created_at.isoformat(),
        "date_processed": order.processed_at.isoformat() if order.processed_at else None,
        "nota_staff": order.notes,
    }


def _row_to_order(row: Mapping[str, Any]) -> Order:
    """
    Convert a Supabase row into a domain Order.

    Raises:
        PersistenceError: the row holds values the domain cannot represent.
    """

    try:
        return _build_order(row)
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        raise PersistenceError(f"Unreadable {_ORDERS_TABLE} row {row.get('id')}: {e}") from e


def _build_order(row: Mapping[str, Any]) -> Order:
    processed = row.get("date_processed")
    return Order(
        order_id=str(row["id"]) if row.get("id") is not None else None,
        order_number=str(row.get("no_tempahan") or ""),
        sale_id=str(row.get("id_sale") or ""),
        marketer_id=row.get("marketer_id"),
        marketer_staff_id=str(row.get("marketer_id_staff") or ""),
        customer_name=str(row.get("marketer_name") or ""),
        phone=str(row.get("no_phone") or ""),
        address=str(row.get("alamat") or ""),
        postcode=str(row.get("poskod") or ""),
        city=str(row.get("bandar") or ""),
        state=str(row.get("negeri") or ""),
        product=str(row.get("produk") or ""),
        quantity=int(row.get("kuantiti") or 1),
        unit_price=Decimal(str(row.get("harga_jualan_sebenar") or 0)),
        payment_method=PaymentMethod(row.get("cara_bayaran") or PaymentMethod.PREPAID.value),
        platform=Platform(row.get("jenis_platform") or Platform.FACEBOOK.value),
        closing_channel=ClosingChannel(row.get("jenis_closing") or ClosingChannel.MANUAL.value),
        customer_category=CustomerCategory(row.get("jenis_customer") or CustomerCategory.RETURNING.value),
        courier=str(row.get("kurier") or ""),
        tracking_number=str(row.get("no_tracking") or ""),
        status=OrderStatus(row.get("delivery_status") or OrderStatus.PENDING.value),
        order_date=parse_date(row.get("date_order")) or parse_utc_datetime(row["created_at"]).date(),
        created_at=parse_utc_datetime(row["created_at"]),
        processed_at=parse_utc_datetime(processed) if processed else None,
        notes=str(row.get("nota_staff") or ""),
    )


def insert_order(store: Store, order: Order) -> Order:
    """
    Insert an order and return it with its database id.

    Raises:
        PersistenceError: the store rejected the write.
    """

    payload = _order_to_row(order)
    row = store.insert(_ORDERS_TABLE, payload)
    return _row_to_order({**payload, **row})


def get_order(store: Store, order_id: str) -> Order:
    rows = store.query(_ORDERS_TABLE, {"id": order_id}, limit=1)
    if not rows:
        raise OrderNotFoundError(f"Order not found: {order_id}")
    return _row_to_order(rows[0])


def find_order_by_tracking(store: Store, tracking_number: str) -> Optional[Order]:
    rows = store.query(_ORDERS_TABLE, {"no_tracking": tracking_number}, limit=1)
    if not rows:
        return None
    return _row_to_order(rows[0])


def save_order(store: Store, order: Order) -> None:
    """Overwrite every mapped column of an existing order."""

    if order.order_id is None:
        raise ValueError("save_order requires an order with an id")
    store.update(_ORDERS_TABLE, order.order_id, _order_to_row(order))


def update_order_fields(store: Store, order_id: str, patch: Mapping[str, Any]) -> None:
    """Patch raw columns (used by fulfillment events)."""

    store.update(_ORDERS_TABLE, order_id, patch)


def delete_order(store: Store, order_id: str) -> None:
    store.delete(_ORDERS_TABLE, order_id)


__all__ = [
    "insert_order",
    "get_order",
    "find_order_by_tracking",
    "save_order",
    "update_order_fields",
    "delete_order",
]
