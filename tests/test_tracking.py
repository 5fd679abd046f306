"""
Tests for `services/tracking_service.py`.
"""

from __future__ import annotations

import pytest

from domain.errors import OrderNotFoundError, PersistenceError, ValidationError
from domain.order import OrderStatus
from repositories.order_repository import find_order_by_tracking, get_order, insert_order
from services.tracking_service import apply_tracking_event, classify_event


@pytest.fixture
def shipped(store, make_order):
    return insert_order(store, make_order(tracking_number="NVMY000001"))


@pytest.mark.parametrize(
    ("event", "expected"),
    [
        ("Delivered", OrderStatus.DELIVERED),
        ("Successful Delivery - Delivered to customer", OrderStatus.DELIVERED),
        ("Returned To Sender", OrderStatus.RETURNED),
        ("On Vehicle for Delivery", None),
    ],
)
def test_classify_event(event, expected) -> None:
    assert classify_event(event) is expected


def test_delivered_event_stamps_payment_date(store, shipped, clock) -> None:
    update = apply_tracking_event(store, "NVMY000001", "Delivered", clock=clock)

    assert update.status is OrderStatus.DELIVERED
    [row] = store.rows("customer_orders")
    assert row["delivery_status"] == "Success"
    assert row["tarikh_bayaran"] == "2025-10-19"
    assert row["seo"] == "Successfull Delivery"


def test_returned_event_stamps_return_date(store, shipped, clock) -> None:
    apply_tracking_event(store, "NVMY000001", "Returned To Sender", clock=clock)

    [row] = store.rows("customer_orders")
    assert row["delivery_status"] == "Return"
    assert row["date_return"] == "2025-10-19"


def test_transit_event_only_records_event(store, shipped, clock) -> None:
    update = apply_tracking_event(store, "NVMY000001", "Arrived at Sorting Hub", clock=clock)

    assert update.status is None
    [row] = store.rows("customer_orders")
    assert row["seo"] == "Arrived at Sorting Hub"
    assert row["delivery_status"] == "Pending"


def test_unknown_tracking_number(store) -> None:
    with pytest.raises(OrderNotFoundError):
        apply_tracking_event(store, "NOPE", "Delivered")


@pytest.mark.parametrize(("tracking", "event"), [("", "Delivered"), ("NVMY000001", "")])
def test_missing_fields(store, tracking, event) -> None:
    with pytest.raises(ValidationError):
        apply_tracking_event(store, tracking, event)


@pytest.mark.parametrize(
    ("stored", "expected"),
    [
        ("Return", OrderStatus.RETURNED),
        ("Success", OrderStatus.DELIVERED),
        ("Returned", OrderStatus.RETURNED),
        ("delivered", OrderStatus.DELIVERED),
        ("shipped", OrderStatus.SHIPPED),
    ],
)
def test_back_office_status_values_are_read(store, shipped, stored, expected) -> None:
    store.rows("customer_orders")[0]["delivery_status"] = stored

    order = find_order_by_tracking(store, "NVMY000001")

    assert order.status is expected


def test_unreadable_order_row_is_persistence_error(store, shipped) -> None:
    store.rows("customer_orders")[0]["delivery_status"] = "Lost in space"

    with pytest.raises(PersistenceError):
        get_order(store, shipped.order_id)
