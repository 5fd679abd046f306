"""
Pytest configuration and shared fixtures.

Adds the project root to the Python path so tests can import domain,
repositories, services and api, and provides an in-memory Store plus fake
carrier and messaging clients.
"""

from __future__ import annotations

import sys
from copy import deepcopy
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping, Optional

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.bundle import Bundle, BundleCatalog  # noqa: E402
from domain.customer import CustomerCategory  # noqa: E402
from domain.errors import CarrierRequestError, DuplicateKeyError, PersistenceError  # noqa: E402
from domain.marketer import Marketer  # noqa: E402
from domain.order import ClosingChannel, Order, OrderStatus, PaymentMethod, Platform  # noqa: E402
from services.settings import Settings  # noqa: E402

# 2025-10-19 14:00 in Kuala Lumpur
FIXED_NOW = datetime(2025, 10, 19, 6, 0, 0, tzinfo=timezone.utc)


class InMemoryStore:
    """
    Store implementation backed by dicts.

    `unique` lists columns with a uniqueness constraint per table; a clash
    raises DuplicateKeyError like the Supabase adapter does. Operations listed
    in `failures` as (operation, table) raise PersistenceError.
    """

    def __init__(self, unique: Optional[Mapping[str, tuple[str, ...]]] = None) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.unique = dict(unique or {"sale_id_reservations": ("sale_id",)})
        self.failures: set[tuple[str, str]] = set()
        self._next_id = 1

    def _check(self, operation: str, table: str) -> None:
        if (operation, table) in self.failures:
            raise PersistenceError(f"Failed to {operation} {table}: simulated outage")

    @staticmethod
    def _matches(row: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
        return all(row.get(column) == value for column, value in (filters or {}).items())

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def seed(self, table: str, *records: Mapping[str, Any]) -> list[dict[str, Any]]:
        return [self.insert(table, record) for record in records]

    def query(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        self._check("query", table)
        found = [deepcopy(row) for row in self.rows(table) if self._matches(row, filters)]
        if order_by:
            found.sort(key=lambda row: (row.get(order_by) is None, row.get(order_by) or ""), reverse=descending)
        if limit is not None:
            found = found[:limit]
        return found

    def insert(self, table: str, record: Mapping[str, Any]) -> dict[str, Any]:
        self._check("insert", table)
        row = dict(record)
        for column in self.unique.get(table, ()):
            if any(existing.get(column) == row.get(column) for existing in self.rows(table)):
                raise DuplicateKeyError(f"Failed to insert into {table}: duplicate {column} {row.get(column)}")
        row.setdefault("id", str(self._next_id))
        self._next_id += 1
        self.rows(table).append(row)
        return deepcopy(row)

    def update(self, table: str, record_id: str, patch: Mapping[str, Any]) -> None:
        self._check("update", table)
        for row in self.rows(table):
            if str(row.get("id")) == str(record_id):
                row.update(patch)

    def count(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> int:
        self._check("count", table)
        return sum(1 for row in self.rows(table) if self._matches(row, filters))

    def delete(self, table: str, record_id: str) -> None:
        self._check("delete", table)
        self.tables[table] = [row for row in self.rows(table) if str(row.get("id")) != str(record_id)]


class FakeCarrier:
    """Carrier double: hands out sequential tracking numbers or fails on demand."""

    def __init__(self, error: Optional[Exception] = None, cancel_error: Optional[Exception] = None) -> None:
        self.error = error
        self.cancel_error = cancel_error
        self.shipped: list[str] = []
        self.cancelled: list[str] = []
        self.waybill_error: Optional[Exception] = None
        self.waybills: list[list[str]] = []

    def create_shipment(self, order) -> str:
        if self.error is not None:
            raise self.error
        self.shipped.append(order.sale_id)
        return f"NVMY{len(self.shipped):06d}"

    def cancel_shipment(self, tracking_number: str) -> None:
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(tracking_number)

    def get_waybill(self, tracking_numbers) -> bytes:
        if self.waybill_error is not None:
            raise self.waybill_error
        self.waybills.append(list(tracking_numbers))
        return b"%PDF-1.4 waybill"


class FakeMessenger:
    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.sent: list[tuple[str, str, str]] = []

    def send(self, device_handle: str, phone: str, text: str) -> bool:
        self.sent.append((device_handle, phone, text))
        return self.accept


def bundle_row(name: str = "Bundle A", **overrides: Any) -> dict[str, Any]:
    """A `bundles` row with normal 100/90/80, shopee 110/100/90, tiktok 120/110/100."""

    row: dict[str, Any] = {"name": name, "is_active": True, "units": 1}
    for group, base in (("normal", 100), ("shopee", 110), ("tiktok", 120)):
        row[f"price_{group}_np"] = base
        row[f"price_{group}_ep"] = base - 10
        row[f"price_{group}_ec"] = base - 20
    row.update(overrides)
    return row


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def settings() -> Settings:
    return Settings(carrier_retry_wait=0)


@pytest.fixture
def catalog() -> BundleCatalog:
    def prices(base: int) -> dict[CustomerCategory, Decimal]:
        return {
            CustomerCategory.NEW: Decimal(base),
            CustomerCategory.RETURNING: Decimal(base - 10),
            CustomerCategory.EXISTING: Decimal(base - 20),
        }

    groups = {"normal": prices(100), "shopee": prices(110), "tiktok": prices(120)}
    bundle = Bundle(
        bundle_id="b1",
        name="Bundle A",
        is_active=True,
        units=1,
        prices={(group, category): price for group, by_cat in groups.items() for category, price in by_cat.items()},
    )
    return BundleCatalog([bundle])


@pytest.fixture
def marketer() -> Marketer:
    return Marketer(user_id="user-1", staff_id="MR-001", name="Siti", messaging_instance="inst-1")


@pytest.fixture
def carrier() -> FakeCarrier:
    return FakeCarrier()


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def failing_carrier() -> FakeCarrier:
    return FakeCarrier(error=CarrierRequestError("Invalid postcode", status_code=400))


@pytest.fixture
def make_order():
    """Factory for Order snapshots with sensible defaults."""

    def factory(**overrides: Any) -> Order:
        fields: dict[str, Any] = dict(
            order_id=None,
            order_number="ORD251019140000000123",
            sale_id="DF2510190001",
            marketer_id="user-1",
            marketer_staff_id="MR-001",
            customer_name="Ali",
            phone="60123456789",
            address="123 Jalan Test",
            postcode="50000",
            city="Kuala Lumpur",
            state="WP Kuala Lumpur",
            product="Bundle A",
            quantity=1,
            unit_price=Decimal("120.50"),
            payment_method=PaymentMethod.COD,
            platform=Platform.FACEBOOK,
            closing_channel=ClosingChannel.WHATSAPP_BOT,
            customer_category=CustomerCategory.NEW,
            courier="Ninjavan COD",
            tracking_number="",
            status=OrderStatus.PENDING,
            order_date=FIXED_NOW.date(),
            created_at=FIXED_NOW,
        )
        fields.update(overrides)
        return Order(**fields)

    return factory


@pytest.fixture
def seeded_store(store: InMemoryStore) -> InMemoryStore:
    """Store with one bundle and one marketer whose device is connected."""

    store.seed("bundles", bundle_row())
    store.seed("profiles", {"id": "user-1", "idstaff": "MR-001", "full_name": "Siti"})
    store.seed(
        "device_setting",
        {"device_id": "dev-1", "user_id": "user-1", "status_wa": "connected", "instance": "inst-1"},
    )
    return store


@pytest.fixture
def api_client(seeded_store, settings, carrier, messenger):
    """TestClient with storage, carrier and messaging replaced by fakes."""

    from fastapi.testclient import TestClient

    from api.dependencies import (
        get_carrier_factory,
        get_messenger,
        get_messenger_factory,
        get_settings,
        get_settings_factory,
        get_store,
        get_store_factory,
    )
    from api.main import app

    app.dependency_overrides[get_store] = lambda: seeded_store
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_messenger] = lambda: messenger
    app.dependency_overrides[get_carrier_factory] = lambda: (lambda: carrier)
    app.dependency_overrides[get_store_factory] = lambda: (lambda: seeded_store)
    app.dependency_overrides[get_settings_factory] = lambda: (lambda: settings)
    app.dependency_overrides[get_messenger_factory] = lambda: (lambda _settings: messenger)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
