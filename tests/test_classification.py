"""
Tests for `services/classification_service.py` and the bundle catalog.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from domain.customer import CustomerCategory
from domain.errors import ClassificationAmbiguous, ValidationError
from domain.order import Platform
from repositories.bundle_repository import load_catalog
from services.classification_service import check_price, classify, require_bundle

TODAY = date(2025, 10, 19)


def _lead_row(created_at: str, first_contact: str, **extra) -> dict:
    return {
        "marketer_id_staff": "MR-001",
        "no_telefon": "0123456789",
        "jenis_prospek": "EP",
        "tarikh_phone_number": first_contact,
        "created_at": created_at,
        **extra,
    }


def test_unknown_phone_requests_auto_create(store) -> None:
    result = classify(store, "MR-001", "0123456789", TODAY)

    assert result.category is CustomerCategory.RETURNING
    assert result.lead is None
    assert result.auto_create is True


def test_newest_lead_wins(store) -> None:
    store.seed(
        "prospects",
        _lead_row("2025-10-01T00:00:00+00:00", "2025-10-01", order_count=2),
        _lead_row("2025-10-19T01:00:00+00:00", "2025-10-19", jenis_prospek="NP"),
    )

    result = classify(store, "MR-001", "0123456789", TODAY)

    assert result.category is CustomerCategory.NEW
    assert result.lead is not None
    assert result.auto_create is False


def test_leads_of_other_marketers_are_ignored(store) -> None:
    store.seed("prospects", _lead_row("2025-10-19T01:00:00+00:00", "2025-10-19", marketer_id_staff="MR-009"))

    assert classify(store, "MR-001", "0123456789", TODAY).auto_create is True


def test_classify_is_read_only_and_idempotent(store) -> None:
    store.seed("prospects", _lead_row("2025-10-19T01:00:00+00:00", "2025-10-19"))
    before = store.query("prospects")

    first = classify(store, "MR-001", "0123456789", TODAY)
    second = classify(store, "MR-001", "0123456789", TODAY)

    assert first == second
    assert store.query("prospects") == before


def test_lookup_failure_is_ambiguous(store) -> None:
    store.failures.add(("query", "prospects"))

    with pytest.raises(ClassificationAmbiguous):
        classify(store, "MR-001", "0123456789", TODAY)


@pytest.mark.parametrize(
    ("platform", "category", "expected"),
    [
        (Platform.FACEBOOK, CustomerCategory.NEW, Decimal("100")),
        (Platform.GOOGLE, CustomerCategory.EXISTING, Decimal("80")),
        (Platform.SHOPEE, CustomerCategory.RETURNING, Decimal("100")),
        (Platform.TIKTOK, CustomerCategory.NEW, Decimal("120")),
    ],
)
def test_zero_offer_takes_tier_minimum(catalog, platform, category, expected) -> None:
    bundle = require_bundle(catalog, "bundle a")
    assert check_price(bundle, platform, category, Decimal("0")) == expected


def test_offer_below_minimum_is_rejected(catalog) -> None:
    bundle = require_bundle(catalog, "Bundle A")

    with pytest.raises(ValidationError):
        check_price(bundle, Platform.TIKTOK, CustomerCategory.NEW, Decimal("119.99"))


def test_unknown_bundle_is_rejected(catalog) -> None:
    with pytest.raises(ValidationError):
        require_bundle(catalog, "Mystery Box")


def test_catalog_loads_active_bundles_with_legacy_prices(store) -> None:
    store.seed(
        "bundles",
        {"name": "Bundle Lama", "is_active": True, "units": 2, "price_normal": 70, "price_shopee": 75},
        {"name": "Retired", "is_active": False, "price_normal_np": 10},
    )

    catalog = load_catalog(store)

    assert len(catalog) == 1
    assert catalog.find("lama").name == "Bundle Lama"
    assert catalog.minimum_price("Bundle Lama", Platform.FACEBOOK, CustomerCategory.EXISTING) == Decimal("70")
    assert catalog.minimum_price("Bundle Lama", Platform.TIKTOK, CustomerCategory.NEW) == Decimal("0")
    assert catalog.find("Retired") is None
