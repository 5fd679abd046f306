"""
Tests for `domain/lead.py`.

Covers contract rules:
- created_at, when present, must be a UTC timestamp.
- Lead is immutable (frozen).
- A lead counts as purchased once it has an order or is marked closed.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import date, datetime, timedelta, timezone

import pytest

from domain.customer import CustomerCategory
from domain.lead import Lead


def _lead(**overrides) -> Lead:
    fields = dict(
        lead_id="1",
        marketer_staff_id="MR-001",
        name="ALI",
        phone="0123456789",
        niche="Bundle A",
        category=CustomerCategory.NEW,
        first_contact_date=date(2025, 10, 19),
    )
    fields.update(overrides)
    return Lead(**fields)


def test_lead_created_at_must_be_utc() -> None:
    """Verify created_at must be timezone-aware UTC (offset 0)."""

    with pytest.raises(ValueError):
        _lead(created_at=datetime(2025, 1, 1, 0, 0, 0))

    with pytest.raises(ValueError):
        _lead(created_at=datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone(timedelta(hours=8))))

    assert _lead(created_at=datetime(2025, 1, 1, tzinfo=timezone.utc)).created_at is not None


def test_lead_order_count_must_not_be_negative() -> None:
    with pytest.raises(ValueError):
        _lead(order_count=-1)


def test_lead_is_immutable() -> None:
    """Verify Lead cannot be mutated after creation (frozen entity)."""

    lead = _lead()

    with pytest.raises(FrozenInstanceError):
        lead.category = CustomerCategory.EXISTING  # type: ignore[misc]


@pytest.mark.parametrize(
    ("order_count", "closed_status", "expected"),
    [
        (0, "", False),
        (1, "", True),
        (0, "closed", True),
        (3, "closed", True),
    ],
)
def test_has_completed_order(order_count: int, closed_status: str, expected: bool) -> None:
    assert _lead(order_count=order_count, closed_status=closed_status).has_completed_order is expected
