"""
Lead repository (persistence).

This module provides *only* persistence operations for the Lead entity.
Classification and category promotion rules live in `domain.customer`.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Optional

from domain.customer import CustomerCategory
from domain.errors import ClassificationAmbiguous, PersistenceError
from domain.lead import Lead
from domain.time import parse_date, parse_utc_datetime, utc_now
from repositories.store import Store

# Supabase table name for Lead records.
# Keep this aligned with your database schema.
_LEADS_TABLE: str = "prospects"


def _row_to_lead(row: Mapping[str, Any]) -> Lead:
    """Convert a Supabase row into a domain Lead."""

    created_at = row.get("created_at")
    return Lead(
        lead_id=str(row["id"]),
        marketer_staff_id=str(row.get("marketer_id_staff") or ""),
        name=str(row.get("nama_prospek") or ""),
        phone=str(row.get("no_telefon") or ""),
        niche=str(row.get("niche") or ""),
        category=CustomerCategory.parse(row.get("jenis_prospek")),
        first_contact_date=parse_date(row.get("tarikh_phone_number")),
        order_count=int(row.get("order_count") or 0),
        closed_status=str(row.get("status_closed") or ""),
        closed_price=Decimal(str(row.get("price_closed") or 0)),
        created_at=parse_utc_datetime(created_at) if created_at else None,
    )


def find_latest_lead(store: Store, marketer_staff_id: str, phone: str) -> Optional[Lead]:
    """
    Fetch the most recently created lead for (marketer, phone).

    Raises:
        ClassificationAmbiguous: the lookup itself failed.
    """

    try:
        rows = store.query(
            _LEADS_TABLE,
            {"marketer_id_staff": marketer_staff_id, "no_telefon": phone},
            order_by="created_at",
            descending=True,
            limit=1,
        )
    except PersistenceError as e:
        raise ClassificationAmbiguous(f"Lead lookup failed for {phone}: {e}") from e

    if not rows:
        return None
    return _row_to_lead(rows[0])


def lead_exists(store: Store, marketer_staff_id: str, phone: str) -> bool:
    return store.count(_LEADS_TABLE, {"marketer_id_staff": marketer_staff_id, "no_telefon": phone}) > 0


def insert_lead(
    store: Store,
    *,
    marketer_staff_id: str,
    name: str,
    phone: str,
    niche: str,
    category: CustomerCategory,
    first_contact_date: date,
    created_by: Optional[str] = None,
) -> Lead:
    """Insert a new lead and return it as stored."""

    now = utc_now()
    payload: dict[str, Any] = {
        "nama_prospek": name.upper(),
        "no_telefon": phone,
        "niche": niche,
        "jenis_prospek": category.value,
        "tarikh_phone_number": first_contact_date.isoformat(),
        "marketer_id_staff": marketer_staff_id,
        "admin_id_staff": "",
        "status_closed": "",
        "price_closed": 0,
        "order_count": 0,
        "created_by": created_by,
        "created_at": now.isoformat(),
    }
    row = store.insert(_LEADS_TABLE, payload)
    return _row_to_lead({**payload, **row})


def mark_lead_closed(
    store: Store,
    lead: Lead,
    *,
    category: CustomerCategory,
    price: Decimal,
    closed_at: Optional[datetime] = None,
) -> None:
    """Record a completed order against the lead (order count +1, closed)."""

    store.update(
        _LEADS_TABLE,
        lead.lead_id,
        {
            "jenis_prospek": category.value,
            "status_closed": "closed",
            "price_closed": float(price),
            "order_count": lead.order_count + 1,
            "updated_at": (closed_at or utc_now()).isoformat(),
        },
    )


__all__ = [
    "find_latest_lead",
    "lead_exists",
    "insert_lead",
    "mark_lead_closed",
]
