"""
Domain: customer lifecycle category.

Categories (stored codes in parentheses):
- NEW (NP): first contact happened today
- RETURNING (EP): a known contact with no completed purchase yet
- EXISTING (EC): has at least one completed purchase

Leads store NP or EP. EC is derived at order time from the lead's purchase
history; legacy rows that already carry EC are honoured.

The functions below are the only place the category rules live.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .lead import Lead


class CustomerCategory(str, Enum):
    NEW = "NP"
    RETURNING = "EP"
    EXISTING = "EC"

    @classmethod
    def parse(cls, value: str | None) -> "CustomerCategory | None":
        """Lenient parse of a stored code; unknown or empty values give None."""

        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


def resolve_category(lead: "Lead | None", today: date) -> CustomerCategory:
    """
    Resolve the category of a buyer from their most recent lead.

    - no lead: RETURNING (the lead is auto-created, backdated to yesterday)
    - lead stored as EXISTING, or lead with a completed order: EXISTING
    - lead first contacted today: NEW
    - otherwise: RETURNING
    """

    if lead is None:
        return CustomerCategory.RETURNING
    if lead.category is CustomerCategory.EXISTING or lead.has_completed_order:
        return CustomerCategory.EXISTING
    if lead.first_contact_date == today:
        return CustomerCategory.NEW
    return CustomerCategory.RETURNING


def category_after_purchase(
    stored: CustomerCategory | None,
    resolved: CustomerCategory,
) -> CustomerCategory:
    """
    Category to store on the lead once an order classified as `resolved` completes.

    The lead keeps the prospect category it closed under (NP or EP); the
    completed order itself is what makes the next order EXISTING. A lead
    already stored as EXISTING stays EXISTING.
    """

    if stored is CustomerCategory.EXISTING:
        return CustomerCategory.EXISTING
    if resolved is CustomerCategory.EXISTING:
        return stored or CustomerCategory.RETURNING
    return resolved
