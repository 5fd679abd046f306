"""
Lead classification and minimum-price lookup.

Classification is read-only: it looks at the newest lead for
(marketer, phone) and derives the buyer's category. Writing back the outcome
of a completed order is the orchestrator's job (see `order_service`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from domain.bundle import Bundle, BundleCatalog
from domain.customer import CustomerCategory, resolve_category
from domain.errors import ValidationError
from domain.lead import Lead
from domain.order import Platform
from repositories.lead_repository import find_latest_lead
from repositories.store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Classification:
    category: CustomerCategory
    lead: Optional[Lead]
    # No lead exists yet; one is created once the order completes.
    auto_create: bool = False


def classify(store: Store, marketer_staff_id: str, phone: str, today: date) -> Classification:
    """
    Classify a buyer for `marketer_staff_id`.

    Args:
        store: persistence
        marketer_staff_id: staff id of the owning marketer
        phone: buyer phone, in the shape leads are stored under
        today: business date of the order

    Returns:
        Classification with the resolved category and the lead consulted.

    Raises:
        ClassificationAmbiguous: the lead lookup failed.

    Example:
        >>> classify(store, "MR-001", "60123456789", date(2025, 10, 19)).category
        <CustomerCategory.NEW: 'NP'>
    """

    lead = find_latest_lead(store, marketer_staff_id, phone)
    category = resolve_category(lead, today)
    logger.debug("Classified %s for %s as %s", phone, marketer_staff_id, category.value)
    return Classification(category=category, lead=lead, auto_create=lead is None)


def require_bundle(catalog: BundleCatalog, product: str) -> Bundle:
    bundle = catalog.find(product)
    if bundle is None:
        raise ValidationError(f"Unknown product: {product}")
    return bundle


def check_price(
    bundle: Bundle,
    platform: Platform,
    category: CustomerCategory,
    offered: Decimal,
) -> Decimal:
    """
    Return the price to charge.

    An absent (zero) offer takes the tier minimum; an offer below the minimum
    is rejected.
    """

    minimum = bundle.minimum_price(platform, category)
    if offered <= 0:
        return minimum
    if offered < minimum:
        raise ValidationError(
            f"Harga jualan minimum untuk {bundle.name} ({category.value}, {platform.value}) ialah RM{minimum:.2f}"
        )
    return offered


__all__ = ["Classification", "classify", "require_bundle", "check_price"]
