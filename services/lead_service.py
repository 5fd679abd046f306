"""
Lead capture from the `#lead` chat command.

Leads captured over chat are stored with the local `0…` phone format and a
first-contact date of today. A phone the marketer already has is not saved
twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from domain.lead import Lead
from domain.marketer import Marketer
from domain.phone import to_local_phone
from domain.time import business_date, utc_now
from repositories.lead_repository import insert_lead, lead_exists
from repositories.store import Store
from services.command_parser import ParsedLead

logger = logging.getLogger(__name__)

DUPLICATE_LEAD_MESSAGE = "Prospect already exists"


@dataclass(frozen=True, slots=True)
class LeadCaptureResult:
    success: bool
    message: str
    lead: Optional[Lead] = None


def capture_lead(
    store: Store,
    parsed: ParsedLead,
    marketer: Marketer,
    *,
    country_code: str = "60",
    clock: Callable[[], datetime] = utc_now,
) -> LeadCaptureResult:
    """
    Save a lead for `marketer` unless the phone is already one of theirs.

    Raises:
        PersistenceError: the duplicate check or the insert failed.
    """

    phone = to_local_phone(parsed.phone, country_code)
    if lead_exists(store, marketer.staff_id, phone):
        logger.info("Lead %s already exists for %s", phone, marketer.staff_id)
        return LeadCaptureResult(success=False, message=DUPLICATE_LEAD_MESSAGE)

    lead = insert_lead(
        store,
        marketer_staff_id=marketer.staff_id,
        name=parsed.name,
        phone=phone,
        niche=parsed.niche,
        category=parsed.category,
        first_contact_date=business_date(clock()),
        created_by=marketer.user_id,
    )
    logger.info("Lead %s captured for %s (%s)", phone, marketer.staff_id, parsed.category.value)
    return LeadCaptureResult(success=True, message="Prospect saved", lead=lead)


__all__ = ["LeadCaptureResult", "capture_lead", "DUPLICATE_LEAD_MESSAGE"]
