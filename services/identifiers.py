"""
Identifier generation for orders.

- Order numbers are customer-facing, generated locally and sortable by time.
- Sale IDs are carrier-facing (they become the requested tracking number) and
  run as a zero-padded sequence per business day: DF2510190001, DF2510190002…

Sale IDs are issued by reserving the candidate in `sale_id_reservations`,
whose `sale_id` column is unique. Two concurrent requests that read the same
count cannot both reserve the same value: the loser gets a duplicate-key
error and retries with the next sequence number.
"""

from __future__ import annotations

import logging
import secrets
from datetime import date, datetime
from typing import Optional

from domain.errors import DuplicateKeyError, PersistenceError
from domain.time import BUSINESS_TZ, business_date, utc_now
from repositories.store import Store

logger = logging.getLogger(__name__)

_RESERVATIONS_TABLE: str = "sale_id_reservations"

SEQUENCE_WIDTH = 4


def new_order_number(now: Optional[datetime] = None) -> str:
    """
    Generate a customer-facing order number.

    Format: ORD + YYMMDD + HHMMSS + milliseconds + 3 random digits, in the
    business timezone. Collisions need two orders in the same millisecond
    drawing the same random suffix.
    """

    moment = (now or utc_now()).astimezone(BUSINESS_TZ)
    millis = moment.microsecond // 1000
    suffix = secrets.randbelow(1000)
    return f"ORD{moment:%y%m%d%H%M%S}{millis:03d}{suffix:03d}"


def format_sale_id(prefix: str, day: date, sequence: int) -> str:
    return f"{prefix}{day:%y%m%d}{sequence:0{SEQUENCE_WIDTH}d}"


def new_sale_id(
    store: Store,
    *,
    today: Optional[date] = None,
    prefix: str = "DF",
    max_attempts: int = 5,
) -> str:
    """
    Reserve and return the next sale ID for `today`.

    Raises:
        PersistenceError: the store failed, or every attempt collided.
    """

    day = today or business_date(utc_now())
    day_key = day.isoformat()
    last_tried = 0

    for attempt in range(1, max_attempts + 1):
        issued = store.count(_RESERVATIONS_TABLE, {"sale_date": day_key, "prefix": prefix})
        sequence = max(issued + 1, last_tried + 1)
        candidate = format_sale_id(prefix, day, sequence)
        last_tried = sequence

        try:
            store.insert(
                _RESERVATIONS_TABLE,
                {
                    "sale_id": candidate,
                    "sale_date": day_key,
                    "prefix": prefix,
                    "created_at": utc_now().isoformat(),
                },
            )
        except DuplicateKeyError:
            logger.warning(
                "Sale ID %s already reserved (attempt %d/%d), retrying",
                candidate,
                attempt,
                max_attempts,
            )
            continue

        return candidate

    raise PersistenceError(f"Could not reserve a sale ID for {day_key} after {max_attempts} attempts")


__all__ = ["new_order_number", "format_sale_id", "new_sale_id"]
