"""
Carrier repository: cached bearer tokens and the carrier configuration row.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from domain.carrier import CarrierConfig, CarrierToken
from domain.errors import ConfigurationError, PersistenceError
from domain.time import parse_utc_datetime
from repositories.store import Store

logger = logging.getLogger(__name__)

_TOKENS_TABLE: str = "ninjavan_tokens"
_CONFIG_TABLE: str = "ninjavan_config"

# Recent rows are enough to find the newest live token.
_TOKEN_SCAN_LIMIT = 5


def _row_to_token(row: Mapping[str, Any]) -> CarrierToken:
    created_at = row.get("created_at")
    return CarrierToken(
        access_token=str(row.get("access_token") or ""),
        expires_at=parse_utc_datetime(row["expires_at"]),
        created_at=parse_utc_datetime(created_at) if created_at else None,
    )


def latest_valid_token(store: Store, now: datetime) -> Optional[CarrierToken]:
    """
    Return the newest stored token that has not expired.

    A failed lookup is treated as "no token": the caller will fetch a fresh one.
    """

    try:
        rows = store.query(_TOKENS_TABLE, order_by="created_at", descending=True, limit=_TOKEN_SCAN_LIMIT)
    except PersistenceError as e:
        logger.warning("Token lookup failed, requesting a new token: %s", e)
        return None

    for row in rows:
        token = _row_to_token(row)
        if token.is_valid(now):
            return token
    return None


def save_token(store: Store, token: CarrierToken) -> None:
    store.insert(
        _TOKENS_TABLE,
        {
            "access_token": token.access_token,
            "expires_at": token.expires_at.isoformat(),
            "created_at": token.created_at.isoformat() if token.created_at else None,
        },
    )


def get_carrier_config(store: Store) -> CarrierConfig:
    """
    Load the carrier configuration row.

    Raises:
        ConfigurationError: no configuration has been saved yet.
    """

    rows = store.query(_CONFIG_TABLE, limit=1)
    if not rows:
        raise ConfigurationError(
            "Ninjavan configuration not found. Please configure in Logistics Settings."
        )
    row = rows[0]
    return CarrierConfig(
        client_id=str(row["client_id"]),
        client_secret=str(row["client_secret"]),
        sender_name=str(row.get("sender_name") or ""),
        sender_phone=str(row.get("sender_phone") or ""),
        sender_email=str(row.get("sender_email") or ""),
        sender_address1=str(row.get("sender_address1") or ""),
        sender_address2=str(row.get("sender_address2") or ""),
        sender_postcode=str(row.get("sender_postcode") or ""),
        sender_city=str(row.get("sender_city") or ""),
        sender_state=str(row.get("sender_state") or ""),
    )


__all__ = ["latest_valid_token", "save_token", "get_carrier_config"]
