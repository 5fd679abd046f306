"""
Domain: parcel carrier credentials and sender profile.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .time import require_utc_timestamp

# Subtracted from the carrier-issued lifetime before a token is stored.
TOKEN_SAFETY_MARGIN = timedelta(minutes=5)
DEFAULT_TOKEN_TTL_SECONDS = 3600


@dataclass(frozen=True, slots=True)
class CarrierToken:
    """
    Cached bearer credential.

    A token is never used once `expires_at` has passed. Tokens are superseded
    by newer rows, never mutated or deleted.
    """

    access_token: str
    expires_at: datetime
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("expires_at", self.expires_at)
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)

    def is_valid(self, now: datetime) -> bool:
        return bool(self.access_token) and self.expires_at > now

    @classmethod
    def issued(cls, access_token: str, expires_in: int | str | None, now: datetime) -> "CarrierToken":
        """
        Build a token from a credential response, applying the safety margin.

        `expires_in` may arrive as a numeric string. Raises ValueError when it
        is not a whole number of seconds.
        """

        ttl = timedelta(seconds=int(expires_in or DEFAULT_TOKEN_TTL_SECONDS))
        return cls(access_token=access_token, expires_at=now + ttl - TOKEN_SAFETY_MARGIN, created_at=now)


@dataclass(frozen=True, slots=True)
class CarrierConfig:
    """Carrier API credentials plus the sender (pickup) address."""

    client_id: str
    client_secret: str
    sender_name: str
    sender_phone: str
    sender_email: str
    sender_address1: str
    sender_postcode: str
    sender_city: str
    sender_state: str
    sender_address2: str = ""
