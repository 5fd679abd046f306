"""
Domain: marketer (staff member who owns the customer relationship).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class Marketer:
    user_id: Optional[str]
    staff_id: str
    name: str = ""
    # Messaging instance of the marketer's connected device, if any.
    messaging_instance: Optional[str] = None

    @property
    def can_notify(self) -> bool:
        return bool(self.messaging_instance)
