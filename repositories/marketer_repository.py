"""
Marketer lookups: chat device → marketer profile → connected messaging device.
"""

from __future__ import annotations

from typing import Optional

from domain.marketer import Marketer
from repositories.store import Store

_DEVICES_TABLE: str = "device_setting"
_PROFILES_TABLE: str = "profiles"

_CONNECTED = "connected"


def connected_instance(store: Store, user_id: str) -> Optional[str]:
    rows = store.query(_DEVICES_TABLE, {"user_id": user_id, "status_wa": _CONNECTED}, limit=1)
    if rows and rows[0].get("instance"):
        return str(rows[0]["instance"])
    return None


def get_marketer(store: Store, user_id: str) -> Optional[Marketer]:
    rows = store.query(_PROFILES_TABLE, {"id": user_id}, limit=1)
    if not rows or not rows[0].get("idstaff"):
        return None
    profile = rows[0]
    return Marketer(
        user_id=user_id,
        staff_id=str(profile["idstaff"]),
        name=str(profile.get("full_name") or ""),
        messaging_instance=connected_instance(store, user_id),
    )


def find_marketer_by_device(store: Store, device_id: str) -> Optional[Marketer]:
    """Resolve the marketer who owns the chat device that sent a message."""

    if not device_id:
        return None
    rows = store.query(_DEVICES_TABLE, {"device_id": device_id}, limit=1)
    if not rows or not rows[0].get("user_id"):
        return None
    return get_marketer(store, str(rows[0]["user_id"]))


__all__ = ["connected_instance", "get_marketer", "find_marketer_by_device"]
