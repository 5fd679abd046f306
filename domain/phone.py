"""
Phone number normalization.

Two canonical shapes exist in the system:
- international (`60123456789`): used by the messaging channel and the carrier
- local (`0123456789`): how leads captured over chat are stored

Both normalizers are idempotent.
"""

from __future__ import annotations

import re

COUNTRY_CODE = "60"

_NON_DIGITS = re.compile(r"\D")


def digits_only(phone: str) -> str:
    return _NON_DIGITS.sub("", phone or "")


def normalize_phone(phone: str, country_code: str = COUNTRY_CODE) -> str:
    """
    Normalize to the international format expected by the messaging channel.

    Example:
        normalize_phone("012-345 6789")  # "60123456789"
        normalize_phone("60123456789")   # "60123456789"
    """

    formatted = digits_only(phone)
    if formatted.startswith("0"):
        formatted = country_code + formatted[1:]
    if not formatted.startswith(country_code):
        formatted = country_code + formatted
    return formatted


def to_local_phone(phone: str, country_code: str = COUNTRY_CODE) -> str:
    """Normalize to the local `0…` format."""

    formatted = digits_only(phone)
    if formatted.startswith(country_code):
        formatted = "0" + formatted[len(country_code):]
    if not formatted.startswith("0"):
        formatted = "0" + formatted
    return formatted


def has_country_prefix(phone: str, country_code: str = COUNTRY_CODE, min_length: int = 10) -> bool:
    """True when the digits carry the country code and look like a full number."""

    formatted = digits_only(phone)
    return formatted.startswith(country_code) and len(formatted) >= min_length
