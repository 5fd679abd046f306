"""
Chat command parser.

Turns a semi-structured WhatsApp message into a structured request:

    #order
    nama: Ali
    phone: 60123456789
    alamat: 123 Jalan Test
    poskod: 50000
    produk: Bundle A

Parsing is pure and total: any input yields either a populated structure or
None ("not an order"), never an exception.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from domain.customer import CustomerCategory
from domain.order import ClosingChannel, PaymentMethod, Platform

ORDER_MARKER = "#order"
LEAD_MARKER = "#lead"

# field -> accepted labels
_ORDER_FIELDS: dict[str, tuple[str, ...]] = {
    "name": ("nama", "name"),
    "phone": ("phone", "telefon", "hp"),
    "address": ("alamat", "address"),
    "postcode": ("poskod", "postcode", "peskod"),
    "city": ("bandar", "city"),
    "state": ("negeri", "state"),
    "product": ("produk", "product"),
    "quantity": ("kuantiti", "qty", "quantity"),
    "price": ("harga", "price"),
    "platform": ("platform",),
    "payment": ("bayaran", "payment"),
    "closing": ("closing", "jenis_closing"),
}

_LEAD_FIELDS: dict[str, tuple[str, ...]] = {
    "name": ("nama", "name"),
    "phone": ("phone", "telefon", "hp"),
    "niche": ("niche", "produk"),
    "type": ("jenis", "type"),
}

_REQUIRED_ORDER_FIELDS = ("name", "phone", "address", "postcode", "product")
_REQUIRED_LEAD_FIELDS = ("name", "phone", "niche")

# Checked in order; first keyword found in the value wins.
_PLATFORM_KEYWORDS: tuple[tuple[tuple[str, ...], Platform], ...] = (
    (("facebook", "fb"), Platform.FACEBOOK),
    (("shopee",), Platform.SHOPEE),
    (("tiktok", "tik tok"), Platform.TIKTOK),
    (("database", "db"), Platform.DATABASE),
    (("google",), Platform.GOOGLE),
)

DEFAULT_CLOSING_CHANNEL = ClosingChannel.WHATSAPP_BOT

_PRICE_CHARS = re.compile(r"[^\d.]")
_INT_PREFIX = re.compile(r"\d+")

ORDER_FORMAT_HINT = (
    "Format: #order\nnama: [name]\nphone: [phone]\nalamat: [address]\nposkod: [postcode]\n"
    "bandar: [city]\nnegeri: [state]\nproduk: [product]\nkuantiti: [qty]\nharga: [price]\n"
    "platform: [FB/Shopee/Tiktok/Database/Google]\nbayaran: [CASH/COD]"
)
LEAD_FORMAT_HINT = "Format: #lead\nnama: [name]\nphone: [phone]\nniche: [niche]\njenis: [NP/EP]"


@dataclass(frozen=True, slots=True)
class ParsedOrder:
    name: str
    phone: str
    address: str
    postcode: str
    city: str
    state: str
    product: str
    quantity: int
    price: Decimal
    platform: Platform
    payment_method: PaymentMethod
    closing_channel: ClosingChannel


@dataclass(frozen=True, slots=True)
class ParsedLead:
    name: str
    phone: str
    niche: str
    category: CustomerCategory


def _lines(text: object) -> list[str]:
    if not isinstance(text, str):
        return []
    return [line.strip() for line in text.splitlines() if line.strip()]


def _has_marker(lines: list[str], marker: str) -> bool:
    return bool(lines) and marker in lines[0].lower()


def command_of(text: object) -> Optional[str]:
    """Return "order", "lead" or None for the command a message carries."""

    lines = _lines(text)
    if _has_marker(lines, ORDER_MARKER):
        return "order"
    if _has_marker(lines, LEAD_MARKER):
        return "lead"
    return None


def _extract(lines: list[str], fields: dict[str, tuple[str, ...]]) -> dict[str, str]:
    """Collect `key: value` pairs for known labels. Later lines win."""

    label_to_field = {label: name for name, labels in fields.items() for label in labels}
    values: dict[str, str] = {}
    for line in lines[1:]:
        key, sep, value = line.partition(":")
        if not sep:
            continue
        field_name = label_to_field.get(key.strip().lower())
        if field_name is not None:
            values[field_name] = value.strip()
    return values


def normalize_platform(value: Optional[str], default: Platform) -> Platform:
    if not value:
        return default
    lowered = value.lower()
    for keywords, platform in _PLATFORM_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return platform
    return default


def normalize_payment(value: Optional[str]) -> PaymentMethod:
    if value and value.strip().upper() == PaymentMethod.COD.value:
        return PaymentMethod.COD
    return PaymentMethod.PREPAID


def normalize_closing(value: Optional[str]) -> ClosingChannel:
    if value:
        wanted = value.replace(" ", "").lower()
        for channel in ClosingChannel:
            if channel.value.lower() == wanted:
                return channel
    return DEFAULT_CLOSING_CHANNEL


def _parse_quantity(value: Optional[str]) -> int:
    match = _INT_PREFIX.search(value or "")
    quantity = int(match.group()) if match else 1
    return quantity if quantity >= 1 else 1


def _parse_price(value: Optional[str]) -> Decimal:
    cleaned = _PRICE_CHARS.sub("", value or "")
    if not cleaned:
        return Decimal("0")
    try:
        price = Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0")
    return price if price.is_finite() else Decimal("0")


def parse_order_message(text: object, default_platform: Platform = Platform.FACEBOOK) -> Optional[ParsedOrder]:
    """
    Parse an `#order` message.

    Returns None when the first line is not an order marker or a required
    field (name, phone, address, postcode, product) is missing.
    """

    lines = _lines(text)
    if not _has_marker(lines, ORDER_MARKER):
        return None

    values = _extract(lines, _ORDER_FIELDS)
    if any(not values.get(name) for name in _REQUIRED_ORDER_FIELDS):
        return None

    return ParsedOrder(
        name=values["name"],
        phone=values["phone"],
        address=values["address"],
        postcode=values["postcode"],
        city=values.get("city", ""),
        state=values.get("state", ""),
        product=values["product"],
        quantity=_parse_quantity(values.get("quantity")),
        price=_parse_price(values.get("price")),
        platform=normalize_platform(values.get("platform"), default_platform),
        payment_method=normalize_payment(values.get("payment")),
        closing_channel=normalize_closing(values.get("closing")),
    )


def parse_lead_message(text: object) -> Optional[ParsedLead]:
    """Parse a `#lead` message; None when it is not one or is incomplete."""

    lines = _lines(text)
    if not _has_marker(lines, LEAD_MARKER):
        return None

    values = _extract(lines, _LEAD_FIELDS)
    if any(not values.get(name) for name in _REQUIRED_LEAD_FIELDS):
        return None

    category = CustomerCategory.RETURNING if values.get("type", "").upper() == "EP" else CustomerCategory.NEW
    return ParsedLead(name=values["name"], phone=values["phone"], niche=values["niche"], category=category)


__all__ = [
    "ParsedOrder",
    "ParsedLead",
    "ORDER_FORMAT_HINT",
    "LEAD_FORMAT_HINT",
    "command_of",
    "normalize_platform",
    "normalize_payment",
    "normalize_closing",
    "parse_order_message",
    "parse_lead_message",
]
