"""
Messaging channel client (Whacenter WhatsApp gateway).

The order core only needs one capability: send a text to a phone number
through a named device. Phone numbers are normalized to the international
`60…` format before sending.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

import requests

from domain.order import Order
from domain.phone import normalize_phone
from domain.time import BUSINESS_TZ
from services.settings import Settings

logger = logging.getLogger(__name__)


class WhatsAppClient:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None) -> None:
        self._settings = settings
        self._session = session or requests.Session()

    def send(self, device_handle: str, phone: str, text: str) -> bool:
        """
        Send `text` to `phone` through the device `device_handle`.

        Returns True when the gateway reports success. Transport errors are
        logged and reported as False.
        """

        number = normalize_phone(phone, self._settings.country_code)
        try:
            response = self._session.get(
                f"{self._settings.messaging_base_url}/send",
                params={"device_id": device_handle, "number": number, "message": text},
                timeout=self._settings.messaging_timeout,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Failed to send WhatsApp message to %s: %s", number, e)
            return False

        sent = isinstance(data, dict) and (data.get("status") is True or data.get("success") is True)
        if not sent:
            logger.warning("WhatsApp gateway rejected message to %s: %s", number, data)
        return sent


def _ringgit(amount: Decimal) -> str:
    return f"RM{amount:.2f}"


def order_confirmation_message(order: Order) -> str:
    """Customer-facing confirmation text for a saved order."""

    ordered_on = order.created_at.astimezone(BUSINESS_TZ).strftime("%d/%m/%Y")
    return (
        "*Pesanan Anda Sudah Ditempah*\n"
        "\n"
        f"Nama : {order.customer_name}\n"
        f"Phone : {order.phone}\n"
        f"Pakej : {order.product}\n"
        f"Tarikh Membeli : {ordered_on}\n"
        f"Tracking Number : {order.tracking_number or '-'}\n"
        f"Harga Jualan : {_ringgit(order.unit_price)}\n"
        f"Cara Bayaran : {order.payment_method.value}"
    )


__all__ = ["WhatsAppClient", "order_confirmation_message"]
