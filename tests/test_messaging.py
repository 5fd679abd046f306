"""
Tests for `services/messaging.py`.
"""

from __future__ import annotations

from unittest.mock import Mock

import requests

from services.messaging import WhatsAppClient, order_confirmation_message


def _session(body=None, error: Exception | None = None) -> Mock:
    session = Mock()
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value.json.return_value = body
    return session


def test_send_normalizes_phone_and_reports_success(settings) -> None:
    session = _session({"status": True})

    assert WhatsAppClient(settings, session=session).send("inst-1", "012-3456789", "hi") is True

    params = session.get.call_args.kwargs["params"]
    assert params == {"device_id": "inst-1", "number": "60123456789", "message": "hi"}
    assert session.get.call_args.args[0] == "https://api.whacenter.com/api/send"


def test_success_flag_is_accepted(settings) -> None:
    assert WhatsAppClient(settings, session=_session({"success": True})).send("d", "60123456789", "x")


def test_gateway_rejection_is_false(settings) -> None:
    assert not WhatsAppClient(settings, session=_session({"status": False})).send("d", "60123456789", "x")


def test_transport_error_is_false(settings) -> None:
    session = _session(error=requests.ConnectionError("down"))
    assert WhatsAppClient(settings, session=session).send("d", "60123456789", "x") is False


def test_confirmation_message(make_order) -> None:
    text = order_confirmation_message(make_order(tracking_number="NV1"))

    assert text.startswith("*Pesanan Anda Sudah Ditempah*")
    assert "Nama : Ali" in text
    assert "Tarikh Membeli : 19/10/2025" in text
    assert "Tracking Number : NV1" in text
    assert "Harga Jualan : RM120.50" in text
    assert "Cara Bayaran : COD" in text
