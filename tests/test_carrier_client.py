"""
Tests for `services/carrier_client.py`.

The HTTP session is a Mock; the token cache uses the in-memory store.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import Mock

import pytest
import requests

from domain.carrier import CarrierConfig
from domain.errors import CarrierAuthError, CarrierRequestError, ValidationError
from domain.order import PaymentMethod
from services.carrier_client import CarrierClient, build_shipment_payload, split_address

NOW = datetime(2025, 10, 19, 6, 0, 0, tzinfo=timezone.utc)

CONFIG = CarrierConfig(
    client_id="client",
    client_secret="secret",
    sender_name="Gudang",
    sender_phone="60311112222",
    sender_email="ops@example.com",
    sender_address1="Lot 1, Jalan Industri",
    sender_postcode="40000",
    sender_city="Shah Alam",
    sender_state="Selangor",
)


def _response(status_code: int = 200, body=None, text: str = "") -> Mock:
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.ok = status_code < 400
    response.text = text
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


def _client(store, settings, session) -> CarrierClient:
    return CarrierClient(store, CONFIG, settings, session=session, clock=lambda: NOW)


def _token_ok(expires_in=3600) -> Mock:
    return _response(200, {"access_token": "tok-1", "expires_in": expires_in})


def test_fetches_and_caches_token(store, settings) -> None:
    session = Mock()
    session.post.return_value = _token_ok()
    client = _client(store, settings, session)

    assert client.get_token() == "tok-1"
    assert client.get_token() == "tok-1"

    session.post.assert_called_once()
    url = session.post.call_args.args[0]
    assert url == "https://api.ninjavan.co/my/2.0/oauth/access_token"
    assert session.post.call_args.kwargs["timeout"] == (10.0, 15.0)

    stored = store.rows("ninjavan_tokens")
    assert len(stored) == 1
    # 3600s lifetime minus the five-minute margin
    assert stored[0]["expires_at"] == (NOW + timedelta(seconds=3300)).isoformat()


def test_expired_token_is_never_used(store, settings) -> None:
    store.seed(
        "ninjavan_tokens",
        {"access_token": "old", "expires_at": (NOW - timedelta(seconds=1)).isoformat(), "created_at": NOW.isoformat()},
    )
    session = Mock()
    session.post.return_value = _token_ok()

    assert _client(store, settings, session).get_token() == "tok-1"


def test_live_cached_token_skips_credential_call(store, settings) -> None:
    store.seed(
        "ninjavan_tokens",
        {"access_token": "cached", "expires_at": (NOW + timedelta(minutes=10)).isoformat(), "created_at": NOW.isoformat()},
    )
    session = Mock()

    assert _client(store, settings, session).get_token() == "cached"
    session.post.assert_not_called()


def test_token_lookup_failure_fetches_new_token(store, settings) -> None:
    store.failures.add(("query", "ninjavan_tokens"))
    session = Mock()
    session.post.return_value = _token_ok()

    assert _client(store, settings, session).get_token() == "tok-1"


def test_missing_expires_in_defaults_to_an_hour(store, settings) -> None:
    session = Mock()
    session.post.return_value = _response(200, {"access_token": "tok-1"})

    _client(store, settings, session).get_token()

    assert store.rows("ninjavan_tokens")[0]["expires_at"] == (NOW + timedelta(seconds=3300)).isoformat()


def test_string_expires_in_is_accepted(store, settings) -> None:
    session = Mock()
    session.post.return_value = _token_ok(expires_in="7200")

    _client(store, settings, session).get_token()

    assert store.rows("ninjavan_tokens")[0]["expires_at"] == (NOW + timedelta(seconds=6900)).isoformat()


@pytest.mark.parametrize("expires_in", ["soon", [3600], {"s": 1}])
def test_malformed_expires_in_is_auth_error(store, settings, expires_in) -> None:
    session = Mock()
    session.post.return_value = _token_ok(expires_in=expires_in)

    with pytest.raises(CarrierAuthError):
        _client(store, settings, session).get_token()

    assert store.rows("ninjavan_tokens") == []


def test_401_raises_auth_error_and_caches_nothing(store, settings) -> None:
    session = Mock()
    session.post.return_value = _response(401, {"message": "bad credentials"}, text="bad credentials")

    with pytest.raises(CarrierAuthError):
        _client(store, settings, session).get_token()

    assert store.rows("ninjavan_tokens") == []


def test_auth_failure_means_no_shipment_call(store, settings, make_order) -> None:
    session = Mock()
    session.post.return_value = _response(401, text="unauthorized")

    with pytest.raises(CarrierAuthError):
        _client(store, settings, session).create_shipment(make_order())

    session.request.assert_not_called()


def test_unreachable_credential_endpoint_is_auth_error(store, settings) -> None:
    session = Mock()
    session.post.side_effect = requests.ConnectionError("down")

    with pytest.raises(CarrierAuthError):
        _client(store, settings, session).get_token()


def test_create_shipment_returns_tracking_number(store, settings, make_order) -> None:
    session = Mock()
    session.post.return_value = _token_ok()
    session.request.return_value = _response(200, {"tracking_number": "NVMYDF2510190001"})

    tracking = _client(store, settings, session).create_shipment(make_order())

    assert tracking == "NVMYDF2510190001"
    method, url = session.request.call_args.args
    assert method == "POST"
    assert url == "https://api.ninjavan.co/my/4.1/orders"
    kwargs = session.request.call_args.kwargs
    assert kwargs["headers"]["Authorization"] == "Bearer tok-1"
    assert kwargs["json"]["requested_tracking_number"] == "DF2510190001"


def test_rejected_shipment_carries_carrier_message(store, settings, make_order) -> None:
    session = Mock()
    session.post.return_value = _token_ok()
    session.request.return_value = _response(400, {"message": "Invalid postcode"})

    with pytest.raises(CarrierRequestError, match="Invalid postcode") as excinfo:
        _client(store, settings, session).create_shipment(make_order())

    assert excinfo.value.status_code == 400


def test_shipment_retried_once_on_timeout(store, settings, make_order) -> None:
    session = Mock()
    session.post.return_value = _token_ok()
    session.request.side_effect = [requests.Timeout("slow"), _response(200, {"tracking_number": "NV1"})]

    assert _client(store, settings, session).create_shipment(make_order()) == "NV1"
    assert session.request.call_count == 2


def test_shipment_gives_up_after_second_timeout(store, settings, make_order) -> None:
    session = Mock()
    session.post.return_value = _token_ok()
    session.request.side_effect = requests.Timeout("slow")

    with pytest.raises(CarrierRequestError):
        _client(store, settings, session).create_shipment(make_order())

    assert session.request.call_count == 2


def test_cancel_shipment_uses_delete(store, settings) -> None:
    session = Mock()
    session.post.return_value = _token_ok()
    session.request.return_value = _response(200, {"status": "cancelled"})

    _client(store, settings, session).cancel_shipment("NV123")

    method, url = session.request.call_args.args
    assert method == "DELETE"
    assert url == "https://api.ninjavan.co/my/2.2/orders/NV123"


def test_cancel_requires_tracking_number(store, settings) -> None:
    with pytest.raises(CarrierRequestError):
        _client(store, settings, Mock()).cancel_shipment("")


def _pdf(status_code: int = 200, text: str = "") -> Mock:
    response = _response(status_code, text=text)
    response.content = b"%PDF-1.4" if status_code < 400 else b""
    return response


def test_waybill_uses_fresh_token_and_bulk_report(store, settings) -> None:
    store.seed(
        "ninjavan_tokens",
        {"access_token": "cached", "expires_at": (NOW + timedelta(minutes=10)).isoformat(), "created_at": NOW.isoformat()},
    )
    session = Mock()
    session.post.return_value = _token_ok()
    session.request.return_value = _pdf()

    pdf = _client(store, settings, session).get_waybill(["NV1", "NV2"])

    assert pdf == b"%PDF-1.4"
    session.post.assert_called_once()
    method, url = session.request.call_args.args
    assert (method, url) == ("GET", "https://api.ninjavan.co/my/2.0/reports/waybill")
    kwargs = session.request.call_args.kwargs
    assert kwargs["params"] == {"tids": "NV1,NV2", "h": 0}
    assert kwargs["headers"]["Authorization"] == "Bearer tok-1"
    assert kwargs["headers"]["Accept"] == "application/pdf"
    # the waybill token is not cached
    assert len(store.rows("ninjavan_tokens")) == 1


def test_waybill_falls_back_to_single_order_endpoint(store, settings) -> None:
    session = Mock()
    session.post.return_value = _token_ok()
    session.request.side_effect = [_pdf(403, "forbidden"), _pdf(404, "not found"), _pdf()]

    assert _client(store, settings, session).get_waybill(["NV1"]) == b"%PDF-1.4"

    urls = [c.args[1] for c in session.request.call_args_list]
    assert urls == [
        "https://api.ninjavan.co/my/2.0/reports/waybill",
        "https://api.ninjavan.co/my/4.1/orders/waybill",
        "https://api.ninjavan.co/my/4.1/orders/NV1/waybill",
    ]


def test_waybill_refused_everywhere(store, settings) -> None:
    session = Mock()
    session.post.return_value = _token_ok()
    session.request.return_value = _pdf(403, "missing scope CORE_GET_AWB")

    with pytest.raises(CarrierRequestError) as excinfo:
        _client(store, settings, session).get_waybill(["NV1", "NV2"])

    assert excinfo.value.status_code == 403
    assert "CORE_GET_AWB" in str(excinfo.value)
    # no per-order fallback for several parcels
    assert session.request.call_count == 2


def test_waybill_requires_tracking_numbers(store, settings) -> None:
    session = Mock()

    with pytest.raises(ValidationError):
        _client(store, settings, session).get_waybill(["", "  "])

    session.post.assert_not_called()


def test_split_address() -> None:
    long_address = "A" * 150
    assert split_address("short") == ("short", "")
    assert split_address(long_address) == ("A" * 100, "A" * 50)
    assert split_address("B" * 250)[1] == "B" * 100


def test_payload_cod_amount_and_dates(make_order) -> None:
    payload = build_shipment_payload(make_order(), CONFIG, pickup_date=date(2025, 10, 19))
    job = payload["parcel_job"]

    assert payload["reference"]["merchant_order_number"] == "BISNESOWNER-DF2510190001"
    assert payload["to"]["phone_number"] == "60123456789"
    assert payload["from"]["address"]["postcode"] == "40000"
    assert job["cash_on_delivery"] == 121
    assert job["pickup_date"] == "2025-10-19"
    assert job["delivery_start_date"] == "2025-10-21"
    assert job["delivery_timeslot"]["timezone"] == "Asia/Kuala_Lumpur"


def test_payload_prepaid_has_no_cod(make_order) -> None:
    order = make_order(payment_method=PaymentMethod.PREPAID, unit_price=Decimal("99"))
    payload = build_shipment_payload(order, CONFIG, pickup_date=date(2025, 10, 19))

    assert payload["parcel_job"]["cash_on_delivery"] == 0
    assert payload["parcel_job"]["insured_value"] == 99
