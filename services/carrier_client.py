"""
Parcel carrier (Ninja Van) client.

Two layers:
- Token cache: bearer tokens are stored in `ninjavan_tokens` and reused until
  they expire. Tokens are refreshed lazily on the next call; concurrent
  refreshes just insert redundant rows, and any live token is acceptable.
- Shipment adapter: create / cancel shipments with the cached token, and
  download waybills.

Every HTTP call carries an explicit (connect, read) timeout. Shipment calls are
retried once on connection errors and timeouts; the credential call is not.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Optional, Sequence

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from domain.carrier import CarrierConfig, CarrierToken
from domain.errors import CarrierAuthError, CarrierRequestError, PersistenceError, ValidationError
from domain.order import Order
from domain.time import BUSINESS_TIMEZONE_NAME, business_date, utc_now
from repositories.carrier_repository import latest_valid_token, save_token
from repositories.store import Store
from services.settings import Settings

logger = logging.getLogger(__name__)

ADDRESS_LINE_LIMIT = 100
DELIVERY_LEAD_DAYS = 2
COUNTRY = "MY"
PARCEL_WEIGHT_KG = 0.5

_TIMESLOT = {"start_time": "09:00", "end_time": "18:00", "timezone": BUSINESS_TIMEZONE_NAME}

_TRANSIENT_ERRORS = (requests.ConnectionError, requests.Timeout)


def _whole_ringgit(amount: Decimal) -> int:
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def split_address(address: str) -> tuple[str, str]:
    """Split an address into two carrier address lines of at most 100 characters."""

    if len(address) <= ADDRESS_LINE_LIMIT:
        return address, ""
    return address[:ADDRESS_LINE_LIMIT], address[ADDRESS_LINE_LIMIT:ADDRESS_LINE_LIMIT * 2]


def build_shipment_payload(
    order: Order,
    config: CarrierConfig,
    *,
    pickup_date: date,
    merchant_reference_prefix: str = "BISNESOWNER",
) -> dict[str, Any]:
    """
    Build the carrier order payload for an order.

    - requested_tracking_number is the sale ID
    - cash_on_delivery is the order price for COD orders, otherwise 0
    - pickup is `pickup_date`, delivery starts two days later
    """

    address1, address2 = split_address(order.address)
    delivery_date = pickup_date + timedelta(days=DELIVERY_LEAD_DAYS)
    instructions = f"{order.product} ({order.marketer_staff_id}) ({pickup_date.isoformat()})"

    return {
        "service_type": "Parcel",
        "service_level": "Standard",
        "requested_tracking_number": order.sale_id,
        "reference": {"merchant_order_number": f"{merchant_reference_prefix}-{order.sale_id}"},
        "from": {
            "name": config.sender_name,
            "phone_number": config.sender_phone,
            "email": config.sender_email,
            "address": {
                "address1": config.sender_address1,
                "address2": config.sender_address2,
                "country": COUNTRY,
                "postcode": config.sender_postcode,
                "city": config.sender_city,
                "state": config.sender_state,
            },
        },
        "to": {
            "name": order.customer_name,
            "phone_number": order.phone,
            "address": {
                "address1": address1,
                "address2": address2,
                "country": COUNTRY,
                "postcode": order.postcode,
                "city": order.city,
                "state": order.state,
            },
        },
        "parcel_job": {
            "is_pickup_required": True,
            "pickup_service_type": "Scheduled",
            "pickup_service_level": "Standard",
            "pickup_date": pickup_date.isoformat(),
            "pickup_timeslot": dict(_TIMESLOT),
            "pickup_approx_volume": "Half-Van Load",
            "delivery_start_date": delivery_date.isoformat(),
            "delivery_timeslot": dict(_TIMESLOT),
            "delivery_instructions": instructions,
            "cash_on_delivery": _whole_ringgit(order.cod_amount),
            "insured_value": _whole_ringgit(order.unit_price),
            "dimensions": {"weight": PARCEL_WEIGHT_KG},
        },
    }


def _json_body(response: requests.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class CarrierClient:
    """
    Carrier API client bound to one configuration.

    Args:
        store: persistence for the token cache
        config: credentials and sender address (read-only)
        settings: endpoints, timeouts and retry wait
        session: optional requests session (tests pass a fake)
        clock: returns the current UTC time
    """

    def __init__(
        self,
        store: Store,
        config: CarrierConfig,
        settings: Settings,
        session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._config = config
        self._settings = settings
        self._session = session or requests.Session()
        self._clock = clock
        self._timeout = (settings.carrier_connect_timeout, settings.carrier_read_timeout)

    def _url(self, path: str) -> str:
        return f"{self._settings.carrier_base_url}/{self._settings.carrier_country}/{path}"

    # ------------------------------------------------------------------
    # Token cache
    # ------------------------------------------------------------------

    def get_token(self) -> str:
        """
        Return a live bearer token, fetching a new one when none is cached.

        Raises:
            CarrierAuthError: the credential endpoint failed. Nothing is cached.
        """

        now = self._clock()
        cached = latest_valid_token(self._store, now)
        if cached is not None:
            logger.debug("Using cached carrier token, expires at %s", cached.expires_at.isoformat())
            return cached.access_token

        logger.info("No valid carrier token cached, requesting a new one")
        token = self._request_token(now)
        try:
            save_token(self._store, token)
        except PersistenceError as e:
            # Still valid for this request
            logger.error("Failed to store carrier token: %s", e)

        logger.info("New carrier token obtained, stored expiry %s", token.expires_at.isoformat())
        return token.access_token

    def _request_token(self, now: datetime) -> CarrierToken:
        """Call the credential endpoint. Raises CarrierAuthError; never retried."""

        try:
            response = self._session.post(
                self._url("2.0/oauth/access_token"),
                json={
                    "client_id": self._config.client_id,
                    "client_secret": self._config.client_secret,
                    "grant_type": "client_credentials",
                },
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise CarrierAuthError(f"Carrier credential endpoint unreachable: {e}") from e

        if not response.ok:
            raise CarrierAuthError(
                f"Failed to authenticate with carrier API (HTTP {response.status_code}): {response.text[:500]}"
            )

        body = _json_body(response)
        access_token = body.get("access_token")
        if not access_token:
            raise CarrierAuthError("Carrier credential response did not include an access token")

        try:
            token = CarrierToken.issued(str(access_token), body.get("expires_in"), now)
        except (TypeError, ValueError) as e:
            raise CarrierAuthError(
                f"Carrier credential response has an invalid expires_in: {body.get('expires_in')!r}"
            ) from e
        return token

    # ------------------------------------------------------------------
    # Shipments
    # ------------------------------------------------------------------

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        retrying = Retrying(
            stop=stop_after_attempt(2),
            wait=wait_fixed(self._settings.carrier_retry_wait),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    return self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise CarrierRequestError(f"Carrier request failed: {e}") from e
        raise CarrierRequestError("Carrier request failed")  # pragma: no cover

    def create_shipment(self, order: Order) -> str:
        """
        Create a carrier shipment for `order` and return its tracking number.

        Raises:
            CarrierAuthError: no token could be obtained (no shipment attempted).
            CarrierRequestError: the carrier rejected or never answered the call.
        """

        token = self.get_token()
        payload = build_shipment_payload(
            order,
            self._config,
            pickup_date=business_date(self._clock()),
            merchant_reference_prefix=self._settings.merchant_reference_prefix,
        )
        logger.info("Creating carrier shipment for sale %s", order.sale_id)

        response = self._send(
            "POST",
            self._url("4.1/orders"),
            json=payload,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
        )
        body = _json_body(response)

        if not response.ok:
            raise CarrierRequestError(
                body.get("message") or f"Failed to create carrier order (HTTP {response.status_code})",
                status_code=response.status_code,
            )

        tracking_number = body.get("tracking_number")
        if not tracking_number:
            raise CarrierRequestError("Carrier response did not include a tracking number", response.status_code)

        logger.info("Carrier shipment created for sale %s: %s", order.sale_id, tracking_number)
        return str(tracking_number)

    def cancel_shipment(self, tracking_number: str) -> None:
        """
        Cancel a carrier shipment.

        Raises:
            CarrierAuthError / CarrierRequestError on failure. Callers treat
            cancellation as best effort.
        """

        if not tracking_number:
            raise CarrierRequestError("Tracking number is required")

        token = self.get_token()
        logger.info("Cancelling carrier shipment %s", tracking_number)
        response = self._send(
            "DELETE",
            self._url(f"2.2/orders/{tracking_number}"),
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
        )
        if not response.ok:
            body = _json_body(response)
            raise CarrierRequestError(
                body.get("message") or f"Failed to cancel carrier order (HTTP {response.status_code})",
                status_code=response.status_code,
            )


    # ------------------------------------------------------------------
    # Waybills
    # ------------------------------------------------------------------

    def get_waybill(self, tracking_numbers: Sequence[str]) -> bytes:
        """
        Download the printable waybill PDF covering `tracking_numbers`.

        Waybills need a scope the shipment token may not carry, so a fresh
        token is requested and not cached. The bulk report endpoint is tried
        first, then the v4.1 bulk endpoint, then (for a single parcel) the
        per-order endpoint.

        Raises:
            ValidationError: no tracking numbers given.
            CarrierAuthError: no token could be obtained.
            CarrierRequestError: every waybill endpoint refused.
        """

        tids = [t.strip() for t in tracking_numbers if t and t.strip()]
        if not tids:
            raise ValidationError("At least one tracking number is required")

        token = self._request_token(self._clock())
        joined = ",".join(tids)
        attempts: list[tuple[str, Optional[dict[str, Any]]]] = [
            ("2.0/reports/waybill", {"tids": joined, "h": 0}),
            ("4.1/orders/waybill", {"tids": joined}),
        ]
        if len(tids) == 1:
            attempts.append((f"4.1/orders/{tids[0]}/waybill", None))

        headers = {"Authorization": f"Bearer {token.access_token}", "Accept": "application/pdf"}
        status_code: Optional[int] = None
        refusal = ""
        for path, params in attempts:
            response = self._send("GET", self._url(path), params=params, headers=headers)
            if response.ok:
                logger.info("Waybill fetched for %d parcel(s) from %s", len(tids), path)
                return response.content
            status_code, refusal = response.status_code, response.text[:500]
            logger.info("Waybill endpoint %s refused (HTTP %s)", path, status_code)

        raise CarrierRequestError(
            f"Waybill access denied. The carrier credentials may lack the waybill (AWB) scope: {refusal}",
            status_code=status_code,
        )


__all__ = ["CarrierClient", "build_shipment_payload", "split_address"]
