"""
Order orchestrator.

This service coordinates one order through its lifecycle:

    create: validate → classify → price check → identifiers → carrier → persist
            → (best effort) customer notification + lead completion
    edit:   re-validate → cancel/re-issue the shipment when needed → persist
    cancel: cancel the shipment (best effort) → delete

It also prints waybills for shipped orders and re-sends the customer
confirmation for an order found by tracking number.

Failure policy:
- ValidationError stops the workflow before anything is written.
- Carrier failures (auth, request, missing carrier config) are logged and the
  order is still saved, with an empty tracking number.
- PersistenceError on the order write is fatal and propagates.
- Notification and lead bookkeeping never affect the outcome; they go through
  the side-effect dispatcher.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional, Sequence

from domain.bundle import BundleCatalog
from domain.customer import CustomerCategory, category_after_purchase
from domain.errors import (
    CarrierError,
    ConfigurationError,
    NotificationError,
    OrderNotFoundError,
    ValidationError,
)
from domain.lead import Lead
from domain.marketer import Marketer
from domain.order import ClosingChannel, Order, OrderStatus, PaymentMethod, Platform, courier_for
from domain.phone import has_country_prefix, to_local_phone
from domain.time import business_date, utc_now
from repositories.carrier_repository import get_carrier_config
from repositories.lead_repository import find_latest_lead, insert_lead, mark_lead_closed
from repositories.marketer_repository import connected_instance
from repositories.order_repository import (
    delete_order,
    find_order_by_tracking,
    get_order,
    insert_order,
    save_order,
)
from repositories.store import Store
from services.carrier_client import CarrierClient
from services.classification_service import Classification, check_price, classify, require_bundle
from services.command_parser import ParsedOrder
from services.identifiers import new_order_number, new_sale_id
from services.messaging import WhatsAppClient, order_confirmation_message
from services.settings import Settings
from services.side_effects import InlineDispatcher, SideEffectDispatcher

logger = logging.getLogger(__name__)

# Failures that leave an order without a shipment but never block it.
_CARRIER_FAILURES = (CarrierError, ConfigurationError)

_REQUIRED_FIELDS = ("customer_name", "phone", "address", "postcode", "product")

NO_CONNECTED_DEVICE_MESSAGE = "Marketer does not have a connected WhatsApp device"


@dataclass(frozen=True, slots=True)
class OrderRequest:
    """A new order as submitted by a marketer (form or chat command)."""

    customer_name: str
    phone: str
    address: str
    postcode: str
    product: str
    city: str = ""
    state: str = ""
    quantity: int = 1
    # 0 means "not given": the tier minimum is charged.
    price: Decimal = Decimal("0")
    platform: Platform = Platform.FACEBOOK
    payment_method: PaymentMethod = PaymentMethod.PREPAID
    closing_channel: ClosingChannel = ClosingChannel.MANUAL
    # Supplied by the marketplace for Shopee / Tiktok orders.
    tracking_number: str = ""
    # Only EXISTING is honoured: it skips classification.
    customer_category: Optional[CustomerCategory] = None
    notes: str = ""

    @classmethod
    def from_parsed(cls, parsed: ParsedOrder, phone: Optional[str] = None) -> "OrderRequest":
        return cls(
            customer_name=parsed.name,
            phone=phone if phone is not None else parsed.phone,
            address=parsed.address,
            postcode=parsed.postcode,
            product=parsed.product,
            city=parsed.city,
            state=parsed.state,
            quantity=parsed.quantity,
            price=parsed.price,
            platform=parsed.platform,
            payment_method=parsed.payment_method,
            closing_channel=parsed.closing_channel,
        )


@dataclass(frozen=True, slots=True)
class OrderChanges:
    """Partial update for the edit flow; None means unchanged."""

    customer_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    postcode: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    product: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[Decimal] = None
    platform: Optional[Platform] = None
    payment_method: Optional[PaymentMethod] = None
    closing_channel: Optional[ClosingChannel] = None
    customer_category: Optional[CustomerCategory] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True, slots=True)
class OrderOutcome:
    order: Order
    tracking_number: str
    # Set when the carrier step failed and the order was saved without a shipment.
    carrier_error: Optional[str] = None
    notification_queued: bool = False


@dataclass(frozen=True, slots=True)
class NotificationOutcome:
    order: Order
    # False when the marketer has no connected device; nothing was attempted.
    device_connected: bool
    sent: bool
    message: str


def _default_carrier_factory(store: Store, settings: Settings) -> Callable[[], CarrierClient]:
    def factory() -> CarrierClient:
        return CarrierClient(store, get_carrier_config(store), settings)

    return factory


class OrderService:
    """
    Order orchestrator bound to one request's dependencies.

    Args:
        store: persistence
        catalog: active bundles (read-only)
        settings: runtime settings
        carrier_factory: builds the carrier client on first use; the default
            reads `ninjavan_config` from the store
        messenger: messaging client for confirmations; None disables them
        dispatcher: where best-effort work goes (inline when omitted)
        clock: returns the current UTC time
    """

    def __init__(
        self,
        store: Store,
        catalog: BundleCatalog,
        settings: Settings,
        *,
        carrier_factory: Optional[Callable[[], CarrierClient]] = None,
        messenger: Optional[WhatsAppClient] = None,
        dispatcher: Optional[SideEffectDispatcher] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._settings = settings
        self._carrier_factory = carrier_factory or _default_carrier_factory(store, settings)
        self._carrier: Optional[CarrierClient] = None
        self._messenger = messenger
        self._dispatcher = dispatcher or InlineDispatcher(store)
        self._clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _carrier_client(self) -> CarrierClient:
        if self._carrier is None:
            self._carrier = self._carrier_factory()
        return self._carrier

    def _validate(self, fields: dict[str, object], quantity: int) -> None:
        missing = [name for name in _REQUIRED_FIELDS if not str(fields.get(name) or "").strip()]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        phone = str(fields["phone"])
        if not has_country_prefix(phone, self._settings.country_code):
            raise ValidationError(
                f"Phone must start with {self._settings.country_code} and have at least 10 digits: {phone}"
            )

    def _ship(self, order: Order) -> tuple[str, Optional[str]]:
        """Create the carrier shipment. Returns (tracking number, error message)."""

        try:
            return self._carrier_client().create_shipment(order), None
        except _CARRIER_FAILURES as e:
            logger.error("Carrier shipment failed for sale %s, saving order without tracking: %s", order.sale_id, e)
            return "", str(e)

    def _new_sale_id(self, now: datetime) -> str:
        return new_sale_id(
            self._store,
            today=business_date(now),
            prefix=self._settings.sale_id_prefix,
            max_attempts=self._settings.sale_id_max_attempts,
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_order(self, request: OrderRequest, marketer: Marketer) -> OrderOutcome:
        """
        Create an order for `marketer`.

        Raises:
            ValidationError: bad input, unknown product or price below minimum.
            ClassificationAmbiguous: the lead lookup failed.
            PersistenceError: the sale ID or the order could not be written.
        """

        self._validate(
            {
                "customer_name": request.customer_name,
                "phone": request.phone,
                "address": request.address,
                "postcode": request.postcode,
                "product": request.product,
            },
            request.quantity,
        )

        now = self._clock()
        today = business_date(now)
        lead_phone = to_local_phone(request.phone, self._settings.country_code)
        bundle = require_bundle(self._catalog, request.product)

        if request.customer_category is CustomerCategory.EXISTING:
            classification = Classification(category=CustomerCategory.EXISTING, lead=None)
        else:
            classification = classify(self._store, marketer.staff_id, lead_phone, today)

        price = check_price(bundle, request.platform, classification.category, request.price)
        marketplace = request.platform.is_marketplace

        order = Order(
            order_id=None,
            order_number=new_order_number(now),
            sale_id="" if marketplace else self._new_sale_id(now),
            marketer_id=marketer.user_id,
            marketer_staff_id=marketer.staff_id,
            customer_name=request.customer_name.strip(),
            phone=request.phone.strip(),
            address=request.address.strip(),
            postcode=request.postcode.strip(),
            city=request.city.strip(),
            state=request.state.strip(),
            product=bundle.name,
            quantity=request.quantity,
            unit_price=price,
            payment_method=request.payment_method,
            platform=request.platform,
            closing_channel=request.closing_channel,
            customer_category=classification.category,
            courier=courier_for(request.platform, request.payment_method),
            tracking_number=request.tracking_number.strip() if marketplace else "",
            status=OrderStatus.PENDING,
            order_date=today,
            created_at=now,
            notes=request.notes,
        )

        carrier_error = None
        if order.is_carrier_fulfilled:
            tracking_number, carrier_error = self._ship(order)
            order = replace(order, tracking_number=tracking_number)

        order = insert_order(self._store, order)
        logger.info(
            "Order %s saved (sale %s, %s, tracking %s)",
            order.order_number,
            order.sale_id or "-",
            order.customer_category.value,
            order.tracking_number or "-",
        )

        notification_queued = False
        if self._messenger is not None and marketer.can_notify:
            self._dispatcher.submit(
                "order_notification",
                self._notify,
                marketer.messaging_instance,
                order,
                payload={"order_number": order.order_number, "phone": order.phone},
            )
            notification_queued = True

        self._dispatcher.submit(
            "lead_completion",
            self._complete_lead,
            marketer.staff_id,
            lead_phone,
            order,
            classification,
            payload={"order_number": order.order_number, "phone": lead_phone, "marketer": marketer.staff_id},
        )

        return OrderOutcome(
            order=order,
            tracking_number=order.tracking_number,
            carrier_error=carrier_error,
            notification_queued=notification_queued,
        )

    def _notify(self, device_handle: str, order: Order) -> None:
        if self._messenger is None:
            raise NotificationError("No messaging client is configured")
        if not self._messenger.send(device_handle, order.phone, order_confirmation_message(order)):
            raise NotificationError(f"Confirmation for order {order.order_number} was not sent")

    def _complete_lead(
        self,
        marketer_staff_id: str,
        phone: str,
        order: Order,
        classification: Classification,
    ) -> None:
        """Record the completed order on the buyer's lead, creating the lead if needed."""

        lead: Optional[Lead] = classification.lead
        if lead is None and not classification.auto_create:
            lead = find_latest_lead(self._store, marketer_staff_id, phone)

        if lead is None:
            # Leads created from an order are backdated one day so they never count as NEW.
            lead = insert_lead(
                self._store,
                marketer_staff_id=marketer_staff_id,
                name=order.customer_name,
                phone=phone,
                niche=order.product,
                category=CustomerCategory.RETURNING,
                first_contact_date=order.order_date - timedelta(days=1),
                created_by=order.marketer_id,
            )
            logger.info("Lead auto-created for %s (%s)", phone, marketer_staff_id)

        mark_lead_closed(
            self._store,
            lead,
            category=category_after_purchase(lead.category, classification.category),
            price=order.unit_price,
            closed_at=self._clock(),
        )

    # ------------------------------------------------------------------
    # Edit
    # ------------------------------------------------------------------

    def edit_order(self, order_id: str, changes: OrderChanges) -> OrderOutcome:
        """
        Apply `changes` to an existing order.

        The carrier shipment is cancelled when the order moves to a
        marketplace or its address, price or payment method changes. A new
        sale ID and shipment are then issued if the order is still
        carrier-fulfilled, or when it moves off a marketplace. A failed
        cancellation keeps the old shipment.

        Raises:
            OrderNotFoundError, ValidationError, PersistenceError
        """

        current = get_order(self._store, order_id)

        def pick(value, fallback):
            return fallback if value is None else value

        fields = {
            "customer_name": pick(changes.customer_name, current.customer_name),
            "phone": pick(changes.phone, current.phone),
            "address": pick(changes.address, current.address),
            "postcode": pick(changes.postcode, current.postcode),
            "product": pick(changes.product, current.product),
        }
        quantity = pick(changes.quantity, current.quantity)
        self._validate(fields, quantity)

        platform = pick(changes.platform, current.platform)
        payment_method = pick(changes.payment_method, current.payment_method)
        category = pick(changes.customer_category, current.customer_category)
        bundle = require_bundle(self._catalog, fields["product"])
        price = check_price(bundle, platform, category, pick(changes.price, current.unit_price))

        updated = replace(
            current,
            customer_name=fields["customer_name"].strip(),
            phone=fields["phone"].strip(),
            address=fields["address"].strip(),
            postcode=fields["postcode"].strip(),
            city=pick(changes.city, current.city).strip(),
            state=pick(changes.state, current.state).strip(),
            product=bundle.name,
            quantity=quantity,
            unit_price=price,
            payment_method=payment_method,
            platform=platform,
            closing_channel=pick(changes.closing_channel, current.closing_channel),
            customer_category=category,
            courier=courier_for(platform, payment_method),
            notes=pick(changes.notes, current.notes),
        )

        shipment_changed = (
            platform.is_marketplace
            or (updated.address, updated.postcode, updated.city, updated.state)
            != (current.address, current.postcode, current.city, current.state)
            or updated.unit_price != current.unit_price
            or updated.payment_method != current.payment_method
        )

        carrier_error = None
        cancelled = False
        if current.is_carrier_fulfilled and current.tracking_number and shipment_changed:
            try:
                self._carrier_client().cancel_shipment(current.tracking_number)
                cancelled = True
                logger.info("Cancelled shipment %s for order %s", current.tracking_number, current.order_number)
            except _CARRIER_FAILURES as e:
                carrier_error = str(e)
                logger.warning("Could not cancel shipment %s, keeping it: %s", current.tracking_number, e)

        if platform.is_marketplace:
            kept = "" if cancelled else current.tracking_number
            updated = replace(updated, tracking_number=pick(changes.tracking_number, kept).strip())
        elif cancelled or not current.is_carrier_fulfilled or not current.tracking_number:
            now = self._clock()
            updated = replace(updated, sale_id=self._new_sale_id(now), tracking_number="")
            tracking_number, carrier_error = self._ship(updated)
            updated = replace(updated, tracking_number=tracking_number)

        save_order(self._store, updated)
        logger.info("Order %s updated (tracking %s)", updated.order_number, updated.tracking_number or "-")
        return OrderOutcome(order=updated, tracking_number=updated.tracking_number, carrier_error=carrier_error)

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    def cancel_order(self, order_id: str) -> OrderOutcome:
        """
        Cancel the order's shipment (best effort) and delete the order.

        Raises:
            OrderNotFoundError: no such order.
            PersistenceError: the delete failed.
        """

        order = get_order(self._store, order_id)
        carrier_error = None
        if order.is_carrier_fulfilled and order.tracking_number:
            try:
                self._carrier_client().cancel_shipment(order.tracking_number)
            except _CARRIER_FAILURES as e:
                carrier_error = str(e)
                logger.warning("Could not cancel shipment %s before delete: %s", order.tracking_number, e)

        delete_order(self._store, order_id)
        logger.info("Order %s deleted", order.order_number)
        return OrderOutcome(order=order, tracking_number=order.tracking_number, carrier_error=carrier_error)

    # ------------------------------------------------------------------
    # Waybills and notifications
    # ------------------------------------------------------------------

    def waybill(self, tracking_numbers: Sequence[str]) -> bytes:
        """
        Printable waybill PDF for the given parcels.

        Raises:
            ValidationError, CarrierError, ConfigurationError
        """

        tids = [t.strip() for t in tracking_numbers if t and t.strip()]
        if not tids:
            raise ValidationError("At least one tracking number is required")
        return self._carrier_client().get_waybill(tids)

    def resend_confirmation(self, tracking_number: str) -> NotificationOutcome:
        """
        Send the order confirmation again for the order carrying `tracking_number`.

        The message goes out synchronously through the marketer's connected
        device so the caller learns whether the gateway accepted it.

        Raises:
            ValidationError: tracking number missing, or the order has no marketer.
            OrderNotFoundError: no order carries the tracking number.
            NotificationError: no messaging client is configured.
        """

        tracking_number = (tracking_number or "").strip()
        if not tracking_number:
            raise ValidationError("tracking_number is required")

        order = find_order_by_tracking(self._store, tracking_number)
        if order is None:
            raise OrderNotFoundError(f"Order not found for tracking {tracking_number}")
        if not order.marketer_id:
            raise ValidationError(f"Order {order.order_number} has no marketer")
        if self._messenger is None:
            raise NotificationError("No messaging client is configured")

        instance = connected_instance(self._store, order.marketer_id)
        if instance is None:
            return NotificationOutcome(
                order=order,
                device_connected=False,
                sent=False,
                message=NO_CONNECTED_DEVICE_MESSAGE,
            )

        sent = self._messenger.send(instance, order.phone, order_confirmation_message(order))
        logger.info("Confirmation for order %s re-sent: %s", order.order_number, sent)
        return NotificationOutcome(
            order=order,
            device_connected=True,
            sent=sent,
            message="Notification sent successfully" if sent else "Failed to send notification",
        )


__all__ = [
    "NO_CONNECTED_DEVICE_MESSAGE",
    "OrderRequest",
    "OrderChanges",
    "OrderOutcome",
    "NotificationOutcome",
    "OrderService",
]
