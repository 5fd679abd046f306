"""
Webhook API Endpoints.

Inbound chat webhook (orders and leads sent as `#order` / `#lead` messages)
and the carrier tracking-event webhook.

Webhook responses are always a JSON envelope with `success` and
`message` / `error`; every call is written to `webhook_logs` whatever the
outcome.
"""

import json
import logging
import time
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from api.dependencies import (
    CarrierFactory,
    MessengerFactory,
    SettingsFactory,
    StoreFactory,
    build_order_service,
    get_carrier_factory,
    get_messenger_factory,
    get_settings_factory,
    get_store_factory,
)
from api.models import OrderResponse, WebhookEnvelope
from domain.errors import (
    ConfigurationError,
    OrderCoreError,
    OrderNotFoundError,
    PersistenceError,
    ValidationError,
)
from domain.phone import normalize_phone
from repositories.audit_repository import WebhookAuditEntry, record_webhook_call
from repositories.marketer_repository import find_marketer_by_device
from repositories.store import Store
from services.command_parser import (
    LEAD_FORMAT_HINT,
    ORDER_FORMAT_HINT,
    command_of,
    parse_lead_message,
    parse_order_message,
)
from services.lead_service import capture_lead
from services.messaging import WhatsAppClient
from services.order_service import OrderRequest
from services.settings import Settings
from services.tracking_service import apply_tracking_event

logger = logging.getLogger(__name__)

router = APIRouter()

_REDACTED_HEADERS = {"authorization", "cookie"}


async def _read_payload(request: Request) -> tuple[Any, dict[str, Any]]:
    """Return (raw body for the audit log, payload dict). GET reads the query string."""

    if request.method == "GET":
        params = dict(request.query_params)
        return params, params

    raw = await request.body()
    text = raw.decode("utf-8", errors="replace")
    try:
        data = json.loads(text) if text else {}
    except ValueError:
        return text, {}
    return data, data if isinstance(data, dict) else {}


def _audit(
    store: Store,
    request: Request,
    body: Any,
    parsed: Any,
    status_code: int,
    envelope: dict[str, Any],
    started: float,
) -> None:
    entry = WebhookAuditEntry(
        endpoint=request.url.path,
        method=request.method,
        headers={k: v for k, v in request.headers.items() if k.lower() not in _REDACTED_HEADERS},
        body=body,
        parsed=parsed,
        response=envelope,
        status_code=status_code,
        latency_ms=int((time.perf_counter() - started) * 1000),
        caller_ip=request.client.host if request.client else None,
    )
    try:
        record_webhook_call(store, entry)
    except PersistenceError as e:
        logger.error("Failed to write webhook audit log: %s", e)


def _fail(error: str, message: Optional[str] = None) -> dict[str, Any]:
    return WebhookEnvelope(success=False, error=error, message=message).body()


def _open_store(store_factory: StoreFactory) -> Store:
    try:
        return store_factory()
    except RuntimeError as e:
        raise ConfigurationError(f"Database not configured: {e}") from e


async def _audit_if_possible(store: Optional[Store], *args: Any) -> None:
    if store is None:
        logger.warning("Webhook call not audited: no store available")
        return
    await run_in_threadpool(_audit, store, *args)


def _handle_chat_message(
    payload: dict[str, Any],
    store: Store,
    settings: Settings,
    background_tasks: BackgroundTasks,
    messenger: Optional[WhatsAppClient],
    carrier_factory: Optional[CarrierFactory],
) -> tuple[int, dict[str, Any], Any]:
    """Returns (status code, envelope, parsed command for the audit log)."""

    message = payload.get("message")
    if not message or not isinstance(message, str):
        return 400, _fail("message is required"), None

    marketer = find_marketer_by_device(store, str(payload.get("device_id") or ""))
    if marketer is None:
        return 400, _fail("Unknown device: no marketer is linked to this device_id"), None

    command = command_of(message)

    if command == "lead":
        parsed_lead = parse_lead_message(message)
        if parsed_lead is None:
            return 200, _fail("Incomplete lead message", LEAD_FORMAT_HINT), None
        result = capture_lead(store, parsed_lead, marketer, country_code=settings.country_code)
        if not result.success:
            return 200, _fail(result.message), parsed_lead.name
        return 200, WebhookEnvelope(success=True, message=result.message).body(), parsed_lead.name

    if command != "order":
        return 200, _fail("Not an order message", ORDER_FORMAT_HINT), None

    parsed = parse_order_message(message, settings.default_platform)
    if parsed is None:
        return 200, _fail("Incomplete order message", ORDER_FORMAT_HINT), None

    parsed_log = {
        "name": parsed.name,
        "phone": parsed.phone,
        "product": parsed.product,
        "platform": parsed.platform.value,
        "payment": parsed.payment_method.value,
    }

    service = build_order_service(
        store,
        settings,
        background_tasks,
        messenger=messenger,
        carrier_factory=carrier_factory,
    )
    phone = normalize_phone(parsed.phone, settings.country_code)
    outcome = service.create_order(OrderRequest.from_parsed(parsed, phone=phone), marketer)

    envelope = WebhookEnvelope(
        success=True,
        message="Order created" if outcome.carrier_error is None else "Order created without tracking number",
        order=OrderResponse.from_order(outcome.order).model_dump(mode="json"),
        tracking_number=outcome.tracking_number,
        whatsapp_sent=outcome.notification_queued,
    )
    return 200, envelope.body(), parsed_log


@router.api_route(
    "/webhook/order",
    methods=["GET", "POST"],
    response_model=WebhookEnvelope,
    summary="Chat Order Webhook",
    description="Create an order (or capture a lead) from a chat message.",
)
async def order_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    store_factory: StoreFactory = Depends(get_store_factory),
    settings_factory: SettingsFactory = Depends(get_settings_factory),
    messenger_factory: MessengerFactory = Depends(get_messenger_factory),
    carrier_factory: Optional[CarrierFactory] = Depends(get_carrier_factory),
):
    """
    Process a chat message sent to a marketer's device.

    **Payload** (JSON body, or query string for GET):
    ```json
    {"device_id": "dev-1", "sender": "60123456789", "message": "#order\\nnama: Ali\\n..."}
    ```

    **Status codes:**
    - 200: handled; `success` says whether an order (or lead) was saved.
      Incomplete or non-order messages get a format hint.
    - 400: `message` missing or the device is not linked to a marketer
    - 500: storage, configuration or internal failure
    """
    started = time.perf_counter()
    body, payload = await _read_payload(request)
    parsed: Any = None
    store: Optional[Store] = None

    try:
        store = _open_store(store_factory)
        settings = settings_factory()
        status_code, envelope, parsed = await run_in_threadpool(
            _handle_chat_message,
            payload,
            store,
            settings,
            background_tasks,
            messenger_factory(settings),
            carrier_factory,
        )
    except ValidationError as e:
        status_code, envelope = 200, _fail(str(e))
    except ConfigurationError as e:
        logger.error("Order webhook is not configured: %s", e)
        status_code, envelope = 500, _fail(str(e))
    except OrderCoreError as e:
        logger.error("Order webhook failed: %s", e)
        status_code, envelope = 500, _fail(f"Failed to save order: {e}")
    except Exception as e:
        logger.exception("Unexpected error in order webhook")
        status_code, envelope = 500, _fail(f"Internal server error: {e}")

    await _audit_if_possible(store, request, body, parsed, status_code, envelope, started)
    return JSONResponse(status_code=status_code, content=envelope)


@router.post(
    "/webhook/carrier",
    summary="Carrier Tracking Webhook",
    description="Record a parcel tracking event from the carrier.",
)
async def carrier_webhook(request: Request, store_factory: StoreFactory = Depends(get_store_factory)):
    """
    Record a carrier tracking event.

    **Payload:**
    ```json
    {"tracking_id": "NVMY123456", "event": "Delivered"}
    ```

    Delivered events mark the order Delivered and stamp the payment date;
    "Returned To Sender" marks it Returned. Other events are stored as the
    latest event only.
    """
    started = time.perf_counter()
    body, payload = await _read_payload(request)
    store: Optional[Store] = None

    try:
        store = _open_store(store_factory)
        update = await run_in_threadpool(
            apply_tracking_event,
            store,
            str(payload.get("tracking_id") or ""),
            str(payload.get("event") or ""),
        )
        status_code = 200
        envelope = {
            "success": True,
            "message": "Order updated successfully",
            "order_id": update.order_id,
            "tracking_id": update.tracking_number,
            "event": update.event,
            "status": update.status.value if update.status else None,
        }
    except ValidationError as e:
        status_code, envelope = 400, _fail(str(e))
    except OrderNotFoundError as e:
        status_code, envelope = 404, _fail(str(e))
    except ConfigurationError as e:
        logger.error("Carrier webhook is not configured: %s", e)
        status_code, envelope = 500, _fail(str(e))
    except OrderCoreError as e:
        logger.error("Carrier webhook failed: %s", e)
        status_code, envelope = 500, _fail(f"Failed to update order: {e}")
    except Exception as e:
        logger.exception("Unexpected error in carrier webhook")
        status_code, envelope = 500, _fail(f"Internal server error: {e}")

    await _audit_if_possible(store, request, body, payload, status_code, envelope, started)
    return JSONResponse(status_code=status_code, content=envelope)
