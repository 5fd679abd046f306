"""
Orders API Endpoints.

Manual order submission, edit and cancel.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response

from api.dependencies import (
    CarrierFactory,
    build_order_service,
    get_carrier_factory,
    get_messenger,
    get_settings,
    get_store,
)
from api.models import (
    ErrorResponse,
    NotificationRequest,
    NotificationResponse,
    OrderCreateRequest,
    OrderOutcomeResponse,
    OrderResponse,
    OrderUpdateRequest,
    WaybillRequest,
)
from domain.errors import CarrierError, ConfigurationError, OrderCoreError, OrderNotFoundError, ValidationError
from repositories.marketer_repository import get_marketer
from repositories.store import Store
from services.messaging import WhatsAppClient
from services.order_service import OrderChanges, OrderOutcome, OrderRequest
from services.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter()

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    404: {"model": ErrorResponse, "description": "Unknown order or marketer"},
    500: {"model": ErrorResponse, "description": "Storage or carrier failure"},
}


def _outcome_response(outcome: OrderOutcome, message: str) -> OrderOutcomeResponse:
    if outcome.carrier_error:
        message = f"{message} (carrier: {outcome.carrier_error})"
    return OrderOutcomeResponse(
        success=True,
        message=message,
        order=OrderResponse.from_order(outcome.order),
        tracking_number=outcome.tracking_number,
        carrier_error=outcome.carrier_error,
        whatsapp_sent=outcome.notification_queued,
    )


@router.post(
    "/orders",
    response_model=OrderOutcomeResponse,
    responses=_ERRORS,
    summary="Create Order",
    description="Create an order, book the carrier shipment and notify the customer.",
)
def create_order(
    request: OrderCreateRequest,
    background_tasks: BackgroundTasks,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
    messenger: Optional[WhatsAppClient] = Depends(get_messenger),
    carrier_factory: Optional[CarrierFactory] = Depends(get_carrier_factory),
):
    """
    Create an order from the order form.

    **Process:**
    1. Validates the phone (must start with 60) and required fields
    2. Classifies the customer (NP / EP / EC) from the marketer's leads
    3. Checks the price against the bundle's minimum for platform and category
    4. Issues an order number and, for non-marketplace platforms, a sale ID
    5. Books the carrier shipment; a carrier failure still saves the order
    6. Queues the WhatsApp confirmation and the lead update

    **Errors:**
    - 400: validation failure, unknown product, price below minimum
    - 404: unknown marketer
    - 500: storage failure
    """
    try:
        marketer = get_marketer(store, request.marketer_id)
        if marketer is None:
            raise HTTPException(status_code=404, detail=f"Marketer not found: {request.marketer_id}")

        service = build_order_service(
            store,
            settings,
            background_tasks,
            messenger=messenger,
            carrier_factory=carrier_factory,
        )
        outcome = service.create_order(
            OrderRequest(**request.model_dump(exclude={"marketer_id"})),
            marketer,
        )
        return _outcome_response(outcome, "Order created")

    except HTTPException:
        raise
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OrderCoreError as e:
        logger.error("Failed to create order: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to create order: {str(e)}")


@router.put(
    "/orders/{order_id}",
    response_model=OrderOutcomeResponse,
    responses=_ERRORS,
    summary="Edit Order",
    description="Update an order; the shipment is re-issued when address, price, payment or platform change.",
)
def edit_order(
    order_id: str,
    request: OrderUpdateRequest,
    background_tasks: BackgroundTasks,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
    carrier_factory: Optional[CarrierFactory] = Depends(get_carrier_factory),
):
    """
    Edit an existing order.

    Only the fields present in the body change. Moving to Shopee / Tiktok, or
    changing the address, price or payment method cancels the carrier shipment
    and books a new one with a new sale ID.
    """
    try:
        service = build_order_service(
            store,
            settings,
            background_tasks,
            messenger=None,
            carrier_factory=carrier_factory,
        )
        outcome = service.edit_order(order_id, OrderChanges(**request.model_dump(exclude_unset=True)))
        return _outcome_response(outcome, "Order updated")

    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OrderCoreError as e:
        logger.error("Failed to update order %s: %s", order_id, e)
        raise HTTPException(status_code=500, detail=f"Failed to update order: {str(e)}")


@router.delete(
    "/orders/{order_id}",
    response_model=OrderOutcomeResponse,
    responses=_ERRORS,
    summary="Cancel Order",
    description="Cancel the carrier shipment (best effort) and delete the order.",
)
def cancel_order(
    order_id: str,
    background_tasks: BackgroundTasks,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
    carrier_factory: Optional[CarrierFactory] = Depends(get_carrier_factory),
):
    """
    Cancel an order.

    The carrier shipment is cancelled first; if that fails the order is still
    deleted and `carrier_error` says why.
    """
    try:
        service = build_order_service(
            store,
            settings,
            background_tasks,
            messenger=None,
            carrier_factory=carrier_factory,
        )
        outcome = service.cancel_order(order_id)
        return _outcome_response(outcome, "Order deleted")

    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OrderCoreError as e:
        logger.error("Failed to delete order %s: %s", order_id, e)
        raise HTTPException(status_code=500, detail=f"Failed to delete order: {str(e)}")


@router.post(
    "/orders/waybill",
    summary="Download Waybills",
    description="Download one carrier waybill PDF covering the given parcels.",
    response_class=Response,
    responses={**_ERRORS, 502: {"model": ErrorResponse, "description": "Carrier refused the waybill"}},
)
def download_waybill(
    request: WaybillRequest,
    background_tasks: BackgroundTasks,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
    carrier_factory: Optional[CarrierFactory] = Depends(get_carrier_factory),
):
    """
    Download waybills for printing.

    **Example:**
    ```json
    {"tracking_numbers": ["NVMYDF2510190001", "NVMYDF2510190002"]}
    ```

    **Response:**
    PDF file download with filename `waybill.pdf`

    **Errors:**
    - 400: no tracking numbers, or carrier configuration missing
    - 502: the carrier refused every waybill endpoint (often a missing AWB scope)
    """
    try:
        service = build_order_service(
            store,
            settings,
            background_tasks,
            messenger=None,
            carrier_factory=carrier_factory,
        )
        pdf = service.waybill(request.tracking_numbers)
        return Response(
            content=pdf,
            media_type="application/pdf",
            headers={"Content-Disposition": "attachment; filename=waybill.pdf"},
        )

    except (ValidationError, ConfigurationError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CarrierError as e:
        logger.error("Waybill download failed: %s", e)
        raise HTTPException(status_code=502, detail=f"Failed to fetch waybill: {str(e)}")
    except OrderCoreError as e:
        logger.error("Waybill download failed: %s", e)
        raise HTTPException(status_code=500, detail=f"Failed to fetch waybill: {str(e)}")


@router.post(
    "/orders/notification",
    response_model=NotificationResponse,
    summary="Resend Order Confirmation",
    description="Send the WhatsApp order confirmation again for a shipped order.",
    responses=_ERRORS,
)
def resend_notification(
    request: NotificationRequest,
    background_tasks: BackgroundTasks,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
    messenger: Optional[WhatsAppClient] = Depends(get_messenger),
    carrier_factory: Optional[CarrierFactory] = Depends(get_carrier_factory),
):
    """
    Re-send the customer confirmation for the order with `tracking_number`.

    The message is sent through the order's marketer's connected device.
    If the marketer has no connected device, `success` is false and nothing
    is sent.
    """
    try:
        service = build_order_service(
            store,
            settings,
            background_tasks,
            messenger=messenger,
            carrier_factory=carrier_factory,
        )
        outcome = service.resend_confirmation(request.tracking_number)
        return NotificationResponse(
            success=outcome.device_connected,
            message=outcome.message,
            whatsapp_sent=outcome.sent,
        )

    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OrderCoreError as e:
        logger.error("Failed to resend confirmation for %s: %s", request.tracking_number, e)
        raise HTTPException(status_code=500, detail=f"Failed to send notification: {str(e)}")
