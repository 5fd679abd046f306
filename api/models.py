"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from domain.customer import CustomerCategory
from domain.order import ClosingChannel, Order, OrderStatus, PaymentMethod, Platform


# ============================================================================
# Order Models
# ============================================================================

class OrderCreateRequest(BaseModel):
    """Manual order submitted from the order form."""
    marketer_id: str = Field(..., description="User id of the marketer placing the order")
    customer_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1, description="International format, e.g. 60123456789")
    address: str = Field(..., min_length=1)
    postcode: str = Field(..., min_length=1)
    city: str = ""
    state: str = ""
    product: str = Field(..., min_length=1, description="Bundle name")
    quantity: int = Field(1, ge=1)
    price: Decimal = Field(Decimal("0"), ge=0, description="0 charges the bundle's minimum price")
    platform: Platform = Platform.FACEBOOK
    payment_method: PaymentMethod = PaymentMethod.PREPAID
    closing_channel: ClosingChannel = ClosingChannel.MANUAL
    tracking_number: str = Field("", description="Marketplace tracking number (Shopee / Tiktok)")
    customer_category: Optional[CustomerCategory] = Field(
        None, description="Send EC to skip classification for a known customer"
    )
    notes: str = ""

    class Config:
        json_schema_extra = {
            "example": {
                "marketer_id": "123e4567-e89b-12d3-a456-426614174000",
                "customer_name": "Ali",
                "phone": "60123456789",
                "address": "123 Jalan Test",
                "postcode": "50000",
                "city": "Kuala Lumpur",
                "state": "WP Kuala Lumpur",
                "product": "Bundle A",
                "quantity": 1,
                "price": "120.00",
                "platform": "Facebook",
                "payment_method": "COD",
                "closing_channel": "Manual"
            }
        }


class OrderUpdateRequest(BaseModel):
    """Partial order update; omitted fields are left unchanged."""
    customer_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    postcode: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    product: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=1)
    price: Optional[Decimal] = Field(None, ge=0)
    platform: Optional[Platform] = None
    payment_method: Optional[PaymentMethod] = None
    closing_channel: Optional[ClosingChannel] = None
    customer_category: Optional[CustomerCategory] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "address": "45 Jalan Baru",
                "payment_method": "CASH"
            }
        }


class OrderResponse(BaseModel):
    """Saved order."""
    order_id: Optional[str] = None
    order_number: str
    sale_id: str
    customer_name: str
    phone: str
    product: str
    quantity: int
    unit_price: Decimal
    platform: Platform
    payment_method: PaymentMethod
    customer_category: CustomerCategory
    courier: str
    tracking_number: str
    status: OrderStatus
    order_date: date

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            order_id=order.order_id,
            order_number=order.order_number,
            sale_id=order.sale_id,
            customer_name=order.customer_name,
            phone=order.phone,
            product=order.product,
            quantity=order.quantity,
            unit_price=order.unit_price,
            platform=order.platform,
            payment_method=order.payment_method,
            customer_category=order.customer_category,
            courier=order.courier,
            tracking_number=order.tracking_number,
            status=order.status,
            order_date=order.order_date,
        )


class OrderOutcomeResponse(BaseModel):
    """Result of a create / edit / cancel call."""
    success: bool
    message: str
    order: OrderResponse
    tracking_number: str = ""
    carrier_error: Optional[str] = None
    whatsapp_sent: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Order created",
                "order": {
                    "order_id": "42",
                    "order_number": "ORD251019143000123456",
                    "sale_id": "DF2510190001",
                    "customer_name": "Ali",
                    "phone": "60123456789",
                    "product": "Bundle A",
                    "quantity": 1,
                    "unit_price": "120.00",
                    "platform": "Facebook",
                    "payment_method": "COD",
                    "customer_category": "NP",
                    "courier": "Ninjavan COD",
                    "tracking_number": "NVMY123456",
                    "status": "Pending",
                    "order_date": "2025-10-19"
                },
                "tracking_number": "NVMY123456",
                "carrier_error": None,
                "whatsapp_sent": True
            }
        }


# ============================================================================
# Waybill and Notification Models
# ============================================================================

class WaybillRequest(BaseModel):
    """Parcels to print on one waybill PDF."""
    tracking_numbers: list[str] = Field(..., min_length=1)

    class Config:
        json_schema_extra = {
            "example": {
                "tracking_numbers": ["NVMYDF2510190001", "NVMYDF2510190002"]
            }
        }


class NotificationRequest(BaseModel):
    """Re-send the customer confirmation for a shipped order."""
    tracking_number: str = Field(..., min_length=1)

    class Config:
        json_schema_extra = {
            "example": {
                "tracking_number": "NVMYDF2510190001"
            }
        }


class NotificationResponse(BaseModel):
    """Result of a confirmation re-send."""
    success: bool
    message: str
    whatsapp_sent: bool

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Notification sent successfully",
                "whatsapp_sent": True
            }
        }


# ============================================================================
# Webhook Models
# ============================================================================

class WebhookEnvelope(BaseModel):
    """Body of every webhook response."""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    order: Optional[dict[str, Any]] = None
    tracking_number: Optional[str] = None
    whatsapp_sent: Optional[bool] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Order created",
                "order": {"order_number": "ORD251019143000123456", "sale_id": "DF2510190001"},
                "tracking_number": "NVMY123456",
                "whatsapp_sent": True
            }
        }

    def body(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str

    class Config:
        json_schema_extra = {
            "example": {
                "detail": "Order not found: 42"
            }
        }
