import re
from datetime import date, datetime
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

from models.enums import (
    CardBrand,
    OrderSource,
    OrderStatus,
    PaymentGateway,
    PaymentMethod,
    ShippingCarrier,
)

_PHONE_RE = re.compile(r"^\+?[1-9]\d{0,15}$")
_PHONE_SEPARATORS = re.compile(r"[\s\-()]")


class AddressIn(BaseModel):
    # Every field is optional here; completeness is checked by checkout
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)
    street: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    zip_code: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def strip_strings(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("phone")
    @classmethod
    def phone_format(cls, v):
        if v is not None and not _PHONE_RE.match(_PHONE_SEPARATORS.sub("", v)):
            raise ValueError("Please enter a valid phone number")
        return v


class PaymentDetailsIn(BaseModel):
    card_last4: Optional[str] = Field(default=None, pattern=r"^\d{4}$")
    card_brand: Optional[CardBrand] = None
    transaction_id: Optional[str] = Field(default=None, max_length=200)
    payment_gateway: PaymentGateway = PaymentGateway.STRIPE


class CheckoutRequest(BaseModel):
    shipping_address: Optional[AddressIn] = None
    billing_address: Optional[AddressIn] = None
    same_as_shipping: bool = True
    payment_method: Optional[PaymentMethod] = None
    payment_details: PaymentDetailsIn = Field(default_factory=PaymentDetailsIn)
    notes: Optional[str] = Field(default=None, max_length=1000)
    order_source: OrderSource = OrderSource.WEB


class StatusUpdateRequest(BaseModel):
    status: OrderStatus
    note: Optional[str] = Field(default=None, max_length=500)
    tracking_number: Optional[str] = Field(default=None, max_length=100)
    shipping_carrier: Optional[ShippingCarrier] = None
    estimated_delivery_date: Optional[datetime] = None

    @field_validator("estimated_delivery_date")
    @classmethod
    def in_the_future(cls, v):
        if v is not None and v.replace(tzinfo=None) <= datetime.utcnow():
            raise ValueError("Estimated delivery date must be in the future")
        return v


class TrackingRequest(BaseModel):
    tracking_number: str = Field(min_length=1, max_length=100)
    shipping_carrier: Optional[ShippingCarrier] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class RefundRequest(BaseModel):
    amount: float
    reason: str = Field(min_length=1, max_length=500)


class OrderListQuery(BaseModel):
    status: Optional[str] = None
    payment_status: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    page: int = 1
    limit: int = 10
    sort: str = "-created_at"


class AddressOut(BaseModel):
    first_name: str
    last_name: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str
    phone: str


class PaymentDetailsOut(BaseModel):
    card_last4: Optional[str] = None
    card_brand: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_gateway: Optional[str] = None


class PartyOut(BaseModel):
    id: int
    name: str
    email: str
    company: Optional[str] = None


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    supplier_id: int
    supplier_name: Optional[str] = None
    quantity: int
    unit_price: float
    line_total: float


class TimelineEntryOut(BaseModel):
    status: str
    timestamp: datetime
    note: Optional[str] = None
    actor_id: Optional[int] = None


class OrderOut(BaseModel):
    id: int
    order_number: str
    buyer: PartyOut
    items: List[OrderItemOut]
    shipping_address: AddressOut
    billing_address: AddressOut
    payment_method: str
    payment_details: Optional[PaymentDetailsOut] = None
    order_status: str
    payment_status: str
    subtotal: float
    shipping_cost: float
    tax: float
    discount: float
    total_amount: float
    currency: str
    notes: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    actual_delivery_date: Optional[datetime] = None
    tracking_number: Optional[str] = None
    shipping_carrier: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[int] = None
    refund_amount: Optional[float] = None
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    order_source: str
    timeline: List[TimelineEntryOut]
    created_at: datetime
    updated_at: datetime
    # Present only on supplier-scoped views
    supplier_subtotal: Optional[float] = None
    supplier_item_count: Optional[int] = None


class OrderResponse(BaseModel):
    message: Optional[str] = None
    order: OrderOut


class OrderListOut(BaseModel):
    count: int
    total: int
    page: int
    pages: int
    orders: List[OrderOut]
