from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from storefront.domain.models import LineItem, ShippingAddress, GuestContact, PaymentResult, Coupon, CouponKind
from storefront.domain.exceptions import CouponRejection


class CartItemRequest(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(default=1, ge=1)


class CartResponse(BaseModel):
    items: list[LineItem]
    total: Decimal

    @classmethod
    def from_items(cls, items: list[LineItem]):
        return cls(items=items, total=sum((i.line_total for i in items), Decimal("0")))


class CreateOrderRequest(BaseModel):
    shipping_address: ShippingAddress
    payment_method: str = Field(min_length=1)
    coupon_code: Optional[str] = None


class GuestOrderItem(BaseModel):
    """Цена от клиента не принимается"""
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(ge=1)


class CreateGuestOrderRequest(CreateOrderRequest):
    guest_contact: GuestContact
    items: list[GuestOrderItem] = []


class OrderResponse(BaseModel):
    id: str
    owner_id: Optional[str] = None
    guest_contact: Optional[GuestContact] = None
    items: list[LineItem]
    shipping_address: ShippingAddress
    payment_method: str
    coupon_code: Optional[str] = None
    subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    is_paid: bool
    paid_at: Optional[datetime] = None
    payment_result: Optional[PaymentResult] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, order):
        return cls(
            id=order.id,
            owner_id=order.owner_id,
            guest_contact=order.guest_contact,
            items=order.items,
            shipping_address=order.shipping_address,
            payment_method=order.payment_method,
            coupon_code=order.coupon_code,
            subtotal=order.subtotal,
            tax_amount=order.tax_amount,
            shipping_amount=order.shipping_amount,
            discount_amount=order.discount_amount,
            total_amount=order.total_amount,
            is_paid=order.is_paid,
            paid_at=order.paid_at,
            payment_result=order.payment_result,
            created_at=order.created_at
        )


class CouponSummary(BaseModel):
    id: str
    code: str
    kind: CouponKind
    value: Decimal

    @classmethod
    def from_domain(cls, coupon: Coupon):
        return cls(id=coupon.id, code=coupon.code, kind=coupon.kind, value=coupon.value)


class CouponValidationResponse(BaseModel):
    valid: bool
    discount: Decimal = Decimal("0")
    coupon: Optional[CouponSummary] = None
    reason: Optional[CouponRejection] = None
    message: Optional[str] = None


class PaymentInitiationResponse(BaseModel):
    url: str
    payment_data: dict[str, str]


class ErrorResponse(BaseModel):
    detail: str | dict
