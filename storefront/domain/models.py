from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class LineItem(BaseModel):
    """Value Object — позиция корзины или заказа (снимок цены)"""
    model_config = ConfigDict(frozen=True)

    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(ge=0)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class ShippingAddress(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip_code: str = Field(min_length=1)
    country: str = Field(min_length=1)


class GuestContact(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: str = ""


class PaymentResult(BaseModel):
    transaction_id: str
    status: str
    email_address: Optional[str] = None
    update_time: datetime


class Order(BaseModel):
    """Domain Entity — заказ (неизменяемый снимок корзины на момент оформления)"""
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
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    payment_result: Optional[PaymentResult] = None
    idempotency_key: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    def can_be_paid(self) -> bool:
        """Бизнес-правило: оплатить можно только неоплаченный заказ"""
        return not self.is_paid

    def is_owned_by(self, owner_id: Optional[str]) -> bool:
        return self.owner_id is None or self.owner_id == owner_id


class CouponKind(str, Enum):
    PERCENT = "percent"
    FIXED = "fixed"


class Coupon(BaseModel):
    id: str
    code: str
    kind: CouponKind
    value: Decimal = Field(ge=0)
    is_active: bool = True
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    min_subtotal: Decimal = Decimal("0")
    usage_limit: Optional[int] = None
    used_count: int = 0

    @field_validator("code")
    @classmethod
    def canonical_code(cls, value: str) -> str:
        return normalize_coupon_code(value)


def normalize_coupon_code(code: str) -> str:
    return code.strip().upper()


def _sale_window_open(now: datetime, starts_at: Optional[datetime], ends_at: Optional[datetime]) -> bool:
    if starts_at and now < starts_at:
        return False
    if ends_at and now > ends_at:
        return False
    return True


class ProductVariant(BaseModel):
    id: str
    product_id: str
    name: str = ""
    price: Optional[Decimal] = None
    original_price: Optional[Decimal] = None
    sale_price: Optional[Decimal] = None
    is_on_sale: bool = False
    stock: int = 0


class Product(BaseModel):
    """Value Object — товар из каталога"""
    id: str
    name: str
    price: Decimal
    original_price: Optional[Decimal] = None
    sale_price: Optional[Decimal] = None
    is_on_sale: bool = False
    sale_starts_at: Optional[datetime] = None
    sale_ends_at: Optional[datetime] = None
    stock: int = 0
    variants: list[ProductVariant] = []

    @property
    def effective_stock(self) -> int:
        if self.variants:
            return sum(v.stock for v in self.variants)
        return self.stock

    def find_variant(self, variant_id: str) -> Optional[ProductVariant]:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None

    def current_price(self, now: datetime) -> Decimal:
        """Цена с учетом распродажи. Некорректная цена распродажи игнорируется."""
        base = self.original_price if self.original_price is not None else self.price
        if (
            self.is_on_sale
            and self.sale_price is not None
            and self.sale_price < base
            and _sale_window_open(now, self.sale_starts_at, self.sale_ends_at)
        ):
            return self.sale_price
        return base

    def variant_price(self, variant: ProductVariant, now: datetime) -> Decimal:
        fallback = self.current_price(now)
        if variant.is_on_sale:
            candidates = (variant.sale_price, variant.price, variant.original_price)
        else:
            candidates = (variant.original_price, variant.price)
        for candidate in candidates:
            if candidate is not None:
                return candidate
        return fallback
