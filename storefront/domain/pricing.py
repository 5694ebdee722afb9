from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional
from pydantic import BaseModel

from storefront.domain.coupons import validate_coupon
from storefront.domain.models import Coupon, LineItem

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Округление half-up до минимальной единицы валюты"""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class PricingPolicy(BaseModel):
    tax_rate: Decimal = Decimal("0.15")
    free_shipping_threshold: Decimal = Decimal("500")
    flat_shipping_fee: Decimal = Decimal("50")

    @classmethod
    def from_settings(cls, settings) -> "PricingPolicy":
        return cls(
            tax_rate=settings.TAX_RATE,
            free_shipping_threshold=settings.FREE_SHIPPING_THRESHOLD,
            flat_shipping_fee=settings.FLAT_SHIPPING_FEE,
        )


class PriceBreakdown(BaseModel):
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal


def calculate_subtotal(items: Iterable[LineItem]) -> Decimal:
    return to_money(sum((item.line_total for item in items), Decimal("0")))


def calculate_price(
    items: Iterable[LineItem],
    policy: PricingPolicy,
    coupon: Optional[Coupon] = None,
    now: Optional[datetime] = None,
) -> PriceBreakdown:
    subtotal = calculate_subtotal(items)

    discount = Decimal("0")
    if coupon is not None:
        validation = validate_coupon(coupon, subtotal, now or datetime.now(timezone.utc))
        if validation.applicable:
            discount = to_money(validation.discount_amount)
    discount = min(discount, subtotal)

    net = subtotal - discount
    # Налог считается один раз от суммы, а не по позициям
    tax = to_money(net * policy.tax_rate)
    shipping = Decimal("0") if net > policy.free_shipping_threshold else to_money(policy.flat_shipping_fee)
    total = net + tax + shipping

    return PriceBreakdown(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        shipping=shipping,
        total=to_money(total),
    )
