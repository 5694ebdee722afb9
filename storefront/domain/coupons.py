from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from pydantic import BaseModel

from storefront.domain.exceptions import CouponRejection
from storefront.domain.models import Coupon, CouponKind

WHOLE_UNIT = Decimal("1")
ZERO = Decimal("0")


class CouponValidation(BaseModel):
    applicable: bool
    discount_amount: Decimal = ZERO
    reason: Optional[CouponRejection] = None

    @classmethod
    def rejected(cls, reason: CouponRejection) -> "CouponValidation":
        return cls(applicable=False, discount_amount=ZERO, reason=reason)


def _round_whole(value: Decimal) -> Decimal:
    return value.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """Скидка округляется до целых единиц валюты"""
    if coupon.kind == CouponKind.PERCENT:
        discount = _round_whole(subtotal * coupon.value / 100)
    else:
        discount = min(subtotal, _round_whole(coupon.value))
    return max(ZERO, discount)


def check_eligibility(coupon: Optional[Coupon], subtotal: Decimal, now: datetime) -> Optional[CouponRejection]:
    """Первая причина отказа в фиксированном порядке или None"""
    if coupon is None:
        return CouponRejection.NOT_FOUND
    if not coupon.is_active:
        return CouponRejection.INACTIVE
    if coupon.starts_at and now < coupon.starts_at:
        return CouponRejection.NOT_YET_ACTIVE
    if coupon.ends_at and now > coupon.ends_at:
        return CouponRejection.EXPIRED
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        return CouponRejection.USAGE_EXCEEDED
    if subtotal < coupon.min_subtotal:
        return CouponRejection.BELOW_MINIMUM
    return None


def validate_coupon(coupon: Optional[Coupon], subtotal: Decimal, now: datetime) -> CouponValidation:
    reason = check_eligibility(coupon, subtotal, now)
    if reason is not None:
        return CouponValidation.rejected(reason)

    discount = compute_discount(coupon, subtotal)
    # Нулевая скидка не считается валидным купоном
    if discount <= 0:
        return CouponValidation.rejected(CouponRejection.NOT_APPLICABLE)
    return CouponValidation(applicable=True, discount_amount=discount)
