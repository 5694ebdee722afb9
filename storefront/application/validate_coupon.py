import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from storefront.domain.models import Coupon, normalize_coupon_code
from storefront.domain.coupons import CouponValidation, validate_coupon
from storefront.application.interfaces import CouponStore

logger = logging.getLogger(__name__)


class ValidateCouponUseCase:
    """Публичная проверка купона для суммы корзины (только чтение)"""

    def __init__(self, coupons: CouponStore):
        self._coupons = coupons

    async def __call__(self, code: str, subtotal: Decimal) -> tuple[Optional[Coupon], CouponValidation]:
        code = normalize_coupon_code(code)
        coupon = await self._coupons.get_by_code(code)
        validation = validate_coupon(coupon, subtotal, datetime.now(timezone.utc))
        if not validation.applicable:
            logger.info(f"Купон {code} не применим к сумме {subtotal}: {validation.reason.value}")
        return coupon, validation
