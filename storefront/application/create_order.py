import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from storefront.domain.models import Order, LineItem, Coupon, ShippingAddress, GuestContact, normalize_coupon_code
from storefront.domain.coupons import validate_coupon
from storefront.domain.pricing import PricingPolicy, calculate_price, calculate_subtotal
from storefront.domain.exceptions import (
    EmptyCartError,
    ProductNotFoundError,
    VariantRequiredError,
    InsufficientStockError,
    CouponRejectedError,
    CouponRejection,
)
from storefront.application.interfaces import CatalogStore, CouponStore, CartStore


logger = logging.getLogger(__name__)


class RequestedItem(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(ge=1)
    # Цена из корзины; для гостевых позиций берется из каталога
    unit_price: Optional[Decimal] = None


class CreateOrderDTO(BaseModel):
    owner_id: Optional[str] = None
    guest_contact: Optional[GuestContact] = None
    items: list[RequestedItem] = []
    shipping_address: ShippingAddress
    payment_method: str = Field(min_length=1)
    coupon_code: Optional[str] = None
    idempotency_key: Optional[str] = None

    @model_validator(mode="after")
    def owner_or_guest(self):
        if not self.owner_id and self.guest_contact is None:
            raise ValueError("Для гостевого заказа нужны контактные данные")
        return self


def scoped_idempotency_key(dto: CreateOrderDTO) -> Optional[str]:
    """Ключ идемпотентности действует только в пределах покупателя"""
    if not dto.idempotency_key:
        return None
    if dto.owner_id:
        return f"user:{dto.owner_id}:{dto.idempotency_key}"
    return f"guest:{dto.guest_contact.email.lower()}:{dto.idempotency_key}"


class CreateOrderUseCase:
    def __init__(
        self,
        unit_of_work,
        catalog: CatalogStore,
        coupons: CouponStore,
        cart: CartStore,
        policy: PricingPolicy,
        low_stock_threshold: int = 5
    ):
        self._uow = unit_of_work
        self._catalog = catalog
        self._coupons = coupons
        self._cart = cart
        self._policy = policy
        self._low_stock_threshold = low_stock_threshold

    async def __call__(self, dto: CreateOrderDTO) -> Order:
        who = dto.owner_id or f"guest {dto.guest_contact.email}"
        logger.info(f"Создание заказа для {who}")

        # 1. Проверка идемпотентности
        idempotency_key = scoped_idempotency_key(dto)
        if idempotency_key:
            async with self._uow() as uow:
                existing = await uow.orders.get_by_idempotency_key(idempotency_key)
            if existing:
                logger.info(f"Заказ уже существует: {existing.id}")
                return existing

        # 2. Позиции: из корзины или из запроса гостя
        requested = await self._cart_items(dto.owner_id) if dto.owner_id else list(dto.items)
        if not requested:
            raise EmptyCartError("Корзина пуста")

        now = datetime.now(timezone.utc)
        reserved: list[LineItem] = []
        coupon: Optional[Coupon] = None
        try:
            # 3. Резервирование: проверка и списание остатка по каждой позиции
            for item in requested:
                reserved.append(await self._reserve(item, now))

            # 4. Купон перепроверяется на сервере, цена считается заново
            coupon = await self._resolve_coupon(dto.coupon_code, calculate_subtotal(reserved), now)
            breakdown = calculate_price(reserved, self._policy, coupon, now)

            if coupon and not await self._coupons.increment_usage(coupon.id):
                logger.warning(f"Лимит купона {coupon.code} исчерпан при списании")
                raise CouponRejectedError(coupon.code, CouponRejection.USAGE_EXCEEDED)
        except Exception:
            await self._release(reserved)
            raise

        order = Order(
            id=str(uuid.uuid4()),
            owner_id=dto.owner_id,
            guest_contact=None if dto.owner_id else dto.guest_contact,
            items=reserved,
            shipping_address=dto.shipping_address,
            payment_method=dto.payment_method,
            coupon_code=coupon.code if coupon else None,
            subtotal=breakdown.subtotal,
            tax_amount=breakdown.tax,
            shipping_amount=breakdown.shipping,
            discount_amount=breakdown.discount,
            total_amount=breakdown.total,
            is_paid=False,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now
        )

        # 5. Сохранение заказа вместе с событием в outbox
        try:
            async with self._uow() as uow:
                await uow.orders.create(order)
                await uow.outbox.create(
                    event_type="order.created",
                    event_data={
                        "order_id": order.id,
                        "owner_id": order.owner_id,
                        "total_amount": str(order.total_amount),
                        "items": [item.model_dump(mode="json") for item in order.items],
                    },
                    order_id=order.id
                )
                await uow.commit()
        except Exception as e:
            logger.error(f"Ошибка сохранения заказа {order.id}: {e}")
            await self._release(reserved)
            if coupon:
                await self._coupons.release_usage(coupon.id)
            raise
        logger.info(f"Заказ создан: {order.id}, сумма {order.total_amount}")

        # 6. Очистка корзины (только для авторизованных)
        if dto.owner_id:
            try:
                await self._cart.clear(dto.owner_id)
            except Exception as e:
                logger.warning(f"Не удалось очистить корзину {dto.owner_id}: {e}")

        return order

    async def _cart_items(self, owner_id: str) -> list[RequestedItem]:
        return [
            RequestedItem(
                product_id=item.product_id,
                variant_id=item.variant_id,
                quantity=item.quantity,
                unit_price=item.unit_price
            )
            for item in await self._cart.get(owner_id)
        ]

    async def _reserve(self, item: RequestedItem, now: datetime) -> LineItem:
        product = await self._catalog.get_product(item.product_id)
        if not product:
            raise ProductNotFoundError(item.product_id)

        if item.variant_id:
            variant = product.find_variant(item.variant_id)
            if not variant:
                raise ProductNotFoundError(item.product_id, item.variant_id)
            available = variant.stock
            catalog_price = product.variant_price(variant, now)
        else:
            if product.variants:
                raise VariantRequiredError(product.id)
            available = product.effective_stock
            catalog_price = product.current_price(now)

        if available < item.quantity:
            raise InsufficientStockError(product.id, available, item.quantity)

        remaining = await self._catalog.decrement_stock(product.id, item.quantity, item.variant_id)
        if remaining is None:
            # Остаток успел уйти в параллельном заказе
            raise InsufficientStockError(product.id, available, item.quantity)

        if remaining <= self._low_stock_threshold:
            logger.warning(f"[LOW-STOCK] {product.name} ({product.id}) остаток: {remaining}")

        return LineItem(
            product_id=product.id,
            variant_id=item.variant_id,
            quantity=item.quantity,
            unit_price=item.unit_price if item.unit_price is not None else catalog_price
        )

    async def _resolve_coupon(self, code: Optional[str], subtotal: Decimal, now: datetime) -> Optional[Coupon]:
        if not code or not code.strip():
            return None
        code = normalize_coupon_code(code)
        coupon = await self._coupons.get_by_code(code)
        validation = validate_coupon(coupon, subtotal, now)
        if not validation.applicable:
            logger.warning(f"Купон {code} отклонен: {validation.reason.value}")
            raise CouponRejectedError(code, validation.reason)
        return coupon

    async def _release(self, reserved: list[LineItem]) -> None:
        """Компенсация: вернуть остаток по уже списанным позициям"""
        for line in reserved:
            try:
                await self._catalog.increment_stock(line.product_id, line.quantity, line.variant_id)
                logger.info(f"Остаток товара {line.product_id} возвращен: +{line.quantity}")
            except Exception as e:
                logger.error(f"Не удалось вернуть остаток товара {line.product_id}: {e}")
