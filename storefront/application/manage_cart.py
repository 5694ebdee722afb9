import logging
from datetime import datetime, timezone
from typing import Optional

from storefront.domain.models import LineItem
from storefront.domain.exceptions import ProductNotFoundError, VariantRequiredError, InsufficientStockError
from storefront.application.interfaces import CatalogStore, CartStore

logger = logging.getLogger(__name__)


class AddCartItemUseCase:
    def __init__(self, catalog: CatalogStore, cart: CartStore):
        self._catalog = catalog
        self._cart = cart

    async def __call__(
        self, owner_id: str, product_id: str, quantity: int, variant_id: Optional[str] = None
    ) -> list[LineItem]:
        product = await self._catalog.get_product(product_id)
        if not product:
            raise ProductNotFoundError(product_id)

        now = datetime.now(timezone.utc)
        if variant_id:
            variant = product.find_variant(variant_id)
            if not variant:
                raise ProductNotFoundError(product_id, variant_id)
            available = variant.stock
            unit_price = product.variant_price(variant, now)
        else:
            if product.variants:
                raise VariantRequiredError(product_id)
            available = product.effective_stock
            unit_price = product.current_price(now)

        items = await self._cart.get(owner_id)
        merged = []
        in_cart = 0
        for item in items:
            if item.product_id == product_id and item.variant_id == variant_id:
                in_cart = item.quantity
            else:
                merged.append(item)

        # Проверка без резервирования: списание будет при оформлении заказа
        if available < in_cart + quantity:
            raise InsufficientStockError(product_id, available, in_cart + quantity)

        merged.append(LineItem(
            product_id=product_id,
            variant_id=variant_id,
            quantity=in_cart + quantity,
            unit_price=unit_price
        ))
        await self._cart.set(owner_id, merged)
        logger.info(f"В корзину {owner_id} добавлен товар {product_id} x{quantity}")
        return merged


class GetCartUseCase:
    def __init__(self, cart: CartStore):
        self._cart = cart

    async def __call__(self, owner_id: str) -> list[LineItem]:
        return await self._cart.get(owner_id)


class ClearCartUseCase:
    def __init__(self, cart: CartStore):
        self._cart = cart

    async def __call__(self, owner_id: str) -> None:
        await self._cart.clear(owner_id)
