from typing import Optional

from storefront.domain.models import Order
from storefront.domain.exceptions import OrderNotFoundError


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, owner_id: Optional[str] = None) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
        # Чужой заказ не раскрываем
        if not order or not order.is_owned_by(owner_id):
            raise OrderNotFoundError(f"Заказ {order_id} не найден")
        return order
