from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List
from storefront.domain.models import Order, Product, Coupon, LineItem, PaymentResult


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def mark_paid(self, order_id: str, paid_at: datetime, payment_result: PaymentResult) -> bool:
        """Compare-and-set: True только если заказ был неоплачен"""
        pass


class OutboxRepository(ABC):
    @abstractmethod
    async def create(self, event_type: str, event_data: dict, order_id: str) -> str:
        pass

    @abstractmethod
    async def get_pending(self, limit: int = 10) -> List[dict]:
        pass

    @abstractmethod
    async def mark_as_published(self, event_id: str) -> None:
        pass


class OrderTransaction(ABC):
    """Заказ и его outbox-события в одной транзакции"""
    orders: OrderRepository
    outbox: OutboxRepository

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


class CatalogStore(ABC):
    @abstractmethod
    async def get_product(self, product_id: str) -> Optional[Product]:
        pass

    @abstractmethod
    async def decrement_stock(self, product_id: str, quantity: int, variant_id: Optional[str] = None) -> Optional[int]:
        """Атомарно: уменьшить остаток, только если его хватает.

        Возвращает новый остаток или None, если товара недостаточно.
        """
        pass

    @abstractmethod
    async def increment_stock(self, product_id: str, quantity: int, variant_id: Optional[str] = None) -> None:
        pass


class CouponStore(ABC):
    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[Coupon]:
        pass

    @abstractmethod
    async def increment_usage(self, coupon_id: str) -> bool:
        """Атомарно: увеличить used_count, только если лимит не исчерпан"""
        pass

    @abstractmethod
    async def release_usage(self, coupon_id: str) -> None:
        pass


class CartStore(ABC):
    @abstractmethod
    async def get(self, owner_id: str) -> List[LineItem]:
        pass

    @abstractmethod
    async def set(self, owner_id: str, items: List[LineItem]) -> None:
        pass

    @abstractmethod
    async def clear(self, owner_id: str) -> None:
        pass


class PaymentGateway(ABC):
    @abstractmethod
    async def validate_notification(self, fields: dict) -> bool:
        pass


class EventPublisher(ABC):
    @abstractmethod
    async def publish(self, event_type: str, key: str, payload: dict) -> bool:
        pass
