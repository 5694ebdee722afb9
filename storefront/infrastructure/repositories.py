import uuid
from decimal import Decimal
from typing import Optional, List
from datetime import datetime, timezone
from sqlalchemy import select, insert, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.models import Order, PaymentResult
from storefront.infrastructure.db_schema import orders_tbl, outbox_events_tbl
from storefront.application.interfaces import OrderRepository, OutboxRepository


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite возвращает naive datetime — считаем их UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.id == order_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.idempotency_key == key)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def create(self, order: Order) -> None:
        stmt = insert(orders_tbl).values(
            id=order.id,
            owner_id=order.owner_id,
            guest_contact=order.guest_contact.model_dump() if order.guest_contact else None,
            items=[item.model_dump(mode="json") for item in order.items],
            shipping_address=order.shipping_address.model_dump(),
            payment_method=order.payment_method,
            coupon_code=order.coupon_code,
            subtotal=order.subtotal,
            tax_amount=order.tax_amount,
            shipping_amount=order.shipping_amount,
            discount_amount=order.discount_amount,
            total_amount=order.total_amount,
            is_paid=order.is_paid,
            paid_at=order.paid_at,
            payment_result=None,
            idempotency_key=order.idempotency_key,
            created_at=order.created_at,
            updated_at=order.updated_at
        )
        await self._session.execute(stmt)

    async def mark_paid(self, order_id: str, paid_at: datetime, payment_result: PaymentResult) -> bool:
        # Единственный допустимый переход Unpaid -> Paid
        stmt = (
            update(orders_tbl)
            .where(orders_tbl.c.id == order_id, orders_tbl.c.is_paid.is_(False))
            .values(
                is_paid=True,
                paid_at=paid_at,
                payment_result=payment_result.model_dump(mode="json"),
                updated_at=datetime.now(timezone.utc)
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    def _to_domain(self, row) -> Order:
        """Трансформация DB → Domain"""
        payment_result = None
        if row.payment_result:
            payment_result = PaymentResult(**row.payment_result)
        return Order(
            id=row.id,
            owner_id=row.owner_id,
            guest_contact=row.guest_contact,
            items=row.items,
            shipping_address=row.shipping_address,
            payment_method=row.payment_method,
            coupon_code=row.coupon_code,
            subtotal=Decimal(row.subtotal),
            tax_amount=Decimal(row.tax_amount),
            shipping_amount=Decimal(row.shipping_amount),
            discount_amount=Decimal(row.discount_amount),
            total_amount=Decimal(row.total_amount),
            is_paid=row.is_paid,
            paid_at=as_utc(row.paid_at),
            payment_result=payment_result,
            idempotency_key=row.idempotency_key,
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at)
        )


class SQLAlchemyOutboxRepository(OutboxRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, event_type: str, event_data: dict, order_id: str) -> str:
        event_id = str(uuid.uuid4())
        stmt = insert(outbox_events_tbl).values(
            id=event_id,
            event_type=event_type,
            event_data=event_data,  # SQLAlchemy JSON column сериализует автоматически
            order_id=order_id,
            status="pending",
            created_at=datetime.now(timezone.utc)
        )
        await self._session.execute(stmt)
        return event_id

    async def get_pending(self, limit: int = 10) -> List[dict]:
        result = await self._session.execute(
            select(outbox_events_tbl)
            .where(outbox_events_tbl.c.status == "pending")
            .order_by(outbox_events_tbl.c.created_at.asc())
            .limit(limit)
        )
        rows = result.fetchall()

        return [
            {
                "id": row.id,
                "event_type": row.event_type,
                "event_data": row.event_data,
                "order_id": row.order_id
            }
            for row in rows
        ]

    async def mark_as_published(self, event_id: str) -> None:
        stmt = (
            update(outbox_events_tbl)
            .where(outbox_events_tbl.c.id == event_id)
            .values(status="published")
        )
        await self._session.execute(stmt)
