from contextlib import asynccontextmanager
from typing import AsyncIterator
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.application.interfaces import OrderTransaction
from storefront.infrastructure.repositories import (
    SQLAlchemyOrderRepository,
    SQLAlchemyOutboxRepository
)


class UnitOfWork:
    """Открывает транзакцию над заказами и outbox.

    Без явного commit() изменения откатываются при выходе из контекста.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self) -> AsyncIterator["SQLAlchemyOrderTransaction"]:
        async with self._session_factory() as session:
            transaction = SQLAlchemyOrderTransaction(session)
            try:
                yield transaction
            except Exception:
                await session.rollback()
                raise
            if not transaction.committed:
                await session.rollback()


class SQLAlchemyOrderTransaction(OrderTransaction):
    def __init__(self, session: AsyncSession):
        self._session = session
        self.orders = SQLAlchemyOrderRepository(session)
        self.outbox = SQLAlchemyOutboxRepository(session)
        self.committed = False

    async def commit(self):
        await self._session.commit()
        self.committed = True

    async def rollback(self):
        await self._session.rollback()
        self.committed = False
