import logging
from decimal import Decimal
from typing import Optional, List
from datetime import datetime, timezone
from sqlalchemy import select, insert, update, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.domain.models import Product, ProductVariant, Coupon, LineItem, normalize_coupon_code
from storefront.infrastructure.db_schema import products_tbl, product_variants_tbl, coupons_tbl, carts_tbl
from storefront.infrastructure.repositories import as_utc
from storefront.application.interfaces import CatalogStore, CouponStore, CartStore

logger = logging.getLogger(__name__)


def _money(value) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


class SQLAlchemyCatalogStore(CatalogStore):
    """Каталог. Каждая операция — отдельная короткая транзакция."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_product(self, product_id: str) -> Optional[Product]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(products_tbl).where(products_tbl.c.id == product_id)
            )
            row = result.fetchone()
            if not row:
                return None
            variants = await session.execute(
                select(product_variants_tbl)
                .where(product_variants_tbl.c.product_id == product_id)
                .order_by(product_variants_tbl.c.id)
            )
            return self._to_domain(row, variants.fetchall())

    async def decrement_stock(self, product_id: str, quantity: int, variant_id: Optional[str] = None) -> Optional[int]:
        # Проверка остатка и списание в одном условном UPDATE
        if variant_id:
            tbl = product_variants_tbl
            stmt = (
                update(tbl)
                .where(tbl.c.id == variant_id, tbl.c.product_id == product_id, tbl.c.stock >= quantity)
                .values(stock=tbl.c.stock - quantity)
                .returning(tbl.c.stock)
            )
        else:
            tbl = products_tbl
            stmt = (
                update(tbl)
                .where(tbl.c.id == product_id, tbl.c.stock >= quantity)
                .values(stock=tbl.c.stock - quantity)
                .returning(tbl.c.stock)
            )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            remaining = result.scalar_one_or_none()
            await session.commit()
        return remaining

    async def increment_stock(self, product_id: str, quantity: int, variant_id: Optional[str] = None) -> None:
        if variant_id:
            tbl = product_variants_tbl
            stmt = (
                update(tbl)
                .where(tbl.c.id == variant_id, tbl.c.product_id == product_id)
                .values(stock=tbl.c.stock + quantity)
            )
        else:
            tbl = products_tbl
            stmt = (
                update(tbl)
                .where(tbl.c.id == product_id)
                .values(stock=tbl.c.stock + quantity)
            )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    def _to_domain(self, row, variant_rows) -> Product:
        return Product(
            id=row.id,
            name=row.name,
            price=Decimal(row.price),
            original_price=_money(row.original_price),
            sale_price=_money(row.sale_price),
            is_on_sale=row.is_on_sale,
            sale_starts_at=as_utc(row.sale_starts_at),
            sale_ends_at=as_utc(row.sale_ends_at),
            stock=row.stock,
            variants=[
                ProductVariant(
                    id=v.id,
                    product_id=v.product_id,
                    name=v.name,
                    price=_money(v.price),
                    original_price=_money(v.original_price),
                    sale_price=_money(v.sale_price),
                    is_on_sale=v.is_on_sale,
                    stock=v.stock
                )
                for v in variant_rows
            ]
        )


class SQLAlchemyCouponStore(CouponStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(coupons_tbl).where(coupons_tbl.c.code == normalize_coupon_code(code))
            )
            row = result.fetchone()
        return self._to_domain(row) if row else None

    async def increment_usage(self, coupon_id: str) -> bool:
        stmt = (
            update(coupons_tbl)
            .where(
                coupons_tbl.c.id == coupon_id,
                or_(
                    coupons_tbl.c.usage_limit.is_(None),
                    coupons_tbl.c.used_count < coupons_tbl.c.usage_limit
                )
            )
            .values(used_count=coupons_tbl.c.used_count + 1)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount == 1

    async def release_usage(self, coupon_id: str) -> None:
        stmt = (
            update(coupons_tbl)
            .where(coupons_tbl.c.id == coupon_id, coupons_tbl.c.used_count > 0)
            .values(used_count=coupons_tbl.c.used_count - 1)
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    def _to_domain(self, row) -> Coupon:
        return Coupon(
            id=row.id,
            code=row.code,
            kind=row.kind,
            value=Decimal(row.value),
            is_active=row.is_active,
            starts_at=as_utc(row.starts_at),
            ends_at=as_utc(row.ends_at),
            min_subtotal=Decimal(row.min_subtotal or 0),
            usage_limit=row.usage_limit,
            used_count=row.used_count
        )


class SQLAlchemyCartStore(CartStore):
    """Корзина во внешнем хранилище, ключ — пользователь"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, owner_id: str) -> List[LineItem]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(carts_tbl.c["items"]).where(carts_tbl.c.owner_id == owner_id)
            )
            items = result.scalar_one_or_none()
        return [LineItem(**item) for item in items or []]

    async def set(self, owner_id: str, items: List[LineItem]) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(carts_tbl).where(carts_tbl.c.owner_id == owner_id))
            await session.execute(
                insert(carts_tbl).values(
                    owner_id=owner_id,
                    items=[item.model_dump(mode="json") for item in items],
                    updated_at=datetime.now(timezone.utc)
                )
            )
            await session.commit()

    async def clear(self, owner_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(carts_tbl).where(carts_tbl.c.owner_id == owner_id))
            await session.commit()
