"""Pytest fixtures for storefront tests."""

import asyncio
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from storefront.domain.models import Order, LineItem, ShippingAddress, GuestContact
from storefront.domain.pricing import PricingPolicy, calculate_price
from storefront.infrastructure.db_schema import (
    metadata, products_tbl, product_variants_tbl, coupons_tbl, orders_tbl, outbox_events_tbl
)
from storefront.infrastructure.unit_of_work import UnitOfWork


ADDRESS = ShippingAddress(
    street="1 Long Street", city="Cape Town", state="Western Cape", zip_code="8001", country="ZA"
)
GUEST = GuestContact(name="Thandi", email="thandi@example.com", phone="0821234567")


class Database:
    """Sync helpers over the async test database."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def run(self, coro):
        return asyncio.run(coro)

    def _execute(self, stmt):
        async def go():
            async with self.session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        self.run(go())

    def _fetch(self, stmt):
        async def go():
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return result.fetchall()
        return self.run(go())

    def add_product(self, product_id, price, stock, **fields):
        self._execute(insert(products_tbl).values(
            id=product_id, name=fields.pop("name", product_id.title()),
            price=Decimal(str(price)), stock=stock, is_on_sale=fields.pop("is_on_sale", False), **fields
        ))

    def add_variant(self, product_id, variant_id, stock, **fields):
        self._execute(insert(product_variants_tbl).values(
            id=variant_id, product_id=product_id, name=fields.pop("name", variant_id),
            stock=stock, is_on_sale=fields.pop("is_on_sale", False), **fields
        ))

    def add_coupon(self, code, kind="percent", value=10, **fields):
        coupon_id = fields.pop("id", str(uuid.uuid4()))
        self._execute(insert(coupons_tbl).values(
            id=coupon_id, code=code.upper(), kind=kind, value=Decimal(str(value)),
            is_active=fields.pop("is_active", True), min_subtotal=Decimal(str(fields.pop("min_subtotal", 0))),
            used_count=fields.pop("used_count", 0), **fields
        ))
        return coupon_id

    def stock(self, product_id):
        rows = self._fetch(select(products_tbl.c.stock).where(products_tbl.c.id == product_id))
        return rows[0].stock

    def variant_stock(self, variant_id):
        rows = self._fetch(select(product_variants_tbl.c.stock).where(product_variants_tbl.c.id == variant_id))
        return rows[0].stock

    def coupon_used(self, code):
        rows = self._fetch(select(coupons_tbl.c.used_count).where(coupons_tbl.c.code == code.upper()))
        return rows[0].used_count

    def order_count(self):
        return len(self._fetch(select(orders_tbl.c.id)))

    def outbox(self, event_type=None, status=None):
        stmt = select(outbox_events_tbl)
        if event_type:
            stmt = stmt.where(outbox_events_tbl.c.event_type == event_type)
        if status:
            stmt = stmt.where(outbox_events_tbl.c.status == status)
        return self._fetch(stmt)

    def create_order(self, items=None, owner_id=None, guest_contact=GUEST, **overrides):
        """Persist an unpaid order priced by the pricing engine."""
        items = items or [LineItem(product_id="kettle", quantity=2, unit_price=Decimal("150.00"))]
        price = calculate_price(items, PricingPolicy())
        now = datetime.now(timezone.utc)
        order = Order(
            id=overrides.pop("id", str(uuid.uuid4())),
            owner_id=owner_id,
            guest_contact=None if owner_id else guest_contact,
            items=items,
            shipping_address=ADDRESS,
            payment_method="payfast",
            subtotal=price.subtotal,
            tax_amount=price.tax,
            shipping_amount=price.shipping,
            discount_amount=price.discount,
            total_amount=price.total,
            created_at=now,
            updated_at=now,
            **overrides
        )

        async def go():
            async with UnitOfWork(self.session_factory)() as uow:
                await uow.orders.create(order)
                await uow.commit()
        self.run(go())
        return order

    def get_order(self, order_id):
        async def go():
            async with UnitOfWork(self.session_factory)() as uow:
                return await uow.orders.get_by_id(order_id)
        return self.run(go())


@pytest.fixture
def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}", poolclass=NullPool)

    async def create_schema():
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    asyncio.run(create_schema())
    yield async_sessionmaker(engine, expire_on_commit=False)
    asyncio.run(engine.dispose())


@pytest.fixture
def db(session_factory):
    return Database(session_factory)
