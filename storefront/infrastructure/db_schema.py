from sqlalchemy import (
    Table, Column, String, Integer, Boolean, Numeric, DateTime, JSON, MetaData, ForeignKey
)
from sqlalchemy.sql import func

metadata = MetaData()

MONEY = Numeric(12, 2)


products_tbl = Table(
    "products",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("price", MONEY, nullable=False),
    Column("original_price", MONEY, nullable=True),
    Column("sale_price", MONEY, nullable=True),
    Column("is_on_sale", Boolean, nullable=False, default=False),
    Column("sale_starts_at", DateTime(timezone=True), nullable=True),
    Column("sale_ends_at", DateTime(timezone=True), nullable=True),
    Column("stock", Integer, nullable=False, default=0),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


product_variants_tbl = Table(
    "product_variants",
    metadata,
    Column("id", String, primary_key=True),
    Column("product_id", String, ForeignKey("products.id"), nullable=False, index=True),
    Column("name", String, nullable=False, default=""),
    Column("price", MONEY, nullable=True),
    Column("original_price", MONEY, nullable=True),
    Column("sale_price", MONEY, nullable=True),
    Column("is_on_sale", Boolean, nullable=False, default=False),
    Column("stock", Integer, nullable=False, default=0)
)


coupons_tbl = Table(
    "coupons",
    metadata,
    Column("id", String, primary_key=True),
    Column("code", String, unique=True, index=True, nullable=False),
    Column("kind", String, nullable=False),
    Column("value", MONEY, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("starts_at", DateTime(timezone=True), nullable=True),
    Column("ends_at", DateTime(timezone=True), nullable=True),
    Column("min_subtotal", MONEY, nullable=False, default=0),
    Column("usage_limit", Integer, nullable=True),
    Column("used_count", Integer, nullable=False, default=0)
)


carts_tbl = Table(
    "carts",
    metadata,
    Column("owner_id", String, primary_key=True),
    Column("items", JSON, nullable=False),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("owner_id", String, nullable=True, index=True),
    Column("guest_contact", JSON, nullable=True),
    Column("items", JSON, nullable=False),
    Column("shipping_address", JSON, nullable=False),
    Column("payment_method", String, nullable=False),
    Column("coupon_code", String, nullable=True),
    Column("subtotal", MONEY, nullable=False),
    Column("tax_amount", MONEY, nullable=False),
    Column("shipping_amount", MONEY, nullable=False),
    Column("discount_amount", MONEY, nullable=False),
    Column("total_amount", MONEY, nullable=False),
    Column("is_paid", Boolean, nullable=False, default=False),
    Column("paid_at", DateTime(timezone=True), nullable=True),
    Column("payment_result", JSON, nullable=True),
    Column("idempotency_key", String, unique=True, index=True, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


outbox_events_tbl = Table(
    "outbox_events",
    metadata,
    Column("id", String, primary_key=True),
    Column("event_type", String, nullable=False),
    Column("event_data", JSON, nullable=False),
    Column("order_id", String, nullable=False),
    Column("status", String, default="pending", index=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)
