"""Tests for building the signed payment redirect payload."""

from datetime import datetime, timezone

import pytest

from storefront.application.initiate_payment import InitiatePaymentUseCase, GatewayConfig
from storefront.domain.exceptions import OrderAlreadyPaidError, OrderNotFoundError
from storefront.domain.models import PaymentResult
from storefront.domain.signature import PaymentSignatureCodec, PAYFAST_FIELD_ORDER
from storefront.infrastructure.unit_of_work import UnitOfWork

CODEC = PaymentSignatureCodec("test-passphrase")
CONFIG = GatewayConfig(
    merchant_id="10000100",
    merchant_key="46f0cd694581a",
    process_url="https://sandbox.payfast.co.za/eng/process",
    frontend_url="https://shop.example",
    service_url="https://api.shop.example",
)


@pytest.fixture
def initiate(session_factory):
    return InitiatePaymentUseCase(UnitOfWork(session_factory), CODEC, CONFIG)


class TestInitiatePayment:
    def test_payload_for_guest_order(self, db, initiate):
        order = db.create_order()

        initiation = db.run(initiate(order.id))

        data = initiation.payment_data
        assert initiation.url == CONFIG.process_url
        assert data["merchant_id"] == "10000100"
        assert data["m_payment_id"] == order.id
        assert data["amount"] == "395.00"
        assert data["item_name"] == f"Order #{order.id}"
        assert data["notify_url"] == "https://api.shop.example/api/payments/notify"
        assert data["return_url"] == f"https://shop.example/order/{order.id}?status=success"
        assert data["email_address"] == "thandi@example.com"

    def test_fields_in_gateway_order_with_valid_signature(self, db, initiate):
        order = db.create_order()
        data = db.run(initiate(order.id)).payment_data

        keys = [k for k in data if k != "signature"]
        assert keys == [k for k in PAYFAST_FIELD_ORDER if k in data]
        assert list(data)[-1] == "signature"
        assert CODEC.verify(data, data["signature"]) is True

    def test_owner_can_initiate_own_order(self, db, initiate):
        order = db.create_order(owner_id="user-1")
        data = db.run(initiate(order.id, "user-1")).payment_data
        assert "email_address" not in data

    def test_other_users_order_is_hidden(self, db, initiate):
        order = db.create_order(owner_id="user-1")
        with pytest.raises(OrderNotFoundError):
            db.run(initiate(order.id, "user-2"))

    def test_unknown_order(self, db, initiate):
        with pytest.raises(OrderNotFoundError):
            db.run(initiate("missing"))

    def test_paid_order_rejected(self, db, session_factory, initiate):
        order = db.create_order()
        now = datetime.now(timezone.utc)

        async def pay():
            async with UnitOfWork(session_factory)() as uow:
                await uow.orders.mark_paid(order.id, now, PaymentResult(
                    transaction_id="1", status="COMPLETE", update_time=now
                ))
                await uow.commit()
        db.run(pay())

        with pytest.raises(OrderAlreadyPaidError):
            db.run(initiate(order.id))
