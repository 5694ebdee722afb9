"""Tests for payment notification (ITN) reconciliation."""

import asyncio
from decimal import Decimal

import pytest

from storefront.application.interfaces import PaymentGateway
from storefront.application.process_payment import ProcessPaymentNotificationUseCase, NotificationOutcome
from storefront.domain.exceptions import PaymentGatewayError
from storefront.domain.signature import PaymentSignatureCodec
from storefront.infrastructure.unit_of_work import UnitOfWork

PASSPHRASE = "test-passphrase"
CODEC = PaymentSignatureCodec(PASSPHRASE)


def _itn(order, status="COMPLETE", amount=None, **extra):
    fields = {
        "m_payment_id": order.id,
        "pf_payment_id": "1089250",
        "payment_status": status,
        "item_name": f"Order #{order.id}",
        "amount_gross": amount if amount is not None else f"{order.total_amount:.2f}",
        "amount_fee": "-9.09",
        "amount_net": "385.91",
        "name_first": "Thandi",
        "email_address": "thandi@example.com",
        "merchant_id": "10000100",
    }
    fields.update(extra)
    fields["signature"] = CODEC.sign(fields)
    return fields


class StubGateway(PaymentGateway):
    def __init__(self, result=True, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def validate_notification(self, fields):
        self.calls.append(fields)
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def handler(session_factory):
    return ProcessPaymentNotificationUseCase(UnitOfWork(session_factory), CODEC)


class TestHappyPath:
    def test_complete_notification_marks_order_paid(self, db, handler):
        order = db.create_order()

        outcome = db.run(handler(_itn(order)))

        assert outcome == NotificationOutcome.PAID
        paid = db.get_order(order.id)
        assert paid.is_paid is True
        assert paid.paid_at is not None
        assert paid.payment_result.transaction_id == "1089250"
        assert paid.payment_result.status == "COMPLETE"
        assert paid.payment_result.email_address == "thandi@example.com"
        assert len(db.outbox("order.paid")) == 1

    def test_redelivery_is_a_noop(self, db, handler):
        order = db.create_order()
        notification = _itn(order)

        assert db.run(handler(notification)) == NotificationOutcome.PAID
        first_paid_at = db.get_order(order.id).paid_at

        assert db.run(handler(dict(notification))) == NotificationOutcome.ALREADY_PAID
        assert db.get_order(order.id).paid_at == first_paid_at
        assert len(db.outbox("order.paid")) == 1

    def test_concurrent_deliveries_pay_once(self, db, handler):
        order = db.create_order()
        notification = _itn(order)

        async def deliver_all():
            return await asyncio.gather(*(handler(dict(notification)) for _ in range(3)))

        outcomes = db.run(deliver_all())
        assert outcomes.count(NotificationOutcome.PAID) == 1
        assert outcomes.count(NotificationOutcome.ALREADY_PAID) == 2
        assert len(db.outbox("order.paid")) == 1

    def test_amount_within_tolerance_is_accepted(self, db, handler):
        order = db.create_order()
        amount = str(order.total_amount + Decimal("0.005"))
        assert db.run(handler(_itn(order, amount=amount))) == NotificationOutcome.PAID


class TestRejectedNotifications:
    def test_bad_signature_discarded(self, db, handler):
        order = db.create_order()
        notification = _itn(order)
        notification["signature"] = "0" * 32

        assert db.run(handler(notification)) == NotificationOutcome.INVALID_SIGNATURE
        assert db.get_order(order.id).is_paid is False

    def test_tampered_amount_breaks_signature(self, db, handler):
        order = db.create_order()
        notification = _itn(order)
        notification["amount_gross"] = "1.00"

        assert db.run(handler(notification)) == NotificationOutcome.INVALID_SIGNATURE
        assert db.get_order(order.id).is_paid is False

    def test_missing_signature_discarded(self, db, handler):
        order = db.create_order()
        notification = _itn(order)
        del notification["signature"]

        assert db.run(handler(notification)) == NotificationOutcome.INVALID_SIGNATURE

    def test_unknown_order(self, db, handler):
        order = db.create_order()
        notification = _itn(order, m_payment_id="does-not-exist")

        assert db.run(handler(notification)) == NotificationOutcome.ORDER_NOT_FOUND
        assert db.get_order(order.id).is_paid is False

    @pytest.mark.parametrize("status", ["PENDING", "FAILED", "CANCELLED"])
    def test_non_complete_status_does_not_mutate(self, db, handler, status):
        order = db.create_order()

        assert db.run(handler(_itn(order, status=status))) == NotificationOutcome.NOT_COMPLETE
        stored = db.get_order(order.id)
        assert stored.is_paid is False
        assert stored.payment_result is None

    def test_amount_mismatch_leaves_order_unpaid(self, db, handler):
        order = db.create_order()
        amount = str(order.total_amount - Decimal("1.00"))

        assert db.run(handler(_itn(order, amount=amount))) == NotificationOutcome.AMOUNT_MISMATCH
        assert db.get_order(order.id).is_paid is False
        assert db.outbox("order.paid") == []

    def test_unparseable_amount_is_a_mismatch(self, db, handler):
        order = db.create_order()
        assert db.run(handler(_itn(order, amount="abc"))) == NotificationOutcome.AMOUNT_MISMATCH

    @pytest.mark.parametrize("amount", ["NaN", "sNaN", "Infinity"])
    def test_non_finite_amount_is_a_mismatch(self, db, handler, amount):
        order = db.create_order()

        assert db.run(handler(_itn(order, amount=amount))) == NotificationOutcome.AMOUNT_MISMATCH
        assert db.get_order(order.id).is_paid is False


class TestGatewayConfirmation:
    def test_confirmed_notification_is_processed(self, db, session_factory):
        gateway = StubGateway(result=True)
        handler = ProcessPaymentNotificationUseCase(UnitOfWork(session_factory), CODEC, gateway)
        order = db.create_order()

        assert db.run(handler(_itn(order))) == NotificationOutcome.PAID
        assert "signature" not in gateway.calls[0]

    def test_rejected_by_gateway(self, db, session_factory):
        handler = ProcessPaymentNotificationUseCase(UnitOfWork(session_factory), CODEC, StubGateway(result=False))
        order = db.create_order()

        assert db.run(handler(_itn(order))) == NotificationOutcome.GATEWAY_REJECTED
        assert db.get_order(order.id).is_paid is False

    def test_gateway_unreachable(self, db, session_factory):
        gateway = StubGateway(error=PaymentGatewayError("timeout"))
        handler = ProcessPaymentNotificationUseCase(UnitOfWork(session_factory), CODEC, gateway)
        order = db.create_order()

        assert db.run(handler(_itn(order))) == NotificationOutcome.GATEWAY_REJECTED
        assert db.get_order(order.id).is_paid is False
