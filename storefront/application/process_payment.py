import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Mapping, Optional

from storefront.domain.models import PaymentResult
from storefront.domain.signature import PaymentSignatureCodec, SIGNATURE_FIELD
from storefront.domain.exceptions import PaymentGatewayError
from storefront.application.interfaces import PaymentGateway

logger = logging.getLogger(__name__)

COMPLETE_STATUS = "COMPLETE"


class NotificationOutcome(str, Enum):
    PAID = "paid"
    ALREADY_PAID = "already_paid"
    INVALID_SIGNATURE = "invalid_signature"
    GATEWAY_REJECTED = "gateway_rejected"
    ORDER_NOT_FOUND = "order_not_found"
    NOT_COMPLETE = "not_complete"
    AMOUNT_MISMATCH = "amount_mismatch"


class ProcessPaymentNotificationUseCase:
    """Обработка ITN от PayFast.

    Переводит заказ Unpaid -> Paid не более одного раза. Повторная доставка
    того же уведомления ничего не меняет. Результат нужен для логов и тестов,
    шлюзу всегда отвечаем 200.
    """

    def __init__(
        self,
        unit_of_work,
        codec: PaymentSignatureCodec,
        gateway: Optional[PaymentGateway] = None,
        amount_tolerance: Decimal = Decimal("0.01")
    ):
        self._uow = unit_of_work
        self._codec = codec
        self._gateway = gateway
        self._tolerance = amount_tolerance

    async def __call__(self, raw_fields: Mapping[str, str]) -> NotificationOutcome:
        fields = dict(raw_fields)
        signature = fields.pop(SIGNATURE_FIELD, "")
        order_id = fields.get("m_payment_id", "")
        logger.info(f"Получено ITN для заказа {order_id}: {fields.get('payment_status')}")

        # 1. Подпись
        if not self._codec.verify(fields, signature):
            logger.warning(f"ITN для заказа {order_id}: неверная подпись, уведомление отброшено")
            return NotificationOutcome.INVALID_SIGNATURE

        # 2. Подтверждение на стороне шлюза (если включено)
        if self._gateway is not None:
            try:
                confirmed = await self._gateway.validate_notification(fields)
            except PaymentGatewayError as e:
                logger.error(f"ITN для заказа {order_id}: шлюз недоступен для подтверждения: {e}")
                confirmed = False
            if not confirmed:
                logger.warning(f"ITN для заказа {order_id} не подтверждено шлюзом")
                return NotificationOutcome.GATEWAY_REJECTED

        async with self._uow() as uow:
            # 3. Поиск заказа
            order = await uow.orders.get_by_id(order_id) if order_id else None
            if not order:
                logger.warning(f"ITN: заказ {order_id} не найден")
                return NotificationOutcome.ORDER_NOT_FOUND

            # 4. Только COMPLETE меняет состояние
            status = fields.get("payment_status", "")
            if status.upper() != COMPLETE_STATUS:
                logger.info(f"ITN для заказа {order_id} со статусом {status}, без изменений")
                return NotificationOutcome.NOT_COMPLETE

            # 5. Сверка суммы
            try:
                amount = Decimal(fields.get("amount_gross", ""))
            except InvalidOperation:
                amount = None
            # NaN и Infinity не сравниваются с суммой заказа
            if amount is not None and not amount.is_finite():
                amount = None
            if amount is None or abs(amount - order.total_amount) > self._tolerance:
                logger.error(
                    f"Аномалия сверки: заказ {order_id}, сумма заказа {order.total_amount}, "
                    f"в ITN {fields.get('amount_gross')}"
                )
                return NotificationOutcome.AMOUNT_MISMATCH

            # 6. Идемпотентность
            if not order.can_be_paid():
                logger.info(f"Заказ {order_id} уже оплачен, повторное ITN проигнорировано")
                return NotificationOutcome.ALREADY_PAID

            # 7. Compare-and-set Unpaid -> Paid
            now = datetime.now(timezone.utc)
            payment_result = PaymentResult(
                transaction_id=fields.get("pf_payment_id", ""),
                status=status,
                email_address=fields.get("email_address"),
                update_time=now
            )
            if not await uow.orders.mark_paid(order_id, now, payment_result):
                logger.info(f"Заказ {order_id} оплачен параллельным ITN")
                return NotificationOutcome.ALREADY_PAID

            await uow.outbox.create(
                event_type="order.paid",
                event_data={
                    "order_id": order_id,
                    "transaction_id": payment_result.transaction_id,
                    "total_amount": str(order.total_amount),
                    "idempotency_key": f"order_paid_{order_id}"
                },
                order_id=order_id
            )
            await uow.commit()

        logger.info(f"Заказ {order_id} отмечен PAID")
        return NotificationOutcome.PAID
