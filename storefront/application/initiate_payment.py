import logging
from typing import Optional
from pydantic import BaseModel

from storefront.domain.signature import PaymentSignatureCodec, ordered_fields
from storefront.domain.exceptions import OrderNotFoundError, OrderAlreadyPaidError

logger = logging.getLogger(__name__)


class GatewayConfig(BaseModel):
    merchant_id: str
    merchant_key: str
    process_url: str
    frontend_url: str
    service_url: str

    @classmethod
    def from_settings(cls, settings) -> "GatewayConfig":
        return cls(
            merchant_id=settings.PAYFAST_MERCHANT_ID,
            merchant_key=settings.PAYFAST_MERCHANT_KEY,
            process_url=settings.PAYFAST_PROCESS_URL,
            frontend_url=settings.FRONTEND_URL,
            service_url=settings.SERVICE_URL,
        )


class PaymentInitiation(BaseModel):
    url: str
    payment_data: dict[str, str]


class InitiatePaymentUseCase:
    """Формирует подписанные данные для редиректа покупателя на PayFast"""

    def __init__(self, unit_of_work, codec: PaymentSignatureCodec, config: GatewayConfig):
        self._uow = unit_of_work
        self._codec = codec
        self._config = config

    async def __call__(self, order_id: str, owner_id: Optional[str] = None) -> PaymentInitiation:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
        if not order or not order.is_owned_by(owner_id):
            raise OrderNotFoundError(f"Заказ {order_id} не найден")
        if not order.can_be_paid():
            raise OrderAlreadyPaidError(f"Заказ {order_id} уже оплачен")

        fields = {
            "merchant_id": self._config.merchant_id,
            "merchant_key": self._config.merchant_key,
            "return_url": f"{self._config.frontend_url}/order/{order.id}?status=success",
            "cancel_url": f"{self._config.frontend_url}/checkout?status=cancel",
            "notify_url": f"{self._config.service_url}/api/payments/notify",
            "m_payment_id": order.id,
            # Сумма всегда берется из заказа, не от клиента
            "amount": f"{order.total_amount:.2f}",
            "item_name": f"Order #{order.id}",
        }
        if order.guest_contact:
            fields["name_first"] = order.guest_contact.name
            fields["email_address"] = order.guest_contact.email

        payment_data = ordered_fields(fields)
        payment_data["signature"] = self._codec.sign(payment_data)
        logger.info(f"Сформирован платеж PayFast для заказа {order.id} на сумму {payment_data['amount']}")
        return PaymentInitiation(url=self._config.process_url, payment_data=payment_data)
