import httpx
import logging
from typing import Optional

from storefront.domain.exceptions import PaymentGatewayError
from storefront.application.interfaces import PaymentGateway

logger = logging.getLogger(__name__)


class HTTPPaymentGatewayClient(PaymentGateway):
    """Серверное подтверждение ITN через /eng/query/validate"""

    def __init__(self, validate_url: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._validate_url = validate_url
        self._transport = transport

    async def validate_notification(self, fields: dict) -> bool:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    self._validate_url,
                    data=fields,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                    timeout=10.0
                )

                if response.status_code == 200:
                    return response.text.strip() == "VALID"
                raise PaymentGatewayError(f"PayFast validate ошибка: {response.status_code}")

        except httpx.RequestError as e:
            logger.error(f"PayFast ошибка подключения: {e}")
            raise PaymentGatewayError(f"PayFast не доступен: {str(e)}")
