import json
import logging
from datetime import datetime, timezone
from aiokafka import AIOKafkaProducer

from storefront.application.interfaces import EventPublisher

logger = logging.getLogger(__name__)


def _serialize(event: dict) -> bytes:
    # Decimal и datetime уходят строками
    return json.dumps(event, default=str).encode()


class KafkaProducerClient(EventPublisher):
    """Публикует события заказа (order.created, order.paid) в один топик.

    Ключ сообщения - id заказа, чтобы события одного заказа шли в одну партицию.
    """

    def __init__(self, bootstrap_servers: str, topic: str):
        self._bootstrap_servers = bootstrap_servers
        self._topic = topic
        self._producer: AIOKafkaProducer | None = None

    async def start(self):
        if self._producer:
            return
        self._producer = AIOKafkaProducer(
            bootstrap_servers=self._bootstrap_servers,
            key_serializer=str.encode,
            value_serializer=_serialize,
            acks="all",
            enable_idempotence=True
        )
        await self._producer.start()
        logger.info(f"Kafka producer запущен, топик {self._topic}")

    async def stop(self):
        if self._producer:
            await self._producer.stop()
            self._producer = None
            logger.info("Kafka producer остановлен")

    async def __aenter__(self) -> "KafkaProducerClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def publish(self, event_type: str, key: str, payload: dict) -> bool:
        if not self._producer:
            logger.error("Kafka producer не запущен")
            return False

        event = {
            "event_type": event_type,
            "published_at": datetime.now(timezone.utc).isoformat(),
            **payload
        }
        try:
            await self._producer.send_and_wait(
                self._topic,
                key=key,
                value=event,
                headers=[("event_type", event_type.encode())]
            )
        except Exception as e:
            # Событие останется pending в outbox и уйдет на следующем цикле
            logger.error(f"Не удалось опубликовать {event_type} для заказа {key}: {e}")
            return False

        logger.info(f"Опубликовано {event_type} для заказа {key}")
        return True
