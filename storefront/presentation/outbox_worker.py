import asyncio
import logging

from storefront.database import AsyncSessionLocal
from storefront.infrastructure.unit_of_work import UnitOfWork
from storefront.infrastructure.kafka_producer import KafkaProducerClient
from storefront.application.process_outbox import ProcessOutboxEventsUseCase
from storefront.config import settings

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

POLL_INTERVAL = 3
ERROR_BACKOFF = 10
BATCH_SIZE = 10


async def outbox_worker():
    """Relay outbox -> Kafka для событий order.created и order.paid"""
    logger.info(f"Outbox worker запущен, топик {settings.ORDER_EVENTS_TOPIC}")

    async with KafkaProducerClient(settings.KAFKA_BOOTSTRAP_SERVERS, settings.ORDER_EVENTS_TOPIC) as producer:
        relay = ProcessOutboxEventsUseCase(unit_of_work=UnitOfWork(AsyncSessionLocal), publisher=producer)
        while True:
            try:
                published = await relay(limit=BATCH_SIZE)
                if published:
                    logger.info(f"Опубликовано {published} outbox events")
                # Полная пачка - скорее всего есть еще, не ждем
                if published < BATCH_SIZE:
                    await asyncio.sleep(POLL_INTERVAL)

            except Exception as e:
                logger.error(f"Ошибка в outbox worker: {e}", exc_info=True)
                await asyncio.sleep(ERROR_BACKOFF)


if __name__ == "__main__":
    asyncio.run(outbox_worker())
