"""Tests for relaying outbox events to the event bus."""

import asyncio
import json
from decimal import Decimal

from storefront.application.interfaces import EventPublisher
from storefront.application.process_outbox import ProcessOutboxEventsUseCase
from storefront.infrastructure.kafka_producer import KafkaProducerClient, _serialize
from storefront.infrastructure.unit_of_work import UnitOfWork


class RecordingPublisher(EventPublisher):
    def __init__(self, succeed=True):
        self.succeed = succeed
        self.published = []

    async def publish(self, event_type, key, payload):
        self.published.append((event_type, key, payload))
        return self.succeed


def _add_event(db, session_factory, event_type, order_id):
    async def go():
        async with UnitOfWork(session_factory)() as uow:
            await uow.outbox.create(event_type, {"order_id": order_id}, order_id)
            await uow.commit()
    db.run(go())


class TestProcessOutbox:
    def test_publishes_and_marks_events(self, db, session_factory):
        _add_event(db, session_factory, "order.created", "o-1")
        _add_event(db, session_factory, "order.paid", "o-1")
        publisher = RecordingPublisher()
        relay = ProcessOutboxEventsUseCase(UnitOfWork(session_factory), publisher)

        assert db.run(relay()) == 2
        assert {e[0] for e in publisher.published} == {"order.created", "order.paid"}
        assert all(key == "o-1" for _, key, _ in publisher.published)
        assert db.outbox(status="pending") == []

        assert db.run(relay()) == 0

    def test_failed_publish_stays_pending(self, db, session_factory):
        _add_event(db, session_factory, "order.paid", "o-1")
        relay = ProcessOutboxEventsUseCase(UnitOfWork(session_factory), RecordingPublisher(succeed=False))

        assert db.run(relay()) == 0
        assert len(db.outbox(status="pending")) == 1

    def test_respects_limit(self, db, session_factory):
        for i in range(3):
            _add_event(db, session_factory, "order.created", f"o-{i}")
        relay = ProcessOutboxEventsUseCase(UnitOfWork(session_factory), RecordingPublisher())

        assert db.run(relay(limit=2)) == 2
        assert len(db.outbox(status="pending")) == 1


class TestKafkaProducerClient:
    def test_publish_before_start_fails_softly(self):
        client = KafkaProducerClient("localhost:9092", "storefront.order-events")
        assert asyncio.run(client.publish("order.paid", "o-1", {"order_id": "o-1"})) is False

    def test_event_serialization_keeps_money_as_string(self):
        event = json.loads(_serialize({"order_id": "o-1", "total_amount": Decimal("395.00")}))
        assert event["total_amount"] == "395.00"
