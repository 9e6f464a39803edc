import logging
from datetime import datetime

from aio_pika import DeliveryMode, Message
from aio_pika.abc import AbstractExchange

from fcm_relay.models import CompletionEvent
from fcm_relay.results import Published, PublishFailed, PublishResult

logger = logging.getLogger(__name__)


class CompletionPublisher:
    """Emits ``{identifier, deliverAt}`` to the completion topic exchange.

    The routing key is the exchange name. Nothing is awaited from downstream
    consumers and a failed publish is not retried.
    """

    def __init__(self, exchange: AbstractExchange, routing_key: str):
        self.exchange = exchange
        self.routing_key = routing_key

    def build_message(self, identifier: str, deliver_at: datetime) -> Message:
        event = CompletionEvent(identifier=identifier, deliver_at=deliver_at)
        return Message(
            event.to_body(),
            content_type="application/json",
            delivery_mode=DeliveryMode.PERSISTENT,
        )

    async def publish(self, identifier: str, deliver_at: datetime) -> PublishResult:
        try:
            await self.exchange.publish(
                self.build_message(identifier, deliver_at),
                routing_key=self.routing_key,
            )
        except Exception as e:
            return PublishFailed.from_exc(e)
        return Published(identifier=identifier, deliver_at=deliver_at)
