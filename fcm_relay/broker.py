import logging
from typing import AsyncIterator, Optional

import aio_pika
from aio_pika import ExchangeType
from aio_pika.abc import (
    AbstractExchange,
    AbstractIncomingMessage,
    AbstractQueue,
    AbstractRobustChannel,
    AbstractRobustConnection,
)

from fcm_relay.errors import BrokerSetupError

logger = logging.getLogger(__name__)


class RelayBroker:
    """RabbitMQ side of the relay: the inbound queue and the completion exchange."""

    def __init__(self, url: str, queue_name: str, exchange_name: str, prefetch_count: int = 1):
        self.url = url
        self.queue_name = queue_name
        self.exchange_name = exchange_name
        self.prefetch_count = prefetch_count

        self.connection: Optional[AbstractRobustConnection] = None
        self.channel: Optional[AbstractRobustChannel] = None
        self.queue: Optional[AbstractQueue] = None
        self.exchange: Optional[AbstractExchange] = None

    async def connect(self):
        """Connect and declare the durable queue and topic exchange.

        Any failure closes whatever was opened and raises BrokerSetupError.
        """
        try:
            self.connection = await aio_pika.connect_robust(self.url)
            self.channel = await self.connection.channel()
            await self.channel.set_qos(prefetch_count=self.prefetch_count)
            self.queue = await self.channel.declare_queue(self.queue_name, durable=True)
            self.exchange = await self.channel.declare_exchange(
                self.exchange_name, ExchangeType.TOPIC, durable=True
            )
        except Exception as e:
            logger.error(f"broker_setup_error: {e}", extra={"extra": {
                "event": "broker_setup_error",
                "queue": self.queue_name, "exchange": self.exchange_name,
            }})
            await self.close()
            raise BrokerSetupError(f"could not set up broker: {e}", e) from e

        logger.info("broker_connected", extra={"extra": {
            "event": "broker_connected",
            "queue": self.queue_name, "exchange": self.exchange_name,
        }})

    async def messages(self) -> AsyncIterator[AbstractIncomingMessage]:
        """Yield inbound messages one at a time, in delivery order (manual ack)."""
        if self.queue is None:
            raise BrokerSetupError("broker is not connected")
        async with self.queue.iterator(no_ack=False) as queue_iter:
            async for message in queue_iter:
                yield message

    def is_connected(self) -> bool:
        return self.connection is not None and not self.connection.is_closed

    async def close(self):
        connection, self.connection = self.connection, None
        self.channel = self.queue = self.exchange = None
        if connection is not None and not connection.is_closed:
            try:
                await connection.close()
            except Exception as e:
                logger.warning(f"broker_close_error: {e}", extra={"extra": {"event": "broker_close_error"}})
                return
        logger.info("broker_closed", extra={"extra": {"event": "broker_closed"}})
