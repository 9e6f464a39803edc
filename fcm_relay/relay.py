"""Consume loop and per-message pipeline.

Acknowledgment policy: a message is acked as soon as it has been validated
(or rejected), before the push, the database write or the completion event.
Anything that fails afterwards is logged and dropped; nothing is requeued,
retried or dead-lettered here. Delivery is therefore at-most-once per broker
delivery, and a crash after the ack can lose the push and/or the completion
event. Keep it that way unless the delivery guarantee is meant to change.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Union

from fcm_relay import resilience, validator
from fcm_relay.dispatcher import Dispatcher
from fcm_relay.errors import MalformedPayloadError, ValidationError
from fcm_relay.models import NotificationRequest, format_deliver_at
from fcm_relay.observability import message_context
from fcm_relay.publisher import CompletionPublisher
from fcm_relay.record_store import RecordStore
from fcm_relay.results import (
    DispatchFailed,
    PassOutcome,
    PublishFailed,
    Stage,
    StoreFailed,
)

logger = logging.getLogger(__name__)


class InboundMessage(Protocol):
    body: bytes

    async def ack(self, multiple: bool = False) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RelayController:
    def __init__(
        self,
        broker,
        dispatcher: Dispatcher,
        store: RecordStore,
        publisher: CompletionPublisher,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.broker = broker
        self.dispatcher = dispatcher
        self.store = store
        self.publisher = publisher
        self.clock = clock

    async def run(self):
        """Process inbound messages sequentially until cancelled."""
        logger.info("relay_consuming", extra={"extra": {"event": "relay_consuming"}})
        async for message in self.broker.messages():
            await self.handle(message)

    async def _ack(self, message: InboundMessage, identifier: Optional[str] = None) -> bool:
        try:
            await message.ack()
        except Exception as e:
            logger.error(f"message_ack_error: {e}", extra={"extra": {
                "event": "message_ack_error", "stage": Stage.ACK_FAILED.value,
                "identifier": identifier,
            }}, exc_info=e)
            resilience.record_failure("consume", e, identifier)
            return False
        return True

    async def handle(self, message: InboundMessage) -> PassOutcome:
        """Run one message through validate, ack, dispatch, record, publish."""
        try:
            request = validator.parse(message.body)
        except (MalformedPayloadError, ValidationError) as e:
            return await self._reject(message, e)

        with message_context(request.identifier):
            return await self._process(message, request)

    async def _reject(self, message: InboundMessage, error: Exception) -> PassOutcome:
        extra = {"event": "message_rejected", "stage": Stage.REJECTED.value, "reason": type(error).__name__}
        if isinstance(error, ValidationError):
            extra["violations"] = ", ".join(f"{f}={r}" for f, r in error.violations.items())
        logger.error(f"message_rejected: {error}", extra={"extra": extra})

        # Se ackea igual: un payload inválido nunca se reentrega
        if not await self._ack(message):
            return PassOutcome(Stage.ACK_FAILED, acknowledged=False, cause=str(error), exc=error)
        resilience.record_failure("consume", error)
        return PassOutcome(Stage.REJECTED, acknowledged=True, cause=str(error), exc=error)

    async def _process(self, message: InboundMessage, request: NotificationRequest) -> PassOutcome:
        identifier = request.identifier
        logger.info("message_received", extra={"extra": {
            "event": "message_received", "stage": Stage.RECEIVED.value, "type": request.type,
        }})

        if not await self._ack(message, identifier):
            return PassOutcome(Stage.ACK_FAILED, acknowledged=False, identifier=identifier)
        resilience.record_success("consume", identifier)

        # 1. Push
        try:
            dispatched = await self.dispatcher.dispatch(request.device_id, request.text)
        except Exception as e:
            dispatched = DispatchFailed.from_exc(e)
        if isinstance(dispatched, DispatchFailed):
            return self._fail(Stage.DISPATCH_FAILED, "dispatch", identifier, dispatched)
        resilience.record_success("dispatch", identifier)

        # 2. Registro en DB (timestamp tomado después del push)
        deliver_at = self.clock()
        try:
            stored = await self.store.save(identifier, deliver_at)
        except Exception as e:
            stored = StoreFailed.from_exc(e)
        if isinstance(stored, StoreFailed):
            return self._fail(Stage.RECORD_FAILED, "store", identifier, stored)
        resilience.record_success("store", identifier)
        logger.info("fcm_job_saved", extra={"extra": {
            "event": "fcm_job_saved", "stage": Stage.RECORDED.value,
            "deliverAt": format_deliver_at(deliver_at),
        }})

        # 3. Evento notification.done
        try:
            published = await self.publisher.publish(stored.identifier, stored.deliver_at)
        except Exception as e:
            published = PublishFailed.from_exc(e)
        if isinstance(published, PublishFailed):
            return self._fail(Stage.PUBLISH_FAILED, "publish", identifier, published)
        resilience.record_success("publish", identifier)

        logger.info("notification_done_published", extra={"extra": {
            "event": "notification_done_published", "stage": Stage.DONE.value,
            "deliverAt": format_deliver_at(deliver_at),
        }})
        return PassOutcome(Stage.DONE, acknowledged=True, identifier=identifier)

    def _fail(self, stage: Stage, step: str, identifier: str,
              failure: Union[DispatchFailed, StoreFailed, PublishFailed]) -> PassOutcome:
        logger.error(f"{stage.value}: {failure.cause}", extra={"extra": {
            "event": f"fcm_{stage.value}", "stage": stage.value,
        }}, exc_info=failure.exc)
        resilience.record_failure(step, failure.cause, identifier)
        return PassOutcome(stage, acknowledged=True, identifier=identifier,
                           cause=failure.cause, exc=failure.exc)
