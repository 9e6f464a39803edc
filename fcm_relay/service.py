import asyncio
import logging
from typing import Optional

from fcm_relay import settings
from fcm_relay.broker import RelayBroker
from fcm_relay.database import dispose_engine, get_session_factory, init_db
from fcm_relay.dispatcher import Dispatcher
from fcm_relay.fcm_client import FcmGateway, is_mock_project
from fcm_relay.publisher import CompletionPublisher
from fcm_relay.record_store import RecordStore
from fcm_relay.relay import RelayController

logger = logging.getLogger(__name__)


def build_dispatcher(project_id: Optional[str] = None, key_file: Optional[str] = None) -> Dispatcher:
    if is_mock_project(project_id):
        logger.warning("fcm_mock_mode", extra={"extra": {
            "event": "fcm_mock_mode", "project_id": project_id,
        }})
        return Dispatcher()
    return Dispatcher(FcmGateway(project_id, key_file=key_file, timeout=settings.FCM_TIMEOUT))


class RelayService:
    """Owns the relay's long-lived resources and its background consume task."""

    def __init__(self, broker: Optional[RelayBroker] = None, dispatcher: Optional[Dispatcher] = None,
                 store: Optional[RecordStore] = None):
        self.broker = broker or RelayBroker(
            settings.RABBITMQ_URL,
            settings.NOTIFICATION_QUEUE,
            settings.DONE_EXCHANGE,
            prefetch_count=settings.RABBITMQ_PREFETCH,
        )
        self.dispatcher = dispatcher
        self.store = store
        self.controller: Optional[RelayController] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        try:
            if self.store is None:
                await asyncio.to_thread(init_db)
                self.store = RecordStore(get_session_factory())
            if self.dispatcher is None:
                self.dispatcher = build_dispatcher(settings.FCM_PROJECT_ID, settings.GOOGLE_APPLICATION_CREDENTIALS)
            await self.broker.connect()
        except Exception:
            await self._release()
            raise

        publisher = CompletionPublisher(self.broker.exchange, routing_key=self.broker.exchange_name)
        self.controller = RelayController(self.broker, self.dispatcher, self.store, publisher)
        self._task = asyncio.create_task(self.controller.run(), name="fcm-relay-consumer")
        self._task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"relay_consumer_stopped: {exc}", extra={"extra": {
                "event": "relay_consumer_stopped",
            }}, exc_info=exc)

    async def wait(self):
        if self._task is not None:
            await self._task

    async def stop(self):
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._release()
        logger.info("relay_stopped", extra={"extra": {"event": "relay_stopped"}})

    async def _release(self):
        # Cada recurso se libera aunque falle el anterior
        try:
            await self.broker.close()
        finally:
            try:
                if self.dispatcher is not None:
                    await self.dispatcher.aclose()
            finally:
                dispose_engine()
