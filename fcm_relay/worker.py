"""
Worker sin HTTP: solo consume notification.fcm y publica en notification.done.

    python -m fcm_relay.worker
"""
import asyncio
import signal

from fcm_relay import settings
from fcm_relay.observability import init_logging
from fcm_relay.service import RelayService

logger = init_logging(service_name=settings.SERVICE_NAME, level=settings.LOG_LEVEL)


async def main():
    relay = RelayService()
    await relay.start()

    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info("worker_started", extra={"extra": {"event": "worker_started"}})
    tasks = {asyncio.create_task(relay.wait()), asyncio.create_task(stop.wait())}
    try:
        _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
    finally:
        await relay.stop()
        logger.info("worker_stopped", extra={"extra": {"event": "worker_stopped"}})


if __name__ == "__main__":
    asyncio.run(main())
