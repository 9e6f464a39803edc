from typing import Optional

from fastapi import FastAPI
from sqlalchemy import text

from fcm_relay import settings
from fcm_relay.database import get_engine
from fcm_relay.observability import init_logging, CorrelationIdASGIMiddleware
from fcm_relay.resilience import get_snapshot
from fcm_relay.service import RelayService

SERVICE_NAME = settings.SERVICE_NAME

logger = init_logging(service_name=SERVICE_NAME, level=settings.LOG_LEVEL)

app = FastAPI(title=SERVICE_NAME, version="1.0.0")

app.add_middleware(CorrelationIdASGIMiddleware, logger=logger, header_name="x-correlation-id")

_relay: Optional[RelayService] = None

@app.on_event("startup")
async def on_startup():
    global _relay
    # Un fallo de conexión al broker aborta el arranque
    _relay = RelayService()
    await _relay.start()
    logger.info("relay_started", extra={"extra": {
        "event": "relay_started",
        "queue": settings.NOTIFICATION_QUEUE,
        "exchange": settings.DONE_EXCHANGE,
        "mock": _relay.dispatcher.mock,
    }})

@app.on_event("shutdown")
async def on_shutdown():
    global _relay
    if _relay is not None:
        await _relay.stop()
        _relay = None

@app.get("/health")
def health():
    return {"status": "healthy", "service": SERVICE_NAME}

@app.get("/live")
def live():
    return {"ok": True, "service": SERVICE_NAME}

@app.get("/resilience")
def resilience_snapshot():
    return {
        "service": SERVICE_NAME,
        "queue": settings.NOTIFICATION_QUEUE,
        "exchange": settings.DONE_EXCHANGE,
        "snapshot": get_snapshot(),
    }

@app.get("/diag")
def diag():
    broker_ok = _relay is not None and _relay.broker.is_connected()
    consumer_ok = _relay is not None and _relay.running

    db_ok, db_err = True, None
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        db_ok, db_err = False, str(e)

    return {
        "service": SERVICE_NAME,
        "dependencies": {
            "broker_ok": broker_ok,
            "consumer_ok": consumer_ok,
            "db_ok": db_ok, "db_error": db_err,
            "fcm_mock": _relay.dispatcher.mock if _relay and _relay.dispatcher else None,
        },
        "snapshot": get_snapshot(),
    }
