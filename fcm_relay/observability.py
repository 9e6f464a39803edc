"""JSON logs for the relay.

Every line carries the ``identifier`` of the notification being relayed (or
the HTTP correlation id on the diagnostic endpoints) and, when the caller
passes them, the pipeline ``event`` and ``stage`` as top-level keys.
"""
import contextvars
import json
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

_identifier: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("identifier", default=None)

# Claves que van arriba del todo en cada línea
_TOP_LEVEL = ("event", "stage", "identifier")

_NOISY_LOGGERS = ("aiormq", "aio_pika", "httpx", "httpcore")


def _scalar(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool, type(None))):
        return value
    return str(value)


class JsonFormatter(logging.Formatter):
    def __init__(self, service: str):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        extra: Dict[str, Any] = dict(getattr(record, "extra", None) or {})
        line: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
        }
        for key in _TOP_LEVEL:
            value = extra.pop(key, None)
            if value is not None:
                line[key] = _scalar(value)
        if "identifier" not in line and _identifier.get():
            line["identifier"] = _identifier.get()
        line["message"] = record.getMessage()
        line.update({k: _scalar(v) for k, v in extra.items()})
        if record.exc_info:
            line["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False)


def init_logging(service_name: str, level: str = "INFO") -> logging.Logger:
    root = logging.getLogger()
    root.handlers = []
    h = logging.StreamHandler()
    h.setFormatter(JsonFormatter(service_name))
    root.addHandler(h)
    root.setLevel(level.upper())
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logging.getLogger(service_name)


@contextmanager
def message_context(identifier: Optional[str]) -> Iterator[None]:
    """Tag every log line emitted inside the block with ``identifier``."""
    token = _identifier.set(identifier)
    try:
        yield
    finally:
        _identifier.reset(token)


def current_identifier() -> Optional[str]:
    return _identifier.get()


class CorrelationIdASGIMiddleware:
    """Echo (or mint) ``x-correlation-id`` and log it for /diag and /resilience calls."""

    def __init__(self, app: ASGIApp, logger: logging.Logger, header_name: str = "x-correlation-id"):
        self.app = app
        self.logger = logger
        self.header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        cid = Headers(scope=scope).get(self.header_name) or str(uuid.uuid4())

        async def send_with_header(message):
            if message["type"] == "http.response.start":
                message["headers"] = list(message.get("headers", [])) + [
                    (self.header_name.encode(), cid.encode())
                ]
                self.logger.debug("http_request", extra={"extra": {
                    "event": "http_request",
                    "http.path": scope.get("path"),
                    "http.status_code": message.get("status"),
                }})
            await send(message)

        with message_context(cid):
            await self.app(scope, receive, send_with_header)
