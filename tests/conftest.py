import json
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fcm_relay import resilience
from fcm_relay.database import init_db


class FakeMessage:
    """Stand-in for an aio_pika incoming message."""

    def __init__(self, body, fail_ack: bool = False, log=None):
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode()
        self.body = body
        self.ack_count = 0
        self.fail_ack = fail_ack
        self.log = log

    async def ack(self, multiple: bool = False):
        if self.log is not None:
            self.log.append("ack")
        if self.fail_ack:
            raise ConnectionError("channel closed")
        self.ack_count += 1


FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_resilience():
    resilience.reset()
    yield
    resilience.reset()


@pytest.fixture
def sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    init_db(sqlite_engine)
    return sessionmaker(bind=sqlite_engine, autoflush=False, autocommit=False)


@pytest.fixture
def valid_payload():
    return {"identifier": "n1", "type": "alert", "deviceId": "dev-1", "text": "hello"}
