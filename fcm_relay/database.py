from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from fcm_relay.settings import DB_URL, DB_CONNECT_TIMEOUT

Base = declarative_base()

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _connect_args(url: str) -> dict:
    # connect_timeout solo aplica a psycopg2
    if url.startswith("postgresql"):
        return {"connect_timeout": DB_CONNECT_TIMEOUT}
    return {}


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_engine(
            DB_URL,
            pool_pre_ping=True,
            connect_args=_connect_args(DB_URL),
        )
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), autoflush=False, autocommit=False)
    return _session_factory


def init_db(engine: Optional[Engine] = None):
    from fcm_relay.models import FcmJob  # noqa: F401  registra la tabla
    Base.metadata.create_all(bind=engine or get_engine())


def dispose_engine():
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
