import asyncio
import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from fcm_relay.models import FcmJob
from fcm_relay.results import Recorded, StoreFailed, StoreResult

logger = logging.getLogger(__name__)


class RecordStore:
    """Append-only store of delivery records (``fcm_job`` rows)."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _insert(self, identifier: str, deliver_at: datetime) -> FcmJob:
        db: Session = self.session_factory()
        try:
            job = FcmJob(identifier=identifier, deliver_at=deliver_at)
            db.add(job)
            db.commit()
            db.refresh(job)
            return job
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    async def save(self, identifier: str, deliver_at: datetime) -> StoreResult:
        try:
            job = await asyncio.to_thread(self._insert, identifier, deliver_at)
        except SQLAlchemyError as e:
            return StoreFailed.from_exc(e)
        logger.debug("fcm_job_inserted", extra={"extra": {
            "event": "fcm_job_inserted", "job_id": job.id,
        }})
        return Recorded(identifier=identifier, deliver_at=deliver_at)
