"""Tagged outcomes for each pipeline step and the per-message stage machine."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class Stage(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    REJECTED = "rejected"
    ACKNOWLEDGED = "acknowledged"
    ACK_FAILED = "ack_failed"
    DISPATCHING = "dispatching"
    DISPATCHED = "dispatched"
    DISPATCH_FAILED = "dispatch_failed"
    RECORDING = "recording"
    RECORDED = "recorded"
    RECORD_FAILED = "record_failed"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    PUBLISH_FAILED = "publish_failed"
    DONE = "done"


@dataclass(frozen=True)
class Delivered:
    pass


@dataclass(frozen=True)
class _Failure:
    """A failed step: ``cause`` for the log line, ``exc`` when one was raised."""
    cause: str
    exc: Optional[BaseException] = None

    @classmethod
    def from_exc(cls, exc: BaseException):
        return cls(f"{type(exc).__name__}: {exc}", exc)


@dataclass(frozen=True)
class DispatchFailed(_Failure):
    pass


@dataclass(frozen=True)
class Recorded:
    identifier: str
    deliver_at: datetime


@dataclass(frozen=True)
class StoreFailed(_Failure):
    pass


@dataclass(frozen=True)
class Published:
    identifier: str
    deliver_at: datetime


@dataclass(frozen=True)
class PublishFailed(_Failure):
    pass


DispatchResult = Union[Delivered, DispatchFailed]
StoreResult = Union[Recorded, StoreFailed]
PublishResult = Union[Published, PublishFailed]


@dataclass(frozen=True)
class PassOutcome:
    """How far a single message got through the pipeline.

    ``identifier`` is None when the payload was rejected before a request
    could be read from it.
    """
    stage: Stage
    acknowledged: bool
    identifier: Optional[str] = None
    cause: Optional[str] = None
    exc: Optional[BaseException] = None
