from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_serializer
from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from fcm_relay.database import Base


def format_deliver_at(value: datetime) -> str:
    """ISO-8601 in UTC with milliseconds and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# SQLAlchemy model
class FcmJob(Base):
    __tablename__ = "fcm_job"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    deliver_at: Mapped[datetime] = mapped_column("deliverAt", DateTime(timezone=True), nullable=False)


# Pydantic models

class NotificationRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    identifier: StrictStr = Field(min_length=1)
    type: StrictStr = Field(min_length=1)
    device_id: StrictStr = Field(min_length=1, alias="deviceId")
    text: StrictStr = Field(min_length=1)


class CompletionEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    identifier: str
    deliver_at: datetime = Field(alias="deliverAt")

    @field_serializer("deliver_at")
    def _serialize_deliver_at(self, value: datetime) -> str:
        return format_deliver_at(value)

    def to_body(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode()
