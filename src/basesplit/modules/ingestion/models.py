from __future__ import annotations

import enum
import uuid

from sqlalchemy import Enum, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from basesplit.core.models import Base, Timestamped


class ProcessedEventStatus(str, enum.Enum):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    IGNORED = "IGNORED"


class ProcessedEvent(Timestamped, Base):
    __tablename__ = "ingestion_processed_event"

    event_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    conversation_id: Mapped[str] = mapped_column(String(255), index=True)
    content_kind: Mapped[str] = mapped_column(String(100))

    status: Mapped[ProcessedEventStatus] = mapped_column(
        Enum(ProcessedEventStatus, native_enum=False), index=True
    )
    bill_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bills.id", ondelete="SET NULL"), nullable=True
    )
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=1)
