from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from basesplit.modules.attachments.schemas import INLINE_KINDS, REMOTE_KINDS

TEXT_KINDS = frozenset({"text"})


class EventClass(str, enum.Enum):
    TEXT = "TEXT"
    ATTACHMENT = "ATTACHMENT"
    UNSUPPORTED = "UNSUPPORTED"


class OutcomeStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    IGNORED = "IGNORED"
    DUPLICATE = "DUPLICATE"


@dataclass(frozen=True)
class ChatEvent:
    event_id: str
    conversation_id: str
    sender_id: str
    content_kind: str
    payload: Any = None
    sent_at: datetime | None = None


@dataclass(frozen=True)
class IngestionOutcome:
    status: OutcomeStatus
    bill_id: uuid.UUID | None = None
    error_code: str | None = None


class MessageTransport(Protocol):
    def send(self, conversation_id: str, text: str) -> None: ...


def classify(content_kind: str) -> EventClass:
    if content_kind in INLINE_KINDS or content_kind in REMOTE_KINDS:
        return EventClass.ATTACHMENT
    if content_kind in TEXT_KINDS:
        return EventClass.TEXT
    return EventClass.UNSUPPORTED
