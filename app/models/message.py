from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

class MessageDirection(str, Enum):
    RECEIVED = "received"
    SENT = "sent"

class InboundMessage(BaseModel):
    user_id: str
    text: str = ""
    message_id: Optional[str] = None

class HistoryEntry(BaseModel):
    direction: MessageDirection
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)

    @classmethod
    def received(cls, content: str) -> "HistoryEntry":
        return cls(direction=MessageDirection.RECEIVED, content=content)

    @classmethod
    def sent(cls, content: str) -> "HistoryEntry":
        return cls(direction=MessageDirection.SENT, content=content)
