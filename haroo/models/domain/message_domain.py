from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel


class MessageStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


class Message(BaseModel):
    """The single daily message a participant sends within a connection."""

    id: str
    connection_id: str
    sender_id: str
    content: str
    is_read: bool = False
    status: MessageStatus = MessageStatus.ACTIVE
    sent_at: datetime
    sent_day: date
    expires_at: datetime
