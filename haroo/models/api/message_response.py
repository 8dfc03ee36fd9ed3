# haroo/models/api/message_response.py
from pydantic import BaseModel

from haroo.models.domain.message_domain import Message


class TodayMessageResponse(BaseModel):
    message: Message | None = None
