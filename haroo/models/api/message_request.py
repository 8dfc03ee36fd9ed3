# haroo/models/api/message_request.py
from pydantic import BaseModel, Field


class SendMessageRequest(BaseModel):
    mode_id: str = Field(..., min_length=1)
    content: str
