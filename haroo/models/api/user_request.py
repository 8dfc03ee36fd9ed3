# haroo/models/api/user_request.py
from pydantic import BaseModel, Field


class BlockUserRequest(BaseModel):
    target_id: str = Field(..., min_length=1)


class PushTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=4096)
