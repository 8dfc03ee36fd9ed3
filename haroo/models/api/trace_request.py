# haroo/models/api/trace_request.py
from pydantic import BaseModel, Field


class WriteTraceRequest(BaseModel):
    content: str
    tone_tag: str = Field(..., description="happy, fear, anger, monologue, review, comfort or other")
    lat: float
    lng: float


class ReportTraceRequest(BaseModel):
    reason: str


class MockPaymentRequest(BaseModel):
    tier: str = Field(..., description="single or threeDay")


class ModeratorRemoveRequest(BaseModel):
    reason: str | None = None
