import math
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

# 0.001 degree is roughly 111m
GRID_SIZE = 0.001


class ToneTag(str, Enum):
    HAPPY = "happy"
    FEAR = "fear"
    ANGER = "anger"
    MONOLOGUE = "monologue"
    REVIEW = "review"
    COMFORT = "comfort"
    OTHER = "other"


class TraceStatus(str, Enum):
    ACTIVE = "ACTIVE"
    HIDDEN = "HIDDEN"
    REMOVED = "REMOVED"


class WritePermission(str, Enum):
    FREE_AVAILABLE = "FREE_AVAILABLE"
    FREE_USED = "FREE_USED"
    PAID_AVAILABLE = "PAID_AVAILABLE"
    DENIED_COOLDOWN = "DENIED_COOLDOWN"


class PassTier(str, Enum):
    SINGLE = "single"
    THREE_DAY = "threeDay"


class GridCell(BaseModel):
    x: int
    y: int

    @classmethod
    def from_location(cls, lat: float, lng: float) -> "GridCell":
        return cls(x=math.floor(lat / GRID_SIZE), y=math.floor(lng / GRID_SIZE))


class Location(BaseModel):
    lat: float
    lng: float


class PermissionDecision(BaseModel):
    state: WritePermission
    next_available_at: datetime | None = None
    effective_daily_count: int = 0

    @property
    def allowed(self) -> bool:
        return self.state in (WritePermission.FREE_AVAILABLE, WritePermission.PAID_AVAILABLE)


class Trace(BaseModel):
    id: str
    author_id: str
    content: str
    tone_tag: ToneTag
    location: Location
    grid: GridCell
    status: TraceStatus = TraceStatus.ACTIVE
    like_count: int = 0
    liked_by: set[str] = Field(default_factory=set)
    report_score: float = 0.0
    created_at: datetime
    expires_at: datetime


class TraceView(BaseModel):
    """Trace as shown to a viewer; the author id itself is never exposed."""

    id: str
    content: str
    tone_tag: ToneTag
    location: Location
    grid: GridCell
    like_count: int
    created_at: datetime
    expires_at: datetime
    is_liked: bool = False
    is_mine: bool = False

    @classmethod
    def build(cls, trace: Trace, viewer_id: str, is_liked: bool) -> "TraceView":
        return cls(
            id=trace.id,
            content=trace.content,
            tone_tag=trace.tone_tag,
            location=trace.location,
            grid=trace.grid,
            like_count=trace.like_count,
            created_at=trace.created_at,
            expires_at=trace.expires_at,
            is_liked=is_liked,
            is_mine=trace.author_id == viewer_id,
        )


class TracePage(BaseModel):
    grid: GridCell
    page: int
    page_size: int
    traces: list[TraceView]

    @property
    def count(self) -> int:
        return len(self.traces)

    @property
    def grid_status(self) -> str:
        return "HAS_MESSAGES" if self.traces else "EMPTY"
