from pydantic import BaseModel, ConfigDict, Field, JsonValue
from datetime import datetime, timezone
from models.common import CamelModel

MAX_BATCH_SIZE = 500


class ExperimentEvent(CamelModel):
    """One user interaction recorded against an experiment variant.

    `timestamp` stays the raw ISO-8601 string from the event store; it is only
    parsed when the report buckets events by day.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    experiment_id: str
    variant_id: str
    user_id: str
    session_id: str | None = None
    action: str
    metadata: dict[str, JsonValue] = Field(default_factory=dict)
    timestamp: str


class EventCreate(BaseModel):
    """Schema for recording a new event via POST /events."""
    experiment_id: str = Field(..., min_length=1)
    variant_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    session_id: str | None = None
    action: str = Field(..., min_length=1, description="Action label (e.g., 'PAGE_VIEW', 'CONVERSION').")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, JsonValue] = Field(default_factory=dict, description="Flexible JSON for extra context.")

class BatchEventCreate(EventCreate):
    """One event of POST /events/batch, where the session id is required."""
    session_id: str = Field(..., min_length=1)

class EventBatchCreate(BaseModel):
    events: list[BatchEventCreate] = Field(..., min_length=1, max_length=MAX_BATCH_SIZE)

class EventResponse(BaseModel):
    """Schema for the response after recording an event."""
    status: str
    task_id: str

class EventBatchResponse(EventResponse):
    count: int
