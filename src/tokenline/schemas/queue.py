"""Queue-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class QueueCreate(BaseModel):
    """Schema for creating a queue."""

    name: str = Field(..., min_length=1, max_length=120, description="Service name")
    location: str = Field(..., min_length=1, max_length=120, description="Physical location")


class QueueOut(BaseModel):
    """Schema for queue information returned by the API."""

    id: int
    name: str
    location: str
    is_active: bool
    next_sequence: int
    operator_id: int | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class QueueStatusOut(BaseModel):
    """Live status of a queue."""

    queue_id: int
    is_active: bool
    next_sequence: int
    waiting_count: int
    now_serving_ticket_id: int | None
    now_serving_seq: int | None

    model_config = ConfigDict(from_attributes=True)
