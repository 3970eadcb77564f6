"""Ticket-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from tokenline.models.token import TokenStatus


class TicketOut(BaseModel):
    """Summary of an issued ticket returned by the API."""

    id: int
    queue_id: int
    seq: int
    status: TokenStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ActiveTicketOut(TicketOut):
    """The caller's current ticket with its place in line."""

    position: int | None = Field(None, description="1-based position while waiting")


class TicketStatusUpdate(BaseModel):
    """Schema for changing a ticket's status."""

    status: TokenStatus = Field(..., description="Target status")


class TicketPositionOut(BaseModel):
    """Position of a ticket among the waiting tickets of its queue."""

    ticket_id: int
    queue_id: int
    status: TokenStatus
    position: int | None
