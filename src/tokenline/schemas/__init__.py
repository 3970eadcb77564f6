# src/tokenline/schemas/__init__.py
"""Pydantic schemas for the Tokenline API."""

from .queue import QueueCreate, QueueOut, QueueStatusOut
from .ticket import ActiveTicketOut, TicketOut, TicketPositionOut, TicketStatusUpdate

__all__ = [
    "ActiveTicketOut",
    "QueueCreate",
    "QueueOut",
    "QueueStatusOut",
    "TicketOut",
    "TicketPositionOut",
    "TicketStatusUpdate",
]
