"""
This module defines the Pydantic models for the event payloads published on
the application's event bus.
"""
from pydantic import BaseModel, Field

from livestream.schemas.stream import StreamState

class EventPayload(BaseModel):
    """Base model for all event payloads."""
    timestamp: float = Field(..., description="The unix timestamp when the event was generated.")

class FrameReceivedPayload(EventPayload):
    """Payload for FRAME_RECEIVED: one encoded frame exactly as the camera produced it."""
    frame_data: bytes
    sequence: int

class StreamStateChangedPayload(EventPayload):
    """Payload for STREAM_STATE_CHANGED."""
    previous: StreamState
    current: StreamState
