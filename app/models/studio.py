from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class StudioImage(BaseModel):
    """A generated studio portrait stored on disk."""

    studio_id: str = Field(..., pattern=r"^studio_[0-9a-f\-]{36}$")
    filename: str
    created_at: datetime


class StudioResponse(BaseModel):
    studio_id: str
    cdn_url: str
    pose_id: str
    created_at: int  # epoch milliseconds
    ttl: int  # seconds
