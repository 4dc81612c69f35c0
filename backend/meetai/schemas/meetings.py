from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from meetai.models.meeting import MeetingStatus


class MeetingCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    agent_id: str = Field(..., min_length=1)


class MeetingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    name: str
    agent_id: str
    status: MeetingStatus
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    transcript_url: Optional[str] = None
    recording_url: Optional[str] = None
    summary: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class MeetingUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    agent_id: Optional[str] = None
