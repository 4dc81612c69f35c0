from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from . import Base


class MeetingStatus(str, enum.Enum):
    upcoming = "upcoming"
    active = "active"
    processing = "processing"
    completed = "completed"
    cancelled = "cancelled"


# A meeting in one of these states can no longer be activated
NOT_STARTABLE = (
    MeetingStatus.completed.value,
    MeetingStatus.active.value,
    MeetingStatus.cancelled.value,
    MeetingStatus.processing.value,
)


def _new_id() -> str:
    return uuid.uuid4().hex


class Meeting(Base):
    __tablename__ = "meetings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    agent_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=MeetingStatus.upcoming.value,
        server_default=MeetingStatus.upcoming.value,
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    transcript_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recording_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_meetings_status", "status"),
        Index("ix_meetings_agent_id", "agent_id"),
    )
