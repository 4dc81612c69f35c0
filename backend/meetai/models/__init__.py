from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Import ORM models so that their tables are registered on Base.metadata.
from meetai.models.agent import Agent  # noqa: E402
from meetai.models.meeting import Meeting, MeetingStatus  # noqa: E402

__all__ = ["Agent", "Base", "Meeting", "MeetingStatus"]
