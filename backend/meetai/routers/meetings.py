from typing import Any, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from meetai.core.db import get_db
from meetai.core.errors import ConflictError, NotFoundError
from meetai.deps import require_api_key
from meetai.models import Agent, Meeting, MeetingStatus
from meetai.schemas.meetings import MeetingCreate, MeetingRead, MeetingUpdate

router = APIRouter(prefix="/v1/meetings", tags=["meetings"], dependencies=[Depends(require_api_key)])


def _get_or_404(db: Session, meeting_id: str) -> Meeting:
    m = db.get(Meeting, meeting_id)
    if not m:
        raise NotFoundError("Meeting not found")
    return m


def _require_agent(db: Session, agent_id: str) -> None:
    if db.get(Agent, agent_id) is None:
        raise NotFoundError("Agent not found")


@router.post("", response_model=MeetingRead, status_code=status.HTTP_201_CREATED)
def create_meeting(payload: MeetingCreate, response: Response, db: Session = Depends(get_db)):
    _require_agent(db, payload.agent_id)
    m = Meeting(name=payload.name, agent_id=payload.agent_id, status=MeetingStatus.upcoming.value)
    db.add(m)
    db.commit()
    db.refresh(m)
    response.headers["Location"] = f"/v1/meetings/{m.id}"
    return m


# List with pagination + optional status / agent filter
@router.get("", response_model=dict[str, Any], summary="List Meetings")
def list_meetings(
    response: Response,
    db: Session = Depends(get_db),
    limit: int = 20,  # 1..100
    offset: int = 0,  # >=0
    status: Optional[MeetingStatus] = None,
    agent_id: Optional[str] = None,
    search: Optional[str] = None,
):
    limit = min(max(limit, 1), 100)
    offset = max(offset, 0)

    q = select(Meeting)
    if status:
        q = q.where(Meeting.status == status.value)
    if agent_id:
        q = q.where(Meeting.agent_id == agent_id)
    if search:
        q = q.where(Meeting.name.ilike(f"%{search}%"))

    total = db.scalar(select(func.count()).select_from(q.subquery())) or 0
    items_orm = db.scalars(
        q.order_by(Meeting.created_at.desc(), Meeting.id.desc()).limit(limit).offset(offset)
    ).all()
    items = [MeetingRead.model_validate(m).model_dump(mode="json") for m in items_orm]
    response.headers["X-Total-Count"] = str(total)
    return {"items": items, "total": total}


@router.get("/{meeting_id}", response_model=MeetingRead)
def get_meeting(meeting_id: str, db: Session = Depends(get_db)):
    return _get_or_404(db, meeting_id)


@router.patch("/{meeting_id}", response_model=MeetingRead)
def update_meeting(meeting_id: str, payload: MeetingUpdate, db: Session = Depends(get_db)):
    m = _get_or_404(db, meeting_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("agent_id"):
        _require_agent(db, changes["agent_id"])
    for field, value in changes.items():
        if value is not None:
            setattr(m, field, value)
    db.commit()
    db.refresh(m)
    return m


@router.post("/{meeting_id}/cancel", response_model=MeetingRead)
def cancel_meeting(meeting_id: str, db: Session = Depends(get_db)):
    """Only an upcoming meeting can be cancelled."""
    _get_or_404(db, meeting_id)
    result = db.execute(
        update(Meeting)
        .where(Meeting.id == meeting_id, Meeting.status == MeetingStatus.upcoming.value)
        .values(status=MeetingStatus.cancelled.value)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount == 0:
        raise ConflictError("Only upcoming meetings can be cancelled")
    m = _get_or_404(db, meeting_id)
    db.refresh(m)
    return m


@router.delete("/{meeting_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_meeting(meeting_id: str, db: Session = Depends(get_db)):
    m = _get_or_404(db, meeting_id)
    db.delete(m)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
