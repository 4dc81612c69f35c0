from typing import Any, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from meetai.core.db import get_db
from meetai.core.errors import NotFoundError
from meetai.deps import require_api_key
from meetai.models import Agent, Meeting
from meetai.schemas.agents import AgentCreate, AgentRead, AgentUpdate
from meetai.services.avatar import avatar_uri

router = APIRouter(prefix="/v1/agents", tags=["agents"], dependencies=[Depends(require_api_key)])


def _read(agent: Agent, meeting_count: int = 0) -> AgentRead:
    out = AgentRead.model_validate(agent)
    out.avatar_url = avatar_uri(agent.name, "botttsNeutral")
    out.meeting_count = meeting_count
    return out


def _get_or_404(db: Session, agent_id: str) -> Agent:
    agent = db.get(Agent, agent_id)
    if not agent:
        raise NotFoundError("Agent not found")
    return agent


@router.post("", response_model=AgentRead, status_code=status.HTTP_201_CREATED)
def create_agent(payload: AgentCreate, response: Response, db: Session = Depends(get_db)):
    agent = Agent(name=payload.name, instructions=payload.instructions)
    db.add(agent)
    db.commit()
    db.refresh(agent)
    response.headers["Location"] = f"/v1/agents/{agent.id}"
    return _read(agent)


# List with pagination + optional name search
@router.get("", response_model=dict[str, Any], summary="List Agents")
def list_agents(
    response: Response,
    db: Session = Depends(get_db),
    limit: int = 20,  # 1..100
    offset: int = 0,  # >=0
    search: Optional[str] = None,
):
    limit = min(max(limit, 1), 100)
    offset = max(offset, 0)

    q = select(Agent)
    if search:
        q = q.where(Agent.name.ilike(f"%{search}%"))

    total = db.scalar(select(func.count()).select_from(q.subquery())) or 0
    agents = db.scalars(q.order_by(Agent.created_at.desc(), Agent.id.desc()).limit(limit).offset(offset)).all()

    counts: dict[str, int] = {}
    if agents:
        rows = db.execute(
            select(Meeting.agent_id, func.count(Meeting.id))
            .where(Meeting.agent_id.in_([a.id for a in agents]))
            .group_by(Meeting.agent_id)
        ).all()
        counts = {agent_id: n for agent_id, n in rows}

    items = [_read(a, counts.get(a.id, 0)).model_dump(mode="json") for a in agents]
    response.headers["X-Total-Count"] = str(total)
    return {"items": items, "total": total}


@router.get("/{agent_id}", response_model=AgentRead)
def get_agent(agent_id: str, db: Session = Depends(get_db)):
    agent = _get_or_404(db, agent_id)
    count = db.scalar(select(func.count(Meeting.id)).where(Meeting.agent_id == agent_id)) or 0
    return _read(agent, count)


@router.patch("/{agent_id}", response_model=AgentRead)
def update_agent(agent_id: str, payload: AgentUpdate, db: Session = Depends(get_db)):
    agent = _get_or_404(db, agent_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(agent, field, value)
    db.commit()
    db.refresh(agent)
    return _read(agent)


@router.delete("/{agent_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_agent(agent_id: str, db: Session = Depends(get_db)):
    agent = _get_or_404(db, agent_id)
    # SQLite does not enforce ON DELETE CASCADE without a pragma
    db.execute(delete(Meeting).where(Meeting.agent_id == agent_id))
    db.delete(agent)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
