from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from boardsync.activity import write_activity
from boardsync.deps import get_current_user, get_db, require_board_access, require_org_role
from boardsync.errors import NotFoundError
from boardsync.models import Activity, Board, Column, Project, Task, User
from boardsync.routers.projects import create_board_with_columns
from boardsync.routers.tasks import task_outs
from boardsync.schemas import ActivityOut, BoardCreateIn, BoardOut, ColumnOut

router = APIRouter(tags=["boards"])


async def load_board(board_id: str, organization_id: str, db: AsyncSession) -> BoardOut:
  res = await db.execute(select(Board).where(Board.id == board_id))
  b = res.scalar_one_or_none()
  if not b:
    raise NotFoundError("Board not found")
  cres = await db.execute(select(Column).where(Column.board_id == board_id).order_by(Column.position.asc()))
  columns = list(cres.scalars().all())
  tasks_by_column: dict[str, list[Task]] = {c.id: [] for c in columns}
  if columns:
    tres = await db.execute(
      select(Task).where(Task.column_id.in_(list(tasks_by_column))).order_by(Task.position.asc(), Task.created_at.asc())
    )
    for t in tres.scalars().all():
      tasks_by_column[t.column_id].append(t)

  outs = []
  for c in columns:
    outs.append(
      ColumnOut(
        id=c.id,
        boardId=c.board_id,
        name=c.name,
        color=c.color,
        position=c.position,
        tasks=await task_outs(db, tasks_by_column[c.id], board_id),
      )
    )
  return BoardOut(id=b.id, projectId=b.project_id, organizationId=organization_id, name=b.name, position=b.position, columns=outs)


@router.get("/boards/{board_id}", response_model=BoardOut)
async def get_board(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardOut:
  org_id = await require_board_access(board_id, "viewer", user.id, db)
  return await load_board(board_id, org_id, db)


@router.post("/projects/{project_id}/boards", response_model=BoardOut)
async def create_board(
  project_id: str,
  payload: BoardCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> BoardOut:
  res = await db.execute(select(Project).where(Project.id == project_id))
  p = res.scalar_one_or_none()
  if not p:
    raise NotFoundError("Project not found")
  await require_org_role(p.organization_id, "member", user.id, db)

  pres = await db.execute(select(func.max(Board.position)).where(Board.project_id == project_id))
  max_pos = pres.scalar_one()
  b = await create_board_with_columns(
    db, project_id=project_id, name=payload.name.strip(), position=(max_pos + 1) if max_pos is not None else 0
  )
  await write_activity(
    db,
    event_type="board.created",
    entity_type="Board",
    entity_id=b.id,
    organization_id=p.organization_id,
    board_id=b.id,
    actor_id=user.id,
    payload={"name": b.name},
  )
  await db.commit()
  return await load_board(b.id, p.organization_id, db)


@router.get("/boards/{board_id}/activities", response_model=list[ActivityOut])
async def list_activities(
  board_id: str,
  limit: int = 50,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[ActivityOut]:
  await require_board_access(board_id, "viewer", user.id, db)
  limit = max(1, min(int(limit), 200))
  res = await db.execute(
    select(Activity).where(Activity.board_id == board_id).order_by(Activity.created_at.desc()).limit(limit)
  )
  return [
    ActivityOut(
      id=a.id,
      eventType=a.event_type,
      entityType=a.entity_type,
      entityId=a.entity_id,
      taskId=a.task_id,
      actorId=a.actor_id,
      payload=a.payload or {},
      createdAt=a.created_at,
    )
    for a in res.scalars().all()
  ]
