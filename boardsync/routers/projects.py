from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boardsync.activity import write_activity
from boardsync.deps import get_current_user, get_db, require_org_role
from boardsync.models import Board, Column, Project, User
from boardsync.schemas import ProjectCreateIn, ProjectOut

router = APIRouter(tags=["projects"])

DEFAULT_COLUMNS = [
  ("To Do", "#6b7280"),
  ("In Progress", "#3b82f6"),
  ("Review", "#f59e0b"),
  ("Done", "#10b981"),
]


def _project_out(p: Project, board_ids: list[str]) -> ProjectOut:
  return ProjectOut(
    id=p.id,
    organizationId=p.organization_id,
    name=p.name,
    description=p.description,
    color=p.color,
    boardIds=board_ids,
  )


async def create_board_with_columns(db: AsyncSession, *, project_id: str, name: str, position: int) -> Board:
  b = Board(project_id=project_id, name=name, position=position)
  db.add(b)
  await db.flush()
  for idx, (col_name, color) in enumerate(DEFAULT_COLUMNS):
    db.add(Column(board_id=b.id, name=col_name, color=color, position=idx))
  return b


@router.post("/organizations/{organization_id}/projects", response_model=ProjectOut)
async def create_project(
  organization_id: str,
  payload: ProjectCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ProjectOut:
  await require_org_role(organization_id, "member", user.id, db)
  p = Project(organization_id=organization_id, name=payload.name.strip(), description=payload.description, color=payload.color)
  db.add(p)
  await db.flush()
  b = await create_board_with_columns(db, project_id=p.id, name="Main Board", position=0)
  await write_activity(
    db,
    event_type="project.created",
    entity_type="Project",
    entity_id=p.id,
    organization_id=organization_id,
    board_id=b.id,
    actor_id=user.id,
    payload={"name": p.name},
  )
  await db.commit()
  return _project_out(p, [b.id])


@router.get("/organizations/{organization_id}/projects", response_model=list[ProjectOut])
async def list_projects(
  organization_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
) -> list[ProjectOut]:
  await require_org_role(organization_id, "viewer", user.id, db)
  res = await db.execute(select(Project).where(Project.organization_id == organization_id).order_by(Project.created_at.asc()))
  projects = list(res.scalars().all())
  board_ids: dict[str, list[str]] = {}
  if projects:
    bres = await db.execute(
      select(Board.project_id, Board.id).where(Board.project_id.in_([p.id for p in projects])).order_by(Board.position.asc())
    )
    for project_id, board_id in bres.all():
      board_ids.setdefault(project_id, []).append(board_id)
  return [_project_out(p, board_ids.get(p.id, [])) for p in projects]
