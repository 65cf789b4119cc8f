from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boardsync.db import SessionLocal
from boardsync.errors import ForbiddenError, NotFoundError
from boardsync.models import Board, Column, OrganizationMember, Project, Task, User
from boardsync.security import verify_token


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
  auth = request.headers.get("authorization")
  if not auth or not auth.lower().startswith("bearer "):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
  claims = verify_token(auth.split(" ", 1)[1].strip())
  if not claims:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
  res = await db.execute(select(User).where(User.id == claims["sub"]))
  u = res.scalar_one_or_none()
  if not u:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
  return u


async def require_org_role(organization_id: str, min_role: str, user_id: str, db: AsyncSession) -> str:
  # role order: viewer < member < admin < owner
  order = {"viewer": 0, "member": 1, "admin": 2, "owner": 3}
  res = await db.execute(
    select(OrganizationMember).where(
      OrganizationMember.organization_id == organization_id, OrganizationMember.user_id == user_id
    )
  )
  m = res.scalar_one_or_none()
  if not m:
    raise ForbiddenError("No organization access")
  if order.get(m.role, -1) < order.get(min_role, 0):
    raise ForbiddenError("Insufficient role")
  return m.role


async def organization_for_board(board_id: str, db: AsyncSession) -> str:
  res = await db.execute(
    select(Project.organization_id).join(Board, Board.project_id == Project.id).where(Board.id == board_id)
  )
  org_id = res.scalar_one_or_none()
  if not org_id:
    raise NotFoundError("Board not found")
  return org_id


async def get_column(column_id: str, db: AsyncSession) -> Column:
  res = await db.execute(select(Column).where(Column.id == column_id))
  c = res.scalar_one_or_none()
  if not c:
    raise NotFoundError("Column not found")
  return c


async def task_with_board(task_id: str, db: AsyncSession) -> tuple[Task, str]:
  res = await db.execute(
    select(Task, Column.board_id).join(Column, Column.id == Task.column_id).where(Task.id == task_id)
  )
  row = res.one_or_none()
  if not row:
    raise NotFoundError("Task not found")
  return row[0], row[1]


async def require_board_access(board_id: str, min_role: str, user_id: str, db: AsyncSession) -> str:
  org_id = await organization_for_board(board_id, db)
  await require_org_role(org_id, min_role, user_id, db)
  return org_id
