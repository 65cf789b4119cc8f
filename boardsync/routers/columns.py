from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from boardsync.activity import write_activity
from boardsync.deps import get_column, get_current_user, get_db, require_board_access
from boardsync.errors import ValidationError
from boardsync.models import Column, Task, User
from boardsync.ordering import resequence
from boardsync.schemas import ColumnCreateIn, ColumnOut, ColumnReorderIn, ColumnUpdateIn

router = APIRouter(tags=["columns"])


def _column_out(c: Column) -> ColumnOut:
  return ColumnOut(id=c.id, boardId=c.board_id, name=c.name, color=c.color, position=c.position)


async def _board_columns(board_id: str, db: AsyncSession) -> list[Column]:
  res = await db.execute(select(Column).where(Column.board_id == board_id).order_by(Column.position.asc()))
  return list(res.scalars().all())


@router.post("/boards/{board_id}/columns", response_model=ColumnOut)
async def create_column(
  board_id: str,
  payload: ColumnCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ColumnOut:
  org_id = await require_board_access(board_id, "member", user.id, db)
  res = await db.execute(select(func.max(Column.position)).where(Column.board_id == board_id))
  max_pos = res.scalar_one()
  c = Column(
    board_id=board_id,
    name=payload.name.strip(),
    color=payload.color or "#6b7280",
    position=(max_pos + 1) if max_pos is not None else 0,
  )
  db.add(c)
  await db.flush()
  await write_activity(
    db,
    event_type="column.created",
    entity_type="Column",
    entity_id=c.id,
    organization_id=org_id,
    board_id=board_id,
    actor_id=user.id,
    payload={"name": c.name},
  )
  await db.commit()
  return _column_out(c)


@router.patch("/columns/{column_id}", response_model=ColumnOut)
async def update_column(
  column_id: str, payload: ColumnUpdateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
) -> ColumnOut:
  c = await get_column(column_id, db)
  org_id = await require_board_access(c.board_id, "member", user.id, db)
  if payload.name is not None:
    c.name = payload.name.strip()
  if payload.color is not None:
    c.color = payload.color
  await write_activity(
    db,
    event_type="column.updated",
    entity_type="Column",
    entity_id=c.id,
    organization_id=org_id,
    board_id=c.board_id,
    actor_id=user.id,
    payload={"name": c.name, "color": c.color},
  )
  await db.commit()
  return _column_out(c)


@router.delete("/columns/{column_id}")
async def delete_column(column_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  c = await get_column(column_id, db)
  board_id, name = c.board_id, c.name
  org_id = await require_board_access(board_id, "member", user.id, db)

  tres = await db.execute(select(func.count()).select_from(Task).where(Task.column_id == column_id))
  if (tres.scalar_one() or 0) > 0:
    raise ValidationError("Column has tasks; move them first")

  await db.execute(delete(Column).where(Column.id == column_id))
  resequence(await _board_columns(board_id, db))
  await write_activity(
    db,
    event_type="column.deleted",
    entity_type="Column",
    entity_id=column_id,
    organization_id=org_id,
    board_id=board_id,
    actor_id=user.id,
    payload={"name": name},
  )
  await db.commit()
  return {"ok": True}


@router.post("/boards/{board_id}/columns/reorder")
async def reorder_columns(
  board_id: str,
  payload: ColumnReorderIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  org_id = await require_board_access(board_id, "member", user.id, db)
  columns = {c.id: c for c in await _board_columns(board_id, db)}
  if len(payload.columnIds) != len(columns) or set(payload.columnIds) != set(columns):
    raise ValidationError("columnIds must include all columns")
  resequence([columns[cid] for cid in payload.columnIds])
  await write_activity(
    db,
    event_type="columns.reordered",
    entity_type="Board",
    entity_id=board_id,
    organization_id=org_id,
    board_id=board_id,
    actor_id=user.id,
    payload={"columnIds": payload.columnIds},
  )
  await db.commit()
  return {"ok": True}
