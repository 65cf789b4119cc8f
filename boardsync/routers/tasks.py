from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boardsync.activity import write_activity
from boardsync.config import settings
from boardsync.deps import get_column, get_current_user, get_db, require_board_access, require_org_role, task_with_board
from boardsync.errors import ConflictError, NotFoundError, ValidationError
from boardsync.models import Attachment, Board, Column, Comment, OrganizationMember, Project, Tag, Task, TaskTag, User
from boardsync.notifications import notify_task_assigned, notify_task_commented
from boardsync.ordering import relocate, resequence
from boardsync.schemas import CommentCreateIn, CommentOut, TagOut, TaskCreateIn, TaskMoveIn, TaskOut, TaskUpdateIn

router = APIRouter(tags=["tasks"])


def _task_out(
  t: Task,
  board_id: str,
  *,
  tags: list[TagOut] | None = None,
  comments_count: int = 0,
  attachments_count: int = 0,
) -> TaskOut:
  return TaskOut(
    id=t.id,
    boardId=board_id,
    columnId=t.column_id,
    position=t.position,
    title=t.title,
    description=t.description,
    priority=t.priority,
    dueDate=t.due_date,
    assigneeId=t.assignee_id,
    creatorId=t.creator_id,
    parentId=t.parent_id,
    tags=tags or [],
    commentsCount=comments_count,
    attachmentsCount=attachments_count,
    version=t.version,
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


async def task_outs(db: AsyncSession, tasks: list[Task], board_id: str) -> list[TaskOut]:
  ids = [t.id for t in tasks]
  if not ids:
    return []
  tres = await db.execute(
    select(TaskTag.task_id, Tag).join(Tag, Tag.id == TaskTag.tag_id).where(TaskTag.task_id.in_(ids)).order_by(Tag.name.asc())
  )
  tags: dict[str, list[TagOut]] = {}
  for task_id, tag in tres.all():
    tags.setdefault(task_id, []).append(TagOut(id=tag.id, name=tag.name, color=tag.color))
  cres = await db.execute(select(Comment.task_id, func.count()).where(Comment.task_id.in_(ids)).group_by(Comment.task_id))
  comments = {k: int(v) for k, v in cres.all()}
  ares = await db.execute(select(Attachment.task_id, func.count()).where(Attachment.task_id.in_(ids)).group_by(Attachment.task_id))
  attachments = {k: int(v) for k, v in ares.all()}
  return [
    _task_out(t, board_id, tags=tags.get(t.id), comments_count=comments.get(t.id, 0), attachments_count=attachments.get(t.id, 0))
    for t in tasks
  ]


async def _one_task_out(db: AsyncSession, t: Task, board_id: str) -> TaskOut:
  return (await task_outs(db, [t], board_id))[0]


async def _column_tasks(db: AsyncSession, column_id: str) -> list[Task]:
  res = await db.execute(select(Task).where(Task.column_id == column_id).order_by(Task.position.asc(), Task.created_at.asc()))
  return list(res.scalars().all())


async def _validate_assignee(org_id: str, assignee_id: str | None, db: AsyncSession) -> None:
  if not assignee_id:
    return
  res = await db.execute(
    select(OrganizationMember.id).where(OrganizationMember.organization_id == org_id, OrganizationMember.user_id == assignee_id)
  )
  if not res.scalar_one_or_none():
    raise ValidationError("Assignee must be an organization member")


async def _validate_parent(task_id: str | None, parent_id: str | None, board_id: str, db: AsyncSession) -> None:
  # Subtasks stay on the parent's board; cycles are rejected at write time.
  if not parent_id:
    return
  if parent_id == task_id:
    raise ValidationError("Task cannot be its own parent")
  parent, parent_board_id = await task_with_board(parent_id, db)
  if parent_board_id != board_id:
    raise ValidationError("Parent task must be on the same board")
  cursor = parent
  for _ in range(int(settings.max_subtask_depth)):
    if cursor.parent_id is None:
      return
    if cursor.parent_id == task_id:
      raise ValidationError("Parent assignment would create a cycle")
    res = await db.execute(select(Task).where(Task.id == cursor.parent_id))
    cursor = res.scalar_one_or_none()
    if cursor is None:
      return
  raise ValidationError("Subtask nesting too deep")


async def _set_tags(task_id: str, tag_ids: list[str], org_id: str, db: AsyncSession) -> None:
  wanted = list(dict.fromkeys(tag_ids))
  if wanted:
    res = await db.execute(select(Tag.id).where(Tag.id.in_(wanted), Tag.organization_id == org_id))
    found = set(res.scalars().all())
    if found != set(wanted):
      raise ValidationError("Unknown tagIds")
  await db.execute(delete(TaskTag).where(TaskTag.task_id == task_id))
  for tag_id in wanted:
    db.add(TaskTag(task_id=task_id, tag_id=tag_id))


@router.post("/tasks", response_model=TaskOut)
async def create_task(payload: TaskCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  column = await get_column(payload.columnId, db)
  org_id = await require_board_access(column.board_id, "member", user.id, db)
  await _validate_assignee(org_id, payload.assigneeId, db)
  await _validate_parent(None, payload.parentId, column.board_id, db)

  res = await db.execute(select(func.max(Task.position)).where(Task.column_id == column.id))
  max_pos = res.scalar_one()
  t = Task(
    column_id=column.id,
    position=(max_pos + 1) if max_pos is not None else 0,
    title=payload.title.strip(),
    description=payload.description,
    priority=payload.priority,
    due_date=payload.dueDate,
    assignee_id=payload.assigneeId,
    creator_id=user.id,
    parent_id=payload.parentId,
    version=0,
  )
  db.add(t)
  await db.flush()
  if payload.tagIds:
    await _set_tags(t.id, payload.tagIds, org_id, db)
  await write_activity(
    db,
    event_type="task.created",
    entity_type="Task",
    entity_id=t.id,
    organization_id=org_id,
    board_id=column.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"title": t.title, "columnId": t.column_id},
  )
  notify_task_assigned(db, task=t, actor_id=user.id, actor_name=user.name)
  await db.commit()
  return await _one_task_out(db, t, column.board_id)


@router.get("/tasks/search", response_model=list[TaskOut])
async def search_tasks(
  organizationId: str,
  q: str = "",
  limit: int = 20,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[TaskOut]:
  await require_org_role(organizationId, "viewer", user.id, db)
  needle = q.strip().lower()
  if not needle:
    return []
  limit = max(1, min(int(limit), 100))
  res = await db.execute(
    select(Task, Column.board_id)
    .join(Column, Column.id == Task.column_id)
    .join(Board, Board.id == Column.board_id)
    .join(Project, Project.id == Board.project_id)
    .where(
      Project.organization_id == organizationId,
      or_(
        func.lower(Task.title).contains(needle, autoescape=True),
        func.lower(func.coalesce(Task.description, "")).contains(needle, autoescape=True),
      ),
    )
    .order_by(Task.updated_at.desc(), Task.id.asc())
    .limit(limit)
  )
  rows = res.all()
  by_board: dict[str, list[Task]] = {}
  for t, board_id in rows:
    by_board.setdefault(board_id, []).append(t)
  outs: dict[str, TaskOut] = {}
  for board_id, tasks in by_board.items():
    for out in await task_outs(db, tasks, board_id):
      outs[out.id] = out
  return [outs[t.id] for t, _ in rows]


@router.get("/tasks/{task_id}", response_model=TaskOut)
async def get_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t, board_id = await task_with_board(task_id, db)
  await require_board_access(board_id, "viewer", user.id, db)
  return await _one_task_out(db, t, board_id)


@router.patch("/tasks/{task_id}", response_model=TaskOut)
async def update_task(task_id: str, payload: TaskUpdateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t, board_id = await task_with_board(task_id, db)
  org_id = await require_board_access(board_id, "member", user.id, db)
  if payload.version is not None and t.version != payload.version:
    raise ConflictError("Version conflict", details={"version": t.version})

  fields_set = payload.model_fields_set
  if "assigneeId" in fields_set:
    await _validate_assignee(org_id, payload.assigneeId, db)
  if "parentId" in fields_set:
    await _validate_parent(t.id, payload.parentId, board_id, db)

  changed: dict = {}
  mapping = [
    ("title", "title"),
    ("description", "description"),
    ("priority", "priority"),
    ("due_date", "dueDate"),
    ("assignee_id", "assigneeId"),
    ("parent_id", "parentId"),
  ]
  for attr, key in mapping:
    if key not in fields_set:
      continue
    value = getattr(payload, key)
    if key in ("title", "priority") and value is None:
      raise ValidationError(f"{key} cannot be null")
    if getattr(t, attr) != value:
      setattr(t, attr, value)
      changed[key] = value
  if payload.tagIds is not None:
    await _set_tags(t.id, payload.tagIds, org_id, db)
    changed["tagIds"] = payload.tagIds

  t.version += 1
  await write_activity(
    db,
    event_type="task.updated",
    entity_type="Task",
    entity_id=t.id,
    organization_id=org_id,
    board_id=board_id,
    task_id=t.id,
    actor_id=user.id,
    payload=changed,
  )
  if "assigneeId" in changed:
    notify_task_assigned(db, task=t, actor_id=user.id, actor_name=user.name)
  await db.commit()
  return await _one_task_out(db, t, board_id)


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  t, board_id = await task_with_board(task_id, db)
  org_id = await require_board_access(board_id, "member", user.id, db)
  column_id = t.column_id
  title = t.title

  await db.execute(update(Task).where(Task.parent_id == task_id).values(parent_id=None))
  await db.execute(delete(TaskTag).where(TaskTag.task_id == task_id))
  await db.execute(delete(Comment).where(Comment.task_id == task_id))
  await db.execute(delete(Attachment).where(Attachment.task_id == task_id))
  await db.execute(delete(Task).where(Task.id == task_id))
  remaining = await _column_tasks(db, column_id)
  resequence(remaining)
  await write_activity(
    db,
    event_type="task.deleted",
    entity_type="Task",
    entity_id=task_id,
    organization_id=org_id,
    board_id=board_id,
    actor_id=user.id,
    payload={"title": title, "columnId": column_id},
  )
  await db.commit()
  return {"ok": True}


@router.post("/tasks/{task_id}/move", response_model=TaskOut)
async def move_task(task_id: str, payload: TaskMoveIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t, board_id = await task_with_board(task_id, db)
  org_id = await require_board_access(board_id, "member", user.id, db)
  if payload.version is not None and t.version != payload.version:
    raise ConflictError("Version conflict", details={"version": t.version})

  target = await get_column(payload.columnId, db)
  if target.board_id != board_id:
    raise ValidationError("Invalid columnId")

  from_column = t.column_id
  from_arr = await _column_tasks(db, from_column)
  to_arr = from_arr if target.id == from_column else await _column_tasks(db, target.id)
  moved = relocate(from_arr, to_arr, t.id, payload.position)
  if moved is None:
    raise NotFoundError("Task not found")
  _, from_idx, to_idx = moved
  t.column_id = target.id
  t.version += 1

  await write_activity(
    db,
    event_type="task.moved",
    entity_type="Task",
    entity_id=t.id,
    organization_id=org_id,
    board_id=board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"fromColumnId": from_column, "fromIndex": from_idx, "toColumnId": target.id, "toIndex": to_idx},
  )
  await db.commit()
  return await _one_task_out(db, t, board_id)


def _comment_out(c: Comment, author_name: str) -> CommentOut:
  return CommentOut(id=c.id, taskId=c.task_id, authorId=c.author_id, authorName=author_name, content=c.content, createdAt=c.created_at)


@router.get("/tasks/{task_id}/comments", response_model=list[CommentOut])
async def list_comments(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[CommentOut]:
  _, board_id = await task_with_board(task_id, db)
  await require_board_access(board_id, "viewer", user.id, db)
  res = await db.execute(
    select(Comment, User.name).join(User, User.id == Comment.author_id).where(Comment.task_id == task_id).order_by(Comment.created_at.asc())
  )
  return [_comment_out(c, name) for c, name in res.all()]


@router.post("/comments", response_model=CommentOut)
async def create_comment(payload: CommentCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> CommentOut:
  t, board_id = await task_with_board(payload.taskId, db)
  org_id = await require_board_access(board_id, "member", user.id, db)
  c = Comment(task_id=t.id, author_id=user.id, content=payload.content)
  db.add(c)
  await db.flush()
  await write_activity(
    db,
    event_type="comment.created",
    entity_type="Comment",
    entity_id=c.id,
    organization_id=org_id,
    board_id=board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={},
  )
  notify_task_commented(db, task=t, author_id=user.id, author_name=user.name)
  await db.commit()
  return _comment_out(c, user.name)
