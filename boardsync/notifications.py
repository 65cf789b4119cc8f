from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from boardsync.models import Notification, Task

logger = logging.getLogger(__name__)


def notify(
  db: AsyncSession,
  *,
  user_id: str,
  title: str,
  message: str,
  event_type: str | None = None,
  entity_type: str | None = None,
  entity_id: str | None = None,
) -> None:
  db.add(
    Notification(
      user_id=user_id,
      title=title,
      message=message,
      event_type=event_type,
      entity_type=entity_type,
      entity_id=entity_id,
    )
  )


def notify_task_assigned(db: AsyncSession, *, task: Task, actor_id: str, actor_name: str) -> bool:
  """Assigning a task to someone else tells them; self-assignment is silent."""
  if not task.assignee_id or task.assignee_id == actor_id:
    return False
  notify(
    db,
    user_id=task.assignee_id,
    title="New task assigned",
    message=f"{actor_name} assigned you \"{task.title}\"",
    event_type="task.assigned",
    entity_type="Task",
    entity_id=task.id,
  )
  return True


def notify_task_commented(db: AsyncSession, *, task: Task, author_id: str, author_name: str) -> int:
  # creator and assignee, once each, never the author
  recipients = [uid for uid in dict.fromkeys([task.creator_id, task.assignee_id]) if uid and uid != author_id]
  for uid in recipients:
    notify(
      db,
      user_id=uid,
      title="New comment",
      message=f"{author_name} commented on \"{task.title}\"",
      event_type="comment.created",
      entity_type="Task",
      entity_id=task.id,
    )
  if recipients:
    logger.debug(f"Comment on task={task.id} notified {len(recipients)} user(s)")
  return len(recipients)
