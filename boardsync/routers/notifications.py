from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boardsync.activity import write_activity
from boardsync.deps import get_current_user, get_db
from boardsync.errors import NotFoundError
from boardsync.models import Notification, User
from boardsync.schemas import NotificationOut, UnreadCountOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _notification_out(n: Notification) -> NotificationOut:
  return NotificationOut(
    id=n.id,
    title=n.title,
    message=n.message,
    eventType=n.event_type,
    entityType=n.entity_type,
    entityId=n.entity_id,
    read=n.read_at is not None,
    readAt=n.read_at,
    createdAt=n.created_at,
  )


@router.get("", response_model=list[NotificationOut])
async def list_notifications(
  unreadOnly: bool = False,
  limit: int = 50,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[NotificationOut]:
  limit = max(1, min(int(limit), 200))
  stmt = select(Notification).where(Notification.user_id == user.id)
  if unreadOnly:
    stmt = stmt.where(Notification.read_at.is_(None))
  stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
  res = await db.execute(stmt)
  return [_notification_out(n) for n in res.scalars().all()]


@router.get("/unread-count", response_model=UnreadCountOut)
async def unread_count(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> UnreadCountOut:
  res = await db.execute(
    select(func.count()).select_from(Notification).where(Notification.user_id == user.id, Notification.read_at.is_(None))
  )
  return UnreadCountOut(count=int(res.scalar_one()))


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(notification_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> NotificationOut:
  res = await db.execute(select(Notification).where(Notification.id == notification_id, Notification.user_id == user.id))
  n = res.scalar_one_or_none()
  # other users' notifications look missing
  if not n:
    raise NotFoundError("Notification not found")
  if n.read_at is None:
    n.read_at = datetime.now(timezone.utc)
  await db.commit()
  return _notification_out(n)


@router.post("/read-all")
async def mark_all_read(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  res = await db.execute(
    update(Notification)
    .where(Notification.user_id == user.id, Notification.read_at.is_(None))
    .values(read_at=datetime.now(timezone.utc))
  )
  await write_activity(
    db,
    event_type="notifications.read_all",
    entity_type="Notification",
    entity_id=None,
    actor_id=user.id,
    payload={"count": int(res.rowcount or 0)},
  )
  await db.commit()
  return {"ok": True}
