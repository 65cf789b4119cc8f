from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field
from pydantic import field_validator


_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

Priority = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]
PresenceStatus = Literal["online", "away", "offline"]


def _parse_dt_utc(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, datetime):
    dt = value
  elif isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    if _DATE_ONLY_RE.fullmatch(s):
      dt = datetime.fromisoformat(s)
    else:
      dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
  else:
    return value

  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


class UserOut(BaseModel):
  id: str
  email: str
  name: str
  avatarUrl: str | None = None


class RegisterIn(BaseModel):
  email: str = Field(min_length=3, max_length=320)
  name: str = Field(min_length=1, max_length=120)
  password: str = Field(min_length=8, max_length=72)


class LoginIn(BaseModel):
  email: str
  password: str


class AuthOut(BaseModel):
  token: str
  user: UserOut


class OrganizationCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=120)
  slug: str | None = Field(default=None, min_length=1, max_length=64)


class OrganizationOut(BaseModel):
  id: str
  name: str
  slug: str
  role: str


class MemberAddIn(BaseModel):
  userId: str
  role: Literal["admin", "member", "viewer"] = "member"


class PresenceOut(BaseModel):
  userId: str
  status: PresenceStatus
  lastSeen: datetime


class ProjectCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=120)
  description: str | None = None
  color: str | None = Field(default=None, max_length=32)


class ProjectOut(BaseModel):
  id: str
  organizationId: str
  name: str
  description: str | None = None
  color: str | None = None
  boardIds: list[str] = []


class BoardCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=120)


class ColumnCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=120)
  color: str | None = Field(default=None, max_length=32)


class ColumnUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=120)
  color: str | None = Field(default=None, max_length=32)


class ColumnReorderIn(BaseModel):
  columnIds: list[str]


class TaskCreateIn(BaseModel):
  columnId: str
  title: str = Field(min_length=1, max_length=500)
  description: str | None = None
  priority: Priority = "MEDIUM"
  dueDate: datetime | None = None
  assigneeId: str | None = None
  parentId: str | None = None
  tagIds: list[str] = []

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskUpdateIn(BaseModel):
  version: int | None = None
  title: str | None = Field(default=None, min_length=1, max_length=500)
  description: str | None = None
  priority: Priority | None = None
  dueDate: datetime | None = None
  assigneeId: str | None = None
  parentId: str | None = None
  tagIds: list[str] | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskMoveIn(BaseModel):
  columnId: str
  position: int = 0
  version: int | None = None


class TagOut(BaseModel):
  id: str
  name: str
  color: str


class TaskOut(BaseModel):
  id: str
  boardId: str
  columnId: str
  position: int
  title: str
  description: str | None = None
  priority: Priority
  dueDate: datetime | None = None
  assigneeId: str | None = None
  creatorId: str
  parentId: str | None = None
  tags: list[TagOut] = []
  commentsCount: int = 0
  attachmentsCount: int = 0
  version: int
  createdAt: datetime
  updatedAt: datetime


class ColumnOut(BaseModel):
  id: str
  boardId: str
  name: str
  color: str
  position: int
  tasks: list[TaskOut] = []


class BoardOut(BaseModel):
  id: str
  projectId: str
  organizationId: str
  name: str
  position: int
  columns: list[ColumnOut] = []


class CommentCreateIn(BaseModel):
  taskId: str
  content: str = Field(min_length=1, max_length=20000)


class CommentOut(BaseModel):
  id: str
  taskId: str
  authorId: str
  authorName: str
  content: str
  createdAt: datetime


class ActivityOut(BaseModel):
  id: str
  eventType: str
  entityType: str
  entityId: str | None = None
  taskId: str | None = None
  actorId: str | None = None
  payload: dict = {}
  createdAt: datetime


class NotificationOut(BaseModel):
  id: str
  title: str
  message: str
  eventType: str | None = None
  entityType: str | None = None
  entityId: str | None = None
  read: bool
  readAt: datetime | None = None
  createdAt: datetime


class UnreadCountOut(BaseModel):
  count: int
