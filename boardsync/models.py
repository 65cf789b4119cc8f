from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")
ORG_ROLES = ("owner", "admin", "member", "viewer")


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Organization(Base):
  __tablename__ = "organizations"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  name: Mapped[str] = mapped_column(String, nullable=False)
  slug: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class OrganizationMember(Base):
  __tablename__ = "organization_members"
  __table_args__ = (UniqueConstraint("organization_id", "user_id", name="ux_org_member_org_user"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  organization_id: Mapped[str] = mapped_column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  role: Mapped[str] = mapped_column(String, nullable=False, default="member")
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Project(Base):
  __tablename__ = "projects"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  organization_id: Mapped[str] = mapped_column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  color: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Board(Base):
  __tablename__ = "boards"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  project_id: Mapped[str] = mapped_column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Column(Base):
  __tablename__ = "columns"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  color: Mapped[str] = mapped_column(String, nullable=False, default="#6b7280")
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  column_id: Mapped[str] = mapped_column(String(36), ForeignKey("columns.id"), nullable=False, index=True)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  priority: Mapped[str] = mapped_column(String, nullable=False, default="MEDIUM")
  due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  assignee_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
  creator_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  parent_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=True, index=True)
  version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Tag(Base):
  __tablename__ = "tags"
  __table_args__ = (UniqueConstraint("organization_id", "name", name="ux_tags_org_name"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  organization_id: Mapped[str] = mapped_column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  color: Mapped[str] = mapped_column(String, nullable=False, default="#6b7280")


class TaskTag(Base):
  __tablename__ = "task_tags"
  __table_args__ = (UniqueConstraint("task_id", "tag_id", name="ux_task_tags_task_tag"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  tag_id: Mapped[str] = mapped_column(String(36), ForeignKey("tags.id"), nullable=False, index=True)


class Comment(Base):
  __tablename__ = "comments"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  author_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Attachment(Base):
  __tablename__ = "attachments"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  uploader_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  filename: Mapped[str] = mapped_column(String, nullable=False)
  mime: Mapped[str] = mapped_column(String, nullable=False)
  size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
  url: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Activity(Base):
  __tablename__ = "activities"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  organization_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
  board_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
  task_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
  actor_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Notification(Base):
  __tablename__ = "notifications"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  event_type: Mapped[str | None] = mapped_column(String, nullable=True)
  entity_type: Mapped[str | None] = mapped_column(String, nullable=True)
  entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
