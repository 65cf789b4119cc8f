"""
Socket.IO event names and payload schemas.

Payload keys are camelCase to match the JSON API.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ClientEvents:
  """Client -> Server event names."""

  JOIN_ORGANIZATION = "join:organization"
  LEAVE_ORGANIZATION = "leave:organization"
  JOIN_BOARD = "join:board"
  LEAVE_BOARD = "leave:board"
  JOIN_TASK = "join:task"
  LEAVE_TASK = "leave:task"

  TASK_CREATE = "task:create"
  TASK_UPDATE = "task:update"
  TASK_DELETE = "task:delete"
  TASK_MOVE = "task:move"

  COMMENT_CREATE = "comment:create"
  TYPING_START = "typing:start"
  TYPING_STOP = "typing:stop"


class ServerEvents:
  """Server -> Client event names."""

  TASK_CREATED = "task:created"
  TASK_UPDATED = "task:updated"
  TASK_DELETED = "task:deleted"
  TASK_MOVED = "task:moved"

  COMMENT_CREATED = "comment:created"
  TYPING_STARTED = "typing:started"
  TYPING_STOPPED = "typing:stopped"

  PRESENCE_UPDATE = "presence:update"


class _Payload(BaseModel):
  model_config = ConfigDict(extra="ignore")


class TaskBroadcastPayload(_Payload):
  boardId: str = Field(min_length=1)
  task: dict[str, Any]


class TaskDeletePayload(_Payload):
  boardId: str = Field(min_length=1)
  taskId: str = Field(min_length=1)


class TaskMovePayload(_Payload):
  boardId: str = Field(min_length=1)
  taskId: str = Field(min_length=1)
  columnId: str = Field(min_length=1)
  position: int = Field(ge=0)
  version: int | None = None


class CommentCreatePayload(_Payload):
  taskId: str = Field(min_length=1)
  comment: dict[str, Any]


class TypingPayload(_Payload):
  taskId: str = Field(min_length=1)
