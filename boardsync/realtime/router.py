from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from boardsync.errors import AuthenticationError, ForbiddenError
from boardsync.realtime.events import (
  ClientEvents,
  CommentCreatePayload,
  ServerEvents,
  TaskBroadcastPayload,
  TaskDeletePayload,
  TaskMovePayload,
  TypingPayload,
)
from boardsync.realtime.registry import RoomRegistry, SessionClaims, room_key
from boardsync.realtime.transport import Transport, broadcast

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Relay:
  payload: type[BaseModel]
  room_kind: str
  room_id: Callable[[Any], str]
  server_event: str
  outgoing: Callable[[Any, SessionClaims], Any]


RELAYS: dict[str, Relay] = {
  ClientEvents.TASK_CREATE: Relay(TaskBroadcastPayload, "board", lambda p: p.boardId, ServerEvents.TASK_CREATED, lambda p, s: p.task),
  ClientEvents.TASK_UPDATE: Relay(TaskBroadcastPayload, "board", lambda p: p.boardId, ServerEvents.TASK_UPDATED, lambda p, s: p.task),
  ClientEvents.TASK_DELETE: Relay(TaskDeletePayload, "board", lambda p: p.boardId, ServerEvents.TASK_DELETED, lambda p, s: p.taskId),
  ClientEvents.TASK_MOVE: Relay(
    TaskMovePayload,
    "board",
    lambda p: p.boardId,
    ServerEvents.TASK_MOVED,
    lambda p, s: p.model_dump(exclude_none=True),
  ),
  ClientEvents.COMMENT_CREATE: Relay(CommentCreatePayload, "task", lambda p: p.taskId, ServerEvents.COMMENT_CREATED, lambda p, s: p.comment),
  ClientEvents.TYPING_START: Relay(
    TypingPayload, "task", lambda p: p.taskId, ServerEvents.TYPING_STARTED, lambda p, s: {"userId": s.user_id, "taskId": p.taskId}
  ),
  ClientEvents.TYPING_STOP: Relay(
    TypingPayload, "task", lambda p: p.taskId, ServerEvents.TYPING_STOPPED, lambda p, s: {"userId": s.user_id, "taskId": p.taskId}
  ),
}


class EventRouter:
  """
  Relays mutation notifications to every other connection in the room.

  The originator is always skipped: it applied the change optimistically
  already. Delivery is best-effort; the persisted store stays the source of
  truth.
  """

  def __init__(self, registry: RoomRegistry, transport: Transport) -> None:
    self.registry = registry
    self.transport = transport

  def handles(self, event: str) -> bool:
    return event in RELAYS

  async def relay(self, sid: str, event: str, data: Any) -> dict:
    route = RELAYS.get(event)
    if route is None:
      return {"error": f"Unknown event {event}"}
    try:
      session = self.registry.require_session(sid)
    except AuthenticationError as exc:
      return {"error": exc.message}

    try:
      payload = route.payload.model_validate(data if isinstance(data, dict) else {})
    except PydanticValidationError:
      logger.warning(f"[WS] {event} invalid payload from user={session.user_id} sid={sid}")
      return {"error": "Invalid payload"}

    room = room_key(route.room_kind, route.room_id(payload))
    if not self.registry.is_member(sid, room):
      logger.warning(f"[WS] {event} rejected: user={session.user_id} not in {room}")
      return {"error": ForbiddenError("Not in room").message}

    delivered = await broadcast(
      self.transport, route.server_event, route.outgoing(payload, session), room=room, skip_sid=sid
    )
    logger.debug(f"[WS] {event} -> {route.server_event} room={room} from sid={sid}")
    return {"ok": True, "delivered": delivered}
