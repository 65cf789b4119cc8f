"""
Socket.IO namespace for board synchronization.

Handles the authentication handshake, room joins/leaves and relays
mutation notifications through ``EventRouter``.

Event names with colons (e.g. ``task:move``) are dispatched by overriding
``trigger_event`` since python-socketio only maps ``on_<name>`` methods.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import socketio
from socketio.exceptions import ConnectionRefusedError as SocketConnectionRefused

from boardsync.errors import AuthenticationError, BoardSyncError
from boardsync.realtime.events import ClientEvents
from boardsync.realtime.registry import RoomRegistry
from boardsync.realtime.router import EventRouter

logger = logging.getLogger(__name__)

_ROOM_EVENTS: dict[str, tuple[str, str]] = {
  ClientEvents.JOIN_ORGANIZATION: ("join", "organization"),
  ClientEvents.LEAVE_ORGANIZATION: ("leave", "organization"),
  ClientEvents.JOIN_BOARD: ("join", "board"),
  ClientEvents.LEAVE_BOARD: ("leave", "board"),
  ClientEvents.JOIN_TASK: ("join", "task"),
  ClientEvents.LEAVE_TASK: ("leave", "task"),
}


def _room_id(data: Any, kind: str) -> str:
  if isinstance(data, dict):
    return str(data.get("id") or data.get(f"{kind}Id") or "")
  if data is None:
    return ""
  return str(data)


class BoardSyncNamespace(socketio.AsyncNamespace):
  def __init__(self, registry: RoomRegistry, router: EventRouter, namespace: str = "/") -> None:
    super().__init__(namespace)
    self.registry = registry
    self.router = router

  async def trigger_event(self, event: str, sid: str, *args):
    if event in _ROOM_EVENTS:
      action, kind = _ROOM_EVENTS[event]
      return await self.on_room(sid, action, kind, args[0] if args else None)
    if self.router.handles(event):
      return await self.router.relay(sid, event, args[0] if args else None)
    return await super().trigger_event(event, sid, *args)

  async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None):
    try:
      session = self.registry.authenticate(sid, auth)
    except AuthenticationError as exc:
      logger.warning(f"[WS] Connection rejected sid={sid}: {exc.message}")
      raise SocketConnectionRefused(exc.message)
    logger.info(f"[WS] Connected user={session.user_id} sid={sid}")

  async def on_disconnect(self, sid: str, reason: Any = None):
    await self.registry.disconnect(sid)

  async def on_room(self, sid: str, action: str, kind: str, data: Any) -> dict:
    room_id = _room_id(data, kind)
    try:
      if action == "join":
        room = await self.registry.join(sid, kind, room_id)
        return {"ok": True, "room": room}
      left = await self.registry.leave(sid, kind, room_id)
      return {"ok": left}
    except BoardSyncError as exc:
      logger.warning(f"[WS] {action}:{kind} {room_id} failed sid={sid}: {exc.message}")
      return {"error": exc.message}
