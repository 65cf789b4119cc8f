from __future__ import annotations

import logging
from typing import Any, Protocol

import socketio

logger = logging.getLogger(__name__)


class Transport(Protocol):
  async def enter_room(self, sid: str, room: str) -> None: ...

  async def leave_room(self, sid: str, room: str) -> None: ...

  async def emit(self, event: str, data: Any, *, room: str, skip_sid: str | None = None) -> None: ...


class SocketIOTransport:
  """Adapts a python-socketio server to the registry/router transport interface."""

  def __init__(self, server: socketio.AsyncServer, namespace: str = "/") -> None:
    self.server = server
    self.namespace = namespace

  async def enter_room(self, sid: str, room: str) -> None:
    await self.server.enter_room(sid, room, namespace=self.namespace)

  async def leave_room(self, sid: str, room: str) -> None:
    await self.server.leave_room(sid, room, namespace=self.namespace)

  async def emit(self, event: str, data: Any, *, room: str, skip_sid: str | None = None) -> None:
    await self.server.emit(event, data, room=room, skip_sid=skip_sid, namespace=self.namespace)


async def broadcast(transport: Transport, event: str, data: Any, *, room: str, skip_sid: str | None = None) -> bool:
  """Fire-and-forget emit: delivery failures are logged, never raised."""
  try:
    await transport.emit(event, data, room=room, skip_sid=skip_sid)
  except Exception as exc:
    logger.warning(f"[WS] broadcast {event} to {room} failed: {exc}")
    return False
  return True
