from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

import socketio

from boardsync.client.board import BoardState
from boardsync.errors import AuthenticationError, ForbiddenError, ValidationError
from boardsync.realtime.events import ServerEvents

logger = logging.getLogger(__name__)

Callback = Callable[..., Any]

_ACK_ERRORS = {
  "Not authenticated": AuthenticationError,
  "Access denied": ForbiddenError,
}


class RealtimeSync:
  """
  Keeps a ``BoardState`` in step with other clients over Socket.IO.

  Server ``task:*`` events are merged into the board; presence, typing and
  comment events go to the optional callbacks. ``emit`` has the emitter
  signature expected by ``MutationDispatchQueue``.
  """

  def __init__(
    self,
    board: BoardState,
    url: str,
    token: str,
    *,
    client: socketio.AsyncClient | None = None,
    socketio_path: str = "socket.io",
    on_presence: Callback | None = None,
    on_typing: Callback | None = None,
    on_comment: Callback | None = None,
  ) -> None:
    self.board = board
    self.url = url
    self.token = token
    self.socketio_path = socketio_path
    self.on_presence = on_presence
    self.on_typing = on_typing
    self.on_comment = on_comment
    self.sio = client or socketio.AsyncClient(reconnection=True)
    self._rooms: list[tuple[str, str]] = []

    self.sio.on("connect", self._on_connect)
    for event in (
      ServerEvents.TASK_CREATED,
      ServerEvents.TASK_UPDATED,
      ServerEvents.TASK_DELETED,
      ServerEvents.TASK_MOVED,
      ServerEvents.COMMENT_CREATED,
      ServerEvents.TYPING_STARTED,
      ServerEvents.TYPING_STOPPED,
      ServerEvents.PRESENCE_UPDATE,
    ):
      self.sio.on(event, self._handler(event))

  def _handler(self, event: str):
    async def _on_event(data: Any = None) -> None:
      await self.handle(event, data)

    return _on_event

  async def connect(self) -> None:
    await self.sio.connect(self.url, auth={"token": self.token}, socketio_path=self.socketio_path)

  async def disconnect(self) -> None:
    await self.sio.disconnect()

  async def join(self, kind: str, room_id: str) -> dict:
    if (kind, room_id) not in self._rooms:
      self._rooms.append((kind, room_id))
    ack = await self.sio.call(f"join:{kind}", room_id)
    return self._check_ack(ack)

  async def leave(self, kind: str, room_id: str) -> dict:
    if (kind, room_id) in self._rooms:
      self._rooms.remove((kind, room_id))
    ack = await self.sio.call(f"leave:{kind}", room_id)
    return self._check_ack(ack)

  async def emit(self, event: str, payload: dict) -> None:
    await self.sio.emit(event, payload)

  async def handle(self, event: str, data: Any) -> bool:
    """Apply one server event; returns False when the board did not change."""
    if event == ServerEvents.TASK_MOVED:
      return self.board.apply_remote_moved(data or {}) is not None
    if event == ServerEvents.TASK_CREATED:
      return self.board.apply_remote_created(data or {})
    if event == ServerEvents.TASK_UPDATED:
      return self.board.apply_remote_updated(data or {})
    if event == ServerEvents.TASK_DELETED:
      return self.board.apply_remote_deleted(data)
    if event == ServerEvents.COMMENT_CREATED:
      t = self.board.task(str((data or {}).get("taskId")))
      if t is not None:
        t.comments_count += 1
      await self._notify(self.on_comment, data)
      return t is not None
    if event in (ServerEvents.TYPING_STARTED, ServerEvents.TYPING_STOPPED):
      await self._notify(self.on_typing, event, data)
      return False
    if event == ServerEvents.PRESENCE_UPDATE:
      await self._notify(self.on_presence, data)
      return False
    logger.debug(f"[WS] ignoring event {event}")
    return False

  async def _on_connect(self) -> None:
    # acks cannot be awaited from inside the connect handler
    if self._rooms:
      self.sio.start_background_task(self._rejoin)

  async def _rejoin(self) -> None:
    for kind, room_id in list(self._rooms):
      try:
        await self.join(kind, room_id)
      except (AuthenticationError, ForbiddenError, ValidationError) as exc:
        logger.warning(f"[WS] rejoin {kind}:{room_id} failed: {exc.message}")

  @staticmethod
  def _check_ack(ack: Any) -> dict:
    if isinstance(ack, dict) and ack.get("error"):
      msg = str(ack["error"])
      raise _ACK_ERRORS.get(msg, ValidationError)(msg)
    return ack if isinstance(ack, dict) else {}

  @staticmethod
  async def _notify(callback: Callback | None, *args: Any) -> None:
    if callback is None:
      return
    res = callback(*args)
    if inspect.isawaitable(res):
      await res
