"""
Presence/room registry for live Socket.IO connections.

The registry owns three maps: connection -> session claims, connection ->
joined rooms, room -> connections. Presence lives in a separate
``PresenceStore`` so it can be shared across API workers through Redis.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from redis.exceptions import RedisError

from boardsync.errors import AuthenticationError, ForbiddenError, ValidationError
from boardsync.realtime.events import ServerEvents
from boardsync.realtime.presence import PresenceRecord, PresenceStore
from boardsync.realtime.transport import Transport, broadcast
from boardsync.security import verify_token

logger = logging.getLogger(__name__)

ROOM_KINDS = ("organization", "board", "task")


def _utcnow() -> datetime:
  return datetime.now(timezone.utc)


def room_key(kind: str, room_id: str) -> str:
  if kind not in ROOM_KINDS:
    raise ValidationError(f"Unknown room kind: {kind}")
  rid = str(room_id or "").strip()
  if not rid:
    raise ValidationError("Room id is required")
  return f"{kind}:{rid}"


@dataclass(frozen=True)
class SessionClaims:
  sid: str
  user_id: str
  connected_at: datetime
  claims: dict[str, Any] = field(default_factory=dict)


RoomAuthorizer = Callable[[SessionClaims, str, str], Awaitable[bool]]


class RoomRegistry:
  def __init__(
    self,
    transport: Transport,
    presence: PresenceStore,
    *,
    authorizer: RoomAuthorizer | None = None,
    clock: Callable[[], datetime] = _utcnow,
  ) -> None:
    self.transport = transport
    self.presence = presence
    self.authorizer = authorizer
    self.clock = clock
    self._sessions: dict[str, SessionClaims] = {}
    self._rooms: dict[str, set[str]] = {}
    self._members: dict[str, set[str]] = {}

  def authenticate(self, sid: str, auth: Any) -> SessionClaims:
    """Handshake step: nothing is registered unless the token verifies."""
    token = auth.get("token") if isinstance(auth, dict) else None
    if not token:
      raise AuthenticationError("Authentication required")
    claims = verify_token(token)
    if not claims:
      raise AuthenticationError("Invalid token")
    session = SessionClaims(sid=sid, user_id=str(claims["sub"]), connected_at=self.clock(), claims=claims)
    self._sessions[sid] = session
    self._rooms[sid] = set()
    return session

  def session(self, sid: str) -> SessionClaims | None:
    return self._sessions.get(sid)

  def require_session(self, sid: str) -> SessionClaims:
    s = self._sessions.get(sid)
    if s is None:
      raise AuthenticationError("Not authenticated")
    return s

  def rooms_of(self, sid: str) -> set[str]:
    return set(self._rooms.get(sid, set()))

  def members(self, room: str) -> set[str]:
    return set(self._members.get(room, set()))

  def is_member(self, sid: str, room: str) -> bool:
    return room in self._rooms.get(sid, set())

  async def join(self, sid: str, kind: str, room_id: str) -> str:
    session = self.require_session(sid)
    room = room_key(kind, room_id)
    if self.authorizer is not None and not await self.authorizer(session, kind, str(room_id)):
      raise ForbiddenError("Access denied")
    # the connection may have dropped while the authorizer ran
    self._require_same_session(sid, session)
    already = room in self._rooms[sid]
    self._rooms[sid].add(room)
    self._members.setdefault(room, set()).add(sid)
    await self.transport.enter_room(sid, room)
    if self._sessions.get(sid) is not session:
      # disconnected mid-join: the transport room is the only trace left
      await self.transport.leave_room(sid, room)
      self._require_same_session(sid, session)
    if kind == "organization" and not already:
      await self._set_presence(session, str(room_id), "online", room)
    logger.info(f"[WS] user={session.user_id} sid={sid} joined {room}")
    return room

  async def leave(self, sid: str, kind: str, room_id: str) -> bool:
    session = self.require_session(sid)
    room = room_key(kind, room_id)
    if room not in self._rooms[sid]:
      return False
    self._drop_membership(sid, room)
    await self.transport.leave_room(sid, room)
    if kind == "organization":
      await self._set_presence(session, str(room_id), "offline", room)
    logger.info(f"[WS] user={session.user_id} sid={sid} left {room}")
    return True

  async def disconnect(self, sid: str) -> list[str]:
    """
    Drops every membership of ``sid`` and marks it offline once per joined
    organization. Safe to call for sessions that never authenticated.
    """
    session = self._sessions.pop(sid, None)
    rooms = self._rooms.pop(sid, set())
    for room in rooms:
      members = self._members.get(room)
      if members is not None:
        members.discard(sid)
        if not members:
          del self._members[room]
    if session is None:
      return []

    offline: list[str] = []
    for room in sorted(rooms):
      kind, _, org_id = room.partition(":")
      if kind != "organization":
        continue
      await self._set_presence(session, org_id, "offline", room)
      offline.append(org_id)
    logger.info(f"[WS] Disconnected user={session.user_id} sid={sid} offline_orgs={offline}")
    return offline

  def _require_same_session(self, sid: str, session: SessionClaims) -> None:
    if self._sessions.get(sid) is not session:
      raise AuthenticationError("Not authenticated")

  def _drop_membership(self, sid: str, room: str) -> None:
    self._rooms.get(sid, set()).discard(room)
    members = self._members.get(room)
    if members is not None:
      members.discard(sid)
      if not members:
        del self._members[room]

  async def _set_presence(self, session: SessionClaims, organization_id: str, status: str, room: str) -> None:
    record = PresenceRecord(user_id=session.user_id, status=status, last_seen=self.clock())
    try:
      await self.presence.set(organization_id, record)
    except RedisError as exc:
      logger.warning(f"[WS] presence write failed org={organization_id} user={session.user_id}: {exc}")
    await broadcast(self.transport, ServerEvents.PRESENCE_UPDATE, record.to_payload(), room=room, skip_sid=session.sid)
