from __future__ import annotations

import logging
from dataclasses import dataclass

import socketio

from boardsync.config import Settings
from boardsync.realtime.access import db_room_authorizer
from boardsync.realtime.namespace import BoardSyncNamespace
from boardsync.realtime.presence import PresenceStore, build_presence_store
from boardsync.realtime.registry import RoomAuthorizer, RoomRegistry
from boardsync.realtime.router import EventRouter
from boardsync.realtime.transport import SocketIOTransport

logger = logging.getLogger(__name__)


@dataclass
class RealtimeHub:
  sio: socketio.AsyncServer
  registry: RoomRegistry
  router: EventRouter
  presence: PresenceStore


def create_realtime(
  settings: Settings,
  *,
  presence: PresenceStore | None = None,
  authorizer: RoomAuthorizer | None = db_room_authorizer,
) -> RealtimeHub:
  client_manager = None
  if settings.socketio_use_redis_manager and settings.redis_url:
    client_manager = socketio.AsyncRedisManager(settings.redis_url)
  sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.cors_origin_list(),
    client_manager=client_manager,
  )
  store = presence or build_presence_store(settings.redis_url, prefix=settings.presence_key_prefix)
  transport = SocketIOTransport(sio)
  registry = RoomRegistry(transport, store, authorizer=authorizer)
  router = EventRouter(registry, transport)
  sio.register_namespace(BoardSyncNamespace(registry, router))
  logger.info("Board sync namespace registered at /")
  return RealtimeHub(sio=sio, registry=registry, router=router, presence=store)
