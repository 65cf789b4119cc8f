from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from redis import asyncio as aioredis

logger = logging.getLogger(__name__)

PRESENCE_STATUSES = ("online", "away", "offline")


@dataclass(frozen=True)
class PresenceRecord:
  user_id: str
  status: str
  last_seen: datetime

  def to_payload(self) -> dict:
    return {"userId": self.user_id, "status": self.status, "lastSeen": self.last_seen.isoformat()}

  def to_json(self) -> str:
    return json.dumps({"status": self.status, "lastSeen": self.last_seen.isoformat()})

  @classmethod
  def from_json(cls, user_id: str, raw: str) -> PresenceRecord:
    data = json.loads(raw)
    last_seen = datetime.fromisoformat(str(data.get("lastSeen")))
    if last_seen.tzinfo is None:
      last_seen = last_seen.replace(tzinfo=timezone.utc)
    return cls(user_id=user_id, status=str(data.get("status") or "offline"), last_seen=last_seen)


class PresenceStore:
  """Per-organization presence map; every write touches exactly one (org, user) field."""

  async def set(self, organization_id: str, record: PresenceRecord) -> None:
    raise NotImplementedError

  async def get_all(self, organization_id: str) -> dict[str, PresenceRecord]:
    raise NotImplementedError

  async def clear(self) -> None:
    raise NotImplementedError


class MemoryPresenceStore(PresenceStore):
  def __init__(self) -> None:
    self._orgs: dict[str, dict[str, PresenceRecord]] = {}

  async def set(self, organization_id: str, record: PresenceRecord) -> None:
    if record.status not in PRESENCE_STATUSES:
      raise ValueError(f"Unknown presence status: {record.status}")
    self._orgs.setdefault(organization_id, {})[record.user_id] = record

  async def get_all(self, organization_id: str) -> dict[str, PresenceRecord]:
    return dict(self._orgs.get(organization_id, {}))

  async def clear(self) -> None:
    self._orgs.clear()


class RedisPresenceStore(PresenceStore):
  """Presence hash per organization: ``<prefix><orgId>`` field=userId value=JSON."""

  def __init__(self, client: aioredis.Redis, *, prefix: str = "presence:") -> None:
    self._redis = client
    self._prefix = prefix

  def _key(self, organization_id: str) -> str:
    return f"{self._prefix}{organization_id}"

  async def set(self, organization_id: str, record: PresenceRecord) -> None:
    if record.status not in PRESENCE_STATUSES:
      raise ValueError(f"Unknown presence status: {record.status}")
    await self._redis.hset(self._key(organization_id), record.user_id, record.to_json())

  async def get_all(self, organization_id: str) -> dict[str, PresenceRecord]:
    raw = await self._redis.hgetall(self._key(organization_id))
    out: dict[str, PresenceRecord] = {}
    for user_id, value in raw.items():
      try:
        out[user_id] = PresenceRecord.from_json(user_id, value)
      except (ValueError, TypeError) as exc:
        logger.warning(f"Skipping malformed presence entry org={organization_id} user={user_id}: {exc}")
    return out

  async def clear(self) -> None:
    async for key in self._redis.scan_iter(match=f"{self._prefix}*"):
      await self._redis.delete(key)


def build_presence_store(redis_url: str | None, *, prefix: str = "presence:") -> PresenceStore:
  if not redis_url:
    logger.info("No REDIS_URL configured; presence kept in process memory")
    return MemoryPresenceStore()
  return RedisPresenceStore(aioredis.Redis.from_url(redis_url, decode_responses=True), prefix=prefix)
