"""
Login throttling.

Two fixed one-minute windows guard ``POST /auth/login``: one per client IP
and one per email. Counters live in Redis when ``settings.redis_url`` is set
so every API worker sees the same window; otherwise, or while Redis is down,
each process counts on its own.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock

import redis

from boardsync.config import settings

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


@dataclass(frozen=True)
class Verdict:
  allowed: bool
  retry_after: int = 0


class LoginLimiter:
  def __init__(self, redis_url: str | None = None, *, prefix: str = "rl:login:") -> None:
    self.prefix = prefix
    self._lock = Lock()
    # key -> (window_end, hits)
    self._windows: dict[str, tuple[float, int]] = {}
    self._redis = redis.Redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=1) if redis_url else None

  def check(self, ip: str, email: str | None) -> Verdict:
    """Counts one attempt against both windows; the first exhausted one wins."""
    verdict = self._hit(f"ip:{ip}", int(settings.rate_limit_login_ip_per_minute))
    if not verdict.allowed or not email:
      return verdict
    return self._hit(f"email:{email}", int(settings.rate_limit_login_email_per_minute))

  def reset(self) -> None:
    with self._lock:
      self._windows.clear()

  def _hit(self, subject: str, limit: int) -> Verdict:
    key = f"{self.prefix}{subject}"
    if self._redis is not None:
      try:
        return self._hit_redis(key, limit)
      except redis.RedisError as exc:
        logger.warning(f"Login limiter using process memory, Redis failed: {exc}")
    return self._hit_memory(key, limit)

  def _hit_redis(self, key: str, limit: int) -> Verdict:
    pipe = self._redis.pipeline()
    # the window starts with the first attempt and is never extended
    pipe.set(key, 0, ex=WINDOW_SECONDS, nx=True)
    pipe.incr(key)
    pipe.ttl(key)
    _, hits, ttl = pipe.execute()
    if int(hits) <= limit:
      return Verdict(True)
    return Verdict(False, int(ttl) if int(ttl) > 0 else WINDOW_SECONDS)

  def _hit_memory(self, key: str, limit: int) -> Verdict:
    now = time.monotonic()
    with self._lock:
      window_end, hits = self._windows.get(key, (0.0, 0))
      if now >= window_end:
        window_end, hits = now + WINDOW_SECONDS, 0
      if hits >= limit:
        return Verdict(False, max(1, int(window_end - now)))
      self._windows[key] = (window_end, hits + 1)
      return Verdict(True)


login_limiter = LoginLimiter(settings.redis_url)
