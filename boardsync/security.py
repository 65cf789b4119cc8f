from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from boardsync.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
  if not password:
    return False
  return pwd_context.verify(password, password_hash)


def issue_token(claims: dict[str, Any], *, ttl_minutes: int | None = None) -> str:
  now = datetime.now(timezone.utc)
  to_encode = dict(claims)
  to_encode.setdefault("iat", int(now.timestamp()))
  to_encode["exp"] = int((now + timedelta(minutes=ttl_minutes or settings.jwt_ttl_minutes)).timestamp())
  return jwt.encode(to_encode, settings.app_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str | None) -> dict[str, Any] | None:
  """Returns the decoded claims, or None for a missing, malformed, expired or forged token."""
  if not token or not isinstance(token, str):
    return None
  try:
    claims = jwt.decode(token.strip(), settings.app_secret, algorithms=[settings.jwt_algorithm])
  except JWTError:
    return None
  if not claims.get("sub"):
    return None
  return claims
