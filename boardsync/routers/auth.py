from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boardsync.activity import write_activity
from boardsync.deps import get_current_user, get_db
from boardsync.models import User
from boardsync.rate_limit import login_limiter
from boardsync.schemas import AuthOut, LoginIn, RegisterIn, UserOut
from boardsync.security import hash_password, issue_token, verify_password

router = APIRouter(prefix="/auth", tags=["auth"])


def user_out(u: User) -> UserOut:
  return UserOut(id=u.id, email=u.email, name=u.name, avatarUrl=u.avatar_url)


def _auth_out(u: User) -> AuthOut:
  return AuthOut(token=issue_token({"sub": u.id, "email": u.email}), user=user_out(u))


@router.post("/register", response_model=AuthOut)
async def register(payload: RegisterIn, db: AsyncSession = Depends(get_db)) -> AuthOut:
  email = payload.email.strip().lower()
  res = await db.execute(select(User).where(User.email == email))
  if res.scalar_one_or_none():
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")
  u = User(email=email, name=payload.name.strip(), password_hash=hash_password(payload.password))
  db.add(u)
  await db.flush()
  await write_activity(db, event_type="user.registered", entity_type="User", entity_id=u.id, actor_id=u.id, payload={"email": email})
  await db.commit()
  return _auth_out(u)


@router.post("/login", response_model=AuthOut)
async def login(payload: LoginIn, request: Request, db: AsyncSession = Depends(get_db)) -> AuthOut:
  ip = request.client.host if request.client else "unknown"
  email_key = (payload.email or "").strip().lower()
  verdict = login_limiter.check(ip, email_key)
  if not verdict.allowed:
    raise HTTPException(
      status_code=status.HTTP_429_TOO_MANY_REQUESTS,
      detail={"code": "rate_limited", "message": "Too many requests", "retryAfterSeconds": verdict.retry_after},
      headers={"Retry-After": str(verdict.retry_after)},
    )

  res = await db.execute(select(User).where(User.email == email_key))
  u = res.scalar_one_or_none()
  if not u or not verify_password(payload.password, u.password_hash):
    await write_activity(db, event_type="auth.login.failed", entity_type="Auth", entity_id=None, payload={"email": email_key, "ip": ip})
    await db.commit()
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
  return _auth_out(u)


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)) -> UserOut:
  return user_out(user)
