from __future__ import annotations

import logging

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.middleware.trustedhost import TrustedHostMiddleware

from boardsync.config import settings
from boardsync.errors import BoardSyncError
from boardsync.logging_setup import setup_logging
from boardsync.realtime.server import create_realtime
from boardsync.routers.auth import router as auth_router
from boardsync.routers.boards import router as boards_router
from boardsync.routers.columns import router as columns_router
from boardsync.routers.notifications import router as notifications_router
from boardsync.routers.organizations import router as organizations_router
from boardsync.routers.projects import router as projects_router
from boardsync.routers.tasks import router as tasks_router

logger = logging.getLogger(__name__)

api = FastAPI(
  title="boardsync API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


@api.exception_handler(BoardSyncError)
async def _boardsync_error_handler(_, exc: BoardSyncError) -> JSONResponse:
  content: dict = {"detail": exc.message}
  if exc.details:
    content["details"] = exc.details
  return JSONResponse(status_code=exc.status_code, content=content)


api.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
api.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

api.include_router(auth_router)
api.include_router(organizations_router)
api.include_router(projects_router)
api.include_router(boards_router)
api.include_router(columns_router)
api.include_router(tasks_router)
api.include_router(notifications_router)


@api.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
  return response


@api.get("/health")
async def health() -> dict:
  return {"ok": True}


@api.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


hub = create_realtime(settings)
api.state.realtime = hub


def _is_test_db() -> bool:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  return "test" in db_name


@api.on_event("startup")
async def _startup() -> None:
  if _is_test_db():
    return
  setup_logging()
  if not settings.app_secret or settings.app_secret.strip().lower() in {"dev-secret-change-me", "replace_with_strong_random_secret"}:
    raise RuntimeError("APP_SECRET is required and must not be a placeholder")
  # A restart drops every socket, so nobody can still be online.
  try:
    await hub.presence.clear()
  except RedisError as exc:
    logger.warning(f"Presence reset on startup failed: {exc}")


app = socketio.ASGIApp(hub.sio, other_asgi_app=api, socketio_path=settings.socketio_path)
