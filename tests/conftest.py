from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{Path(tempfile.gettempdir()) / 'boardsync_test.db'}")
os.environ["REDIS_URL"] = ""
os.environ.setdefault("APP_SECRET", "test-secret-not-for-production")

from boardsync.config import settings
from boardsync.db import engine
from boardsync.main import api, hub
from boardsync.models import Base
from boardsync.rate_limit import login_limiter


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  login_limiter.reset()
  await hub.presence.clear()
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.drop_all)
    await conn.run_sync(Base.metadata.create_all)
  await engine.dispose()


@pytest.fixture
async def clean_db() -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. boardsync_test)."
    )
  await _reset_db()
  yield
  await engine.dispose()


@pytest.fixture
async def client(clean_db) -> AsyncClient:
  transport = ASGITransport(app=api)
  async with AsyncClient(transport=transport, base_url="http://testserver") as c:
    yield c


def bearer(token: str) -> dict[str, str]:
  return {"Authorization": f"Bearer {token}"}


async def register(client: AsyncClient, email: str, *, name: str = "Test User", password: str = "password123") -> dict:
  res = await client.post("/auth/register", json={"email": email, "name": name, "password": password})
  assert res.status_code == 200, res.text
  return res.json()


async def bootstrap_board(client: AsyncClient, token: str, *, org_name: str = "Acme") -> dict:
  """Organization -> project (with default board) -> full board payload."""
  org = await client.post("/organizations", json={"name": org_name}, headers=bearer(token))
  assert org.status_code == 200, org.text
  project = await client.post(f"/organizations/{org.json()['id']}/projects", json={"name": "Launch"}, headers=bearer(token))
  assert project.status_code == 200, project.text
  board = await client.get(f"/boards/{project.json()['boardIds'][0]}", headers=bearer(token))
  assert board.status_code == 200, board.text
  return board.json()


async def create_task(client: AsyncClient, token: str, column_id: str, title: str, **extra) -> dict:
  res = await client.post("/tasks", json={"columnId": column_id, "title": title, **extra}, headers=bearer(token))
  assert res.status_code == 200, res.text
  return res.json()


class FakeTransport:
  """In-memory stand-in for the Socket.IO server: records what each sid would receive."""

  def __init__(self) -> None:
    self.rooms: dict[str, set[str]] = {}
    self.delivered: list[tuple[str, str, object]] = []
    self.fail = False

  async def enter_room(self, sid: str, room: str) -> None:
    self.rooms.setdefault(room, set()).add(sid)

  async def leave_room(self, sid: str, room: str) -> None:
    self.rooms.get(room, set()).discard(sid)

  async def emit(self, event: str, data, *, room: str, skip_sid: str | None = None) -> None:
    if self.fail:
      raise ConnectionError("transport down")
    for sid in sorted(self.rooms.get(room, set())):
      if sid != skip_sid:
        self.delivered.append((sid, event, data))

  def inbox(self, sid: str) -> list[tuple[str, object]]:
    return [(event, data) for to, event, data in self.delivered if to == sid]
