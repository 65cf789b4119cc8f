from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from boardsync.client.api import HttpMutationClient
from boardsync.client.board import BoardState
from boardsync.client.commands import CreateCommentCommand, CreateTaskCommand, DeleteTaskCommand, MoveTaskCommand, UpdateTaskCommand
from boardsync.client.dispatch import MutationDispatchQueue, Outcome
from boardsync.errors import (
  AuthenticationError,
  ConflictError,
  ForbiddenError,
  NotFoundError,
  TransportError,
  ValidationError,
)
from boardsync.main import api

from conftest import bearer, bootstrap_board, create_task, register


def _api_client(token: str) -> HttpMutationClient:
  return HttpMutationClient(token=token, client=AsyncClient(transport=ASGITransport(app=api), base_url="http://testserver"))


def _names(board: BoardState, column_name: str) -> list[str]:
  return [t.title for t in next(c for c in board.columns if c.name == column_name).tasks]


@pytest.mark.anyio
async def test_optimistic_mutations_against_live_api(client: AsyncClient) -> None:
  me = await register(client, "owner@example.com")
  token = me["token"]
  payload = await bootstrap_board(client, token)
  todo_id = payload["columns"][0]["id"]
  doing_id = payload["columns"][1]["id"]
  await create_task(client, token, todo_id, "taskA")
  await create_task(client, token, todo_id, "taskB")

  mc = _api_client(token)
  board = BoardState.from_payload(await mc.fetch_board(payload["id"]))
  emitted: list[str] = []
  q = MutationDispatchQueue(board, mc, emitter=lambda ev, data: emitted.append(ev), refetch=lambda: mc.fetch_board(board.id))

  task_a = board.columns[0].tasks[0]
  res = await q.dispatch(MoveTaskCommand(task_a.id, doing_id, 0))
  assert res.outcome == Outcome.CONFIRMED
  assert board.task(task_a.id).version == 1

  created = CreateTaskCommand(doing_id, "taskC", priority="URGENT")
  res = await q.dispatch(created)
  assert res.outcome == Outcome.CONFIRMED
  assert not created.task_id.startswith("tmp-")

  res = await q.dispatch(UpdateTaskCommand(created.task_id, title="taskC v2"))
  assert res.outcome == Outcome.CONFIRMED
  res = await q.dispatch(CreateCommentCommand(created.task_id, "ship it"))
  assert res.outcome == Outcome.CONFIRMED
  res = await q.dispatch(DeleteTaskCommand(board.columns[0].tasks[0].id))
  assert res.outcome == Outcome.CONFIRMED
  assert emitted == ["task:move", "task:create", "task:update", "comment:create", "task:delete"]

  server = BoardState.from_payload((await client.get(f"/boards/{payload['id']}", headers=bearer(token))).json())
  assert _names(server, "To Do") == []
  assert _names(server, "In Progress") == ["taskA", "taskC v2"]
  assert _names(board, "In Progress") == ["taskA", "taskC v2"]
  assert server.task(created.task_id).comments_count == 1
  await mc.aclose()


@pytest.mark.anyio
async def test_conflicting_move_triggers_refetch(client: AsyncClient) -> None:
  me = await register(client, "owner@example.com")
  token = me["token"]
  payload = await bootstrap_board(client, token)
  todo_id, doing_id, done_id = (c["id"] for c in payload["columns"][:3])
  t = await create_task(client, token, todo_id, "contested")

  mc = _api_client(token)
  board = BoardState.from_payload(await mc.fetch_board(payload["id"]))
  # another client moves it first
  other = await client.post(f"/tasks/{t['id']}/move", json={"columnId": done_id, "position": 0}, headers=bearer(token))
  assert other.status_code == 200

  q = MutationDispatchQueue(board, mc, refetch=lambda: mc.fetch_board(board.id))
  res = await q.dispatch(MoveTaskCommand(t["id"], doing_id, 0))
  assert res.outcome == Outcome.REFETCHED
  assert isinstance(res.error, ConflictError)
  assert board.task(t["id"]).column_id == done_id
  assert board.task(t["id"]).version == 1


@pytest.mark.anyio
async def test_status_codes_map_to_typed_errors() -> None:
  codes = {"/a": 401, "/f": 403, "/n": 404, "/c": 409, "/v": 422, "/b": 400, "/s": 502}

  def handler(request: httpx.Request) -> httpx.Response:
    code = codes[request.url.path]
    return httpx.Response(code, json={"detail": f"status {code}"})

  mc = HttpMutationClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api"))
  expected = {
    "/a": AuthenticationError,
    "/f": ForbiddenError,
    "/n": NotFoundError,
    "/c": ConflictError,
    "/v": ValidationError,
    "/b": ValidationError,
    "/s": TransportError,
  }
  for path, exc in expected.items():
    with pytest.raises(exc) as info:
      await mc._request("GET", path)
    assert info.value.message == f"status {codes[path]}"


@pytest.mark.anyio
async def test_network_failure_rolls_back_move() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)

  mc = HttpMutationClient(token="t", client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api"))
  board = BoardState.from_payload(
    {
      "id": "B1",
      "columns": [
        {"id": "todo", "position": 0, "tasks": [{"id": "taskA", "position": 0}, {"id": "taskB", "position": 1}]},
        {"id": "doing", "position": 1, "tasks": []},
      ],
    }
  )
  q = MutationDispatchQueue(board, mc)
  res = await q.dispatch(MoveTaskCommand("taskA", "doing", 0))
  assert res.outcome == Outcome.ROLLED_BACK
  assert isinstance(res.error, TransportError)
  assert [(t.id, t.position) for t in board.column("todo").tasks] == [("taskA", 0), ("taskB", 1)]
  assert board.column("doing").tasks == []
