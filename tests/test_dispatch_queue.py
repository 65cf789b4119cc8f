from __future__ import annotations

import asyncio

import pytest

from boardsync.client.board import BoardState, ColumnState, TaskState
from boardsync.client.commands import (
  CreateCommentCommand,
  CreateTaskCommand,
  DeleteTaskCommand,
  MoveTaskCommand,
  UpdateTaskCommand,
)
from boardsync.client.dispatch import MutationDispatchQueue, Outcome
from boardsync.errors import ConflictError, ForbiddenError, NotFoundError, TransportError


class FakeApi:
  def __init__(self) -> None:
    self.calls: list[tuple[str, tuple]] = []
    self.errors: list[Exception | None] = []
    self.gates: list[asyncio.Event] = []
    self.results: list[dict] = []
    self.active = 0
    self.max_active = 0

  async def _call(self, name: str, args: tuple, result: dict) -> dict:
    self.calls.append((name, args))
    self.active += 1
    self.max_active = max(self.max_active, self.active)
    try:
      gate = self.gates.pop(0) if self.gates else None
      if gate is not None:
        await gate.wait()
      else:
        await asyncio.sleep(0)
      err = self.errors.pop(0) if self.errors else None
      if err is not None:
        raise err
      return self.results.pop(0) if self.results else result
    finally:
      self.active -= 1

  async def move_task(self, task_id, column_id, position, version=None):
    return await self._call(
      "move_task",
      (task_id, column_id, position, version),
      {"id": task_id, "columnId": column_id, "position": position, "version": (version or 0) + 1},
    )

  async def create_task(self, data):
    return await self._call("create_task", (data,), {"id": "srv-1", "columnId": data["columnId"], "title": data["title"], "version": 0})

  async def update_task(self, task_id, data):
    return await self._call("update_task", (task_id, data), {"id": task_id, **data, "version": (data.get("version") or 0) + 1})

  async def delete_task(self, task_id):
    return await self._call("delete_task", (task_id,), {"ok": True})

  async def create_comment(self, data):
    return await self._call("create_comment", (data,), {"id": "c1", "authorId": "u1", **data})

  async def fetch_board(self, board_id):
    raise NotImplementedError


def _board() -> BoardState:
  return BoardState(
    id="B1",
    columns=[
      ColumnState(
        id="todo",
        position=0,
        tasks=[TaskState(id="taskA", column_id="todo", position=0, title="A"), TaskState(id="taskB", column_id="todo", position=1, title="B")],
      ),
      ColumnState(id="doing", position=1, tasks=[TaskState(id="taskC", column_id="doing", position=0, title="C")]),
    ],
  )


def _layout(b: BoardState) -> dict[str, list[tuple[str, int]]]:
  return {c.id: [(t.id, t.position) for t in c.tasks] for c in b.columns}


@pytest.mark.anyio
async def test_confirmed_move_merges_version_and_broadcasts() -> None:
  board, api, emitted = _board(), FakeApi(), []
  q = MutationDispatchQueue(board, api, emitter=lambda ev, data: emitted.append((ev, data)))

  res = await q.dispatch(MoveTaskCommand("taskA", "doing", 0))
  assert res.outcome == Outcome.CONFIRMED
  assert _layout(board) == {"todo": [("taskB", 0)], "doing": [("taskA", 0), ("taskC", 1)]}
  assert board.task("taskA").version == 1
  assert api.calls == [("move_task", ("taskA", "doing", 0, 0))]
  assert emitted == [("task:move", {"boardId": "B1", "taskId": "taskA", "columnId": "doing", "position": 0, "version": 1})]


@pytest.mark.anyio
async def test_failed_move_rolls_back_and_renumbers() -> None:
  board, api = _board(), FakeApi()
  before = _layout(board)
  api.errors = [TransportError("connection reset")]
  emitted = []
  q = MutationDispatchQueue(board, api, emitter=lambda ev, data: emitted.append(ev))

  fut = q.submit(MoveTaskCommand("taskA", "doing", 0))
  # applied locally before anything is awaited
  assert _layout(board)["doing"] == [("taskA", 0), ("taskC", 1)]
  res = await fut
  assert res.outcome == Outcome.ROLLED_BACK
  assert isinstance(res.error, TransportError)
  assert _layout(board) == before
  assert emitted == []


@pytest.mark.anyio
async def test_persist_timeout_is_a_transport_error() -> None:
  board, api = _board(), FakeApi()
  api.gates = [asyncio.Event()]
  q = MutationDispatchQueue(board, api, timeout=0.05)
  res = await q.dispatch(MoveTaskCommand("taskB", "todo", 0))
  assert res.outcome == Outcome.ROLLED_BACK
  assert isinstance(res.error, TransportError)
  assert _layout(board)["todo"] == [("taskA", 0), ("taskB", 1)]


@pytest.mark.anyio
async def test_move_of_absent_task_is_noop() -> None:
  board, api = _board(), FakeApi()
  q = MutationDispatchQueue(board, api)
  res = await q.dispatch(MoveTaskCommand("ghost", "doing", 0))
  assert res.outcome == Outcome.NOOP
  same_slot = await q.dispatch(MoveTaskCommand("taskB", "todo", 1))
  assert same_slot.outcome == Outcome.NOOP
  assert api.calls == []


@pytest.mark.anyio
async def test_conflict_refetches_board() -> None:
  board, api = _board(), FakeApi()
  api.errors = [ConflictError("Version conflict")]

  async def refetch() -> dict:
    return {
      "id": "B1",
      "columns": [
        {"id": "todo", "position": 0, "tasks": [{"id": "taskB", "title": "B", "position": 0, "version": 5}]},
        {"id": "doing", "position": 1, "tasks": []},
      ],
    }

  q = MutationDispatchQueue(board, api, refetch=refetch)
  res = await q.dispatch(MoveTaskCommand("taskA", "doing", 0))
  assert res.outcome == Outcome.REFETCHED
  assert isinstance(res.error, ConflictError)
  assert _layout(board) == {"todo": [("taskB", 0)], "doing": []}
  assert board.task("taskB").version == 5


@pytest.mark.anyio
async def test_conflict_without_refetch_rolls_back() -> None:
  board, api = _board(), FakeApi()
  api.errors = [ConflictError("Version conflict")]
  q = MutationDispatchQueue(board, api)
  res = await q.dispatch(UpdateTaskCommand("taskA", title="Renamed"))
  assert res.outcome == Outcome.ROLLED_BACK
  assert board.task("taskA").title == "A"


@pytest.mark.anyio
async def test_newer_move_supersedes_older_and_persists_serially() -> None:
  board, api = _board(), FakeApi()
  gate = asyncio.Event()
  api.gates = [gate]
  q = MutationDispatchQueue(board, api)

  f1 = q.submit(MoveTaskCommand("taskA", "doing", 0))
  f2 = q.submit(MoveTaskCommand("taskA", "todo", 1))
  assert _layout(board)["todo"] == [("taskB", 0), ("taskA", 1)]
  assert q.pending("taskA") == 2

  gate.set()
  r1 = await f1
  r2 = await f2
  assert r1.outcome == Outcome.SUPERSEDED
  assert r2.outcome == Outcome.CONFIRMED
  assert api.max_active == 1
  # the second persist saw the version returned to the first
  assert api.calls[1] == ("move_task", ("taskA", "todo", 1, 1))
  assert board.task("taskA").version == 2
  assert _layout(board)["todo"] == [("taskB", 0), ("taskA", 1)]
  assert q.pending("taskA") == 0


@pytest.mark.anyio
async def test_failed_chain_rolls_back_newest_first() -> None:
  board, api = _board(), FakeApi()
  before = _layout(board)
  api.errors = [TransportError("down"), TransportError("down")]
  q = MutationDispatchQueue(board, api)

  f1 = q.submit(MoveTaskCommand("taskA", "doing", 0))
  f2 = q.submit(MoveTaskCommand("taskA", "todo", 1))
  r1, r2 = await f1, await f2
  assert r1.outcome == Outcome.SUPERSEDED and isinstance(r1.error, TransportError)
  assert r2.outcome == Outcome.ROLLED_BACK
  assert _layout(board) == before
  assert board.is_consistent()


@pytest.mark.anyio
async def test_older_failure_is_not_undone_after_newer_success() -> None:
  board, api = _board(), FakeApi()
  api.errors = [TransportError("down"), None]
  q = MutationDispatchQueue(board, api)

  f1 = q.submit(MoveTaskCommand("taskA", "doing", 0))
  f2 = q.submit(MoveTaskCommand("taskA", "doing", 1))
  r1, r2 = await f1, await f2
  assert r1.outcome == Outcome.SUPERSEDED
  assert r2.outcome == Outcome.CONFIRMED
  assert _layout(board) == {"todo": [("taskB", 0)], "doing": [("taskC", 0), ("taskA", 1)]}


@pytest.mark.anyio
async def test_broadcast_failure_does_not_fail_the_mutation() -> None:
  board, api = _board(), FakeApi()

  def emitter(ev, data):
    raise RuntimeError("socket closed")

  q = MutationDispatchQueue(board, api, emitter=emitter)
  res = await q.dispatch(MoveTaskCommand("taskA", "doing", 0))
  assert res.outcome == Outcome.CONFIRMED


@pytest.mark.anyio
async def test_create_task_swaps_temporary_id() -> None:
  board, api, emitted = _board(), FakeApi(), []

  async def emitter(ev, data):
    emitted.append((ev, data))

  q = MutationDispatchQueue(board, api, emitter=emitter)
  cmd = CreateTaskCommand("todo", "New")
  fut = q.submit(cmd)
  assert board.task(cmd.temp_id) is not None
  res = await fut
  assert res.outcome == Outcome.CONFIRMED
  assert board.task(cmd.temp_id) is None
  assert cmd.task_id == "srv-1"
  assert _layout(board)["todo"] == [("taskA", 0), ("taskB", 1), ("srv-1", 2)]
  assert emitted[0][0] == "task:create"
  assert emitted[0][1]["task"]["id"] == "srv-1"


@pytest.mark.anyio
async def test_create_task_failure_removes_placeholder() -> None:
  board, api = _board(), FakeApi()
  api.errors = [ForbiddenError("Insufficient role")]
  q = MutationDispatchQueue(board, api)
  cmd = CreateTaskCommand("todo", "New")
  res = await q.dispatch(cmd)
  assert res.outcome == Outcome.ROLLED_BACK
  assert _layout(board)["todo"] == [("taskA", 0), ("taskB", 1)]


@pytest.mark.anyio
async def test_delete_treats_not_found_as_done() -> None:
  board, api, emitted = _board(), FakeApi(), []
  api.errors = [NotFoundError("Task not found")]
  q = MutationDispatchQueue(board, api, emitter=lambda ev, data: emitted.append((ev, data)))
  res = await q.dispatch(DeleteTaskCommand("taskA"))
  assert res.outcome == Outcome.CONFIRMED
  assert board.task("taskA") is None
  assert emitted == [("task:delete", {"boardId": "B1", "taskId": "taskA"})]


@pytest.mark.anyio
async def test_delete_failure_restores_task_in_place() -> None:
  board, api = _board(), FakeApi()
  api.errors = [ForbiddenError("Insufficient role")]
  q = MutationDispatchQueue(board, api)
  res = await q.dispatch(DeleteTaskCommand("taskA"))
  assert res.outcome == Outcome.ROLLED_BACK
  assert _layout(board)["todo"] == [("taskA", 0), ("taskB", 1)]


@pytest.mark.anyio
async def test_update_sends_version_and_merges_result() -> None:
  board, api = _board(), FakeApi()
  board.task("taskA").version = 3
  q = MutationDispatchQueue(board, api)
  res = await q.dispatch(UpdateTaskCommand("taskA", title="Renamed", priority="HIGH"))
  assert res.outcome == Outcome.CONFIRMED
  assert api.calls[0] == ("update_task", ("taskA", {"title": "Renamed", "priority": "HIGH", "version": 3}))
  t = board.task("taskA")
  assert (t.title, t.priority, t.version) == ("Renamed", "HIGH", 4)


def test_update_command_rejects_unknown_fields() -> None:
  with pytest.raises(ValueError):
    UpdateTaskCommand("taskA", column_id="doing")


@pytest.mark.anyio
async def test_comment_failure_reverts_count() -> None:
  board, api = _board(), FakeApi()
  api.errors = [None, TransportError("down")]
  q = MutationDispatchQueue(board, api)
  ok = await q.dispatch(CreateCommentCommand("taskA", "first"))
  failed = await q.dispatch(CreateCommentCommand("taskA", "second"))
  assert ok.outcome == Outcome.CONFIRMED
  assert failed.outcome == Outcome.ROLLED_BACK
  assert board.task("taskA").comments_count == 1


@pytest.mark.anyio
async def test_drain_waits_for_everything() -> None:
  board, api = _board(), FakeApi()
  q = MutationDispatchQueue(board, api)
  q.submit(MoveTaskCommand("taskA", "doing", 0))
  q.submit(UpdateTaskCommand("taskB", title="B2"))
  await q.drain()
  assert q.pending("taskA") == 0 and q.pending("taskB") == 0
  assert len(api.calls) == 2


@pytest.mark.anyio
async def test_move_queued_behind_create_persists_against_server_id() -> None:
  board, api, emitted = _board(), FakeApi(), []
  q = MutationDispatchQueue(board, api, emitter=lambda ev, data: emitted.append((ev, data)))

  create = CreateTaskCommand("todo", "New")
  f1 = q.submit(create)
  f2 = q.submit(MoveTaskCommand(create.temp_id, "doing", 0))
  assert _layout(board)["doing"] == [(create.temp_id, 0), ("taskC", 1)]

  r1, r2 = await f1, await f2
  assert (r1.outcome, r2.outcome) == (Outcome.CONFIRMED, Outcome.CONFIRMED)
  assert api.calls[1] == ("move_task", ("srv-1", "doing", 0, 0))
  assert _layout(board) == {"todo": [("taskA", 0), ("taskB", 1)], "doing": [("srv-1", 0), ("taskC", 1)]}
  assert board.task("srv-1").version == 1
  assert [ev for ev, _ in emitted] == ["task:create", "task:move"]
  assert emitted[1][1]["taskId"] == "srv-1"
  assert q.pending(create.temp_id) == 0


@pytest.mark.anyio
async def test_update_queued_behind_create_keeps_local_edit() -> None:
  board, api = _board(), FakeApi()
  q = MutationDispatchQueue(board, api)

  create = CreateTaskCommand("todo", "New")
  f1 = q.submit(create)
  f2 = q.submit(UpdateTaskCommand(create.temp_id, title="Renamed"))
  r1, r2 = await f1, await f2
  assert (r1.outcome, r2.outcome) == (Outcome.CONFIRMED, Outcome.CONFIRMED)
  assert api.calls[1] == ("update_task", ("srv-1", {"title": "Renamed", "version": 0}))
  assert board.task(create.temp_id) is None
  t = board.task("srv-1")
  assert (t.title, t.version, t.position) == ("Renamed", 1, 2)


@pytest.mark.anyio
async def test_failed_create_fails_queued_move_without_calling_api() -> None:
  board, api = _board(), FakeApi()
  before = _layout(board)
  api.errors = [TransportError("down")]
  q = MutationDispatchQueue(board, api)

  create = CreateTaskCommand("todo", "New")
  f1 = q.submit(create)
  f2 = q.submit(MoveTaskCommand(create.temp_id, "doing", 0))
  r1, r2 = await f1, await f2
  assert r1.outcome == Outcome.ROLLED_BACK
  assert r2.outcome == Outcome.ROLLED_BACK
  assert isinstance(r2.error, NotFoundError)
  assert [name for name, _ in api.calls] == ["create_task"]
  assert _layout(board) == before
  assert board.is_consistent()


@pytest.mark.anyio
async def test_delete_queued_behind_create_deletes_server_record() -> None:
  board, api, emitted = _board(), FakeApi(), []
  q = MutationDispatchQueue(board, api, emitter=lambda ev, data: emitted.append((ev, data)))

  create = CreateTaskCommand("todo", "New")
  f1 = q.submit(create)
  f2 = q.submit(DeleteTaskCommand(create.temp_id))
  r1, r2 = await f1, await f2
  assert (r1.outcome, r2.outcome) == (Outcome.CONFIRMED, Outcome.CONFIRMED)
  assert api.calls[1] == ("delete_task", ("srv-1",))
  assert board.task("srv-1") is None and board.task(create.temp_id) is None
  assert emitted[1] == ("task:delete", {"boardId": "B1", "taskId": "srv-1"})


@pytest.mark.anyio
async def test_comment_queued_behind_create_counts_once() -> None:
  board, api = _board(), FakeApi()
  q = MutationDispatchQueue(board, api)

  create = CreateTaskCommand("todo", "New")
  f1 = q.submit(create)
  f2 = q.submit(CreateCommentCommand(create.temp_id, "first"))
  r1, r2 = await f1, await f2
  assert (r1.outcome, r2.outcome) == (Outcome.CONFIRMED, Outcome.CONFIRMED)
  assert api.calls[1] == ("create_comment", ({"taskId": "srv-1", "content": "first"},))
  assert board.task("srv-1").comments_count == 1


@pytest.mark.anyio
async def test_temporary_id_still_works_after_create_confirms() -> None:
  board, api = _board(), FakeApi()
  q = MutationDispatchQueue(board, api)

  create = CreateTaskCommand("todo", "New")
  await q.dispatch(create)
  res = await q.dispatch(UpdateTaskCommand(create.temp_id, priority="HIGH"))
  assert res.outcome == Outcome.CONFIRMED
  assert api.calls[1][1][0] == "srv-1"
  assert board.task("srv-1").priority == "HIGH"


@pytest.mark.anyio
async def test_delete_after_failed_update_still_deletes() -> None:
  board, api = _board(), FakeApi()
  api.errors = [TransportError("down"), None]
  q = MutationDispatchQueue(board, api)

  f1 = q.submit(UpdateTaskCommand("taskA", title="Renamed"))
  f2 = q.submit(DeleteTaskCommand("taskA"))
  r1, r2 = await f1, await f2
  assert r1.outcome == Outcome.SUPERSEDED and isinstance(r1.error, TransportError)
  assert r2.outcome == Outcome.CONFIRMED
  assert board.task("taskA") is None
  assert q.pending("taskA") == 0


@pytest.mark.anyio
async def test_failed_update_and_delete_restore_original_task() -> None:
  board, api = _board(), FakeApi()
  api.errors = [TransportError("down"), ForbiddenError("Insufficient role")]
  q = MutationDispatchQueue(board, api)

  f1 = q.submit(UpdateTaskCommand("taskA", title="Renamed"))
  f2 = q.submit(DeleteTaskCommand("taskA"))
  r1, r2 = await f1, await f2
  assert r1.outcome == Outcome.SUPERSEDED
  assert r2.outcome == Outcome.ROLLED_BACK
  assert _layout(board)["todo"] == [("taskA", 0), ("taskB", 1)]
  assert board.task("taskA").title == "A"


@pytest.mark.anyio
async def test_comment_does_not_supersede_a_move() -> None:
  board, api, emitted = _board(), FakeApi(), []
  q = MutationDispatchQueue(board, api, emitter=lambda ev, data: emitted.append(ev))

  f1 = q.submit(MoveTaskCommand("taskA", "doing", 0))
  f2 = q.submit(CreateCommentCommand("taskA", "moved it"))
  r1, r2 = await f1, await f2
  assert (r1.outcome, r2.outcome) == (Outcome.CONFIRMED, Outcome.CONFIRMED)
  assert emitted == ["task:move", "comment:create"]
