"""
Undoable board mutations.

A command applies itself to the local ``BoardState`` (``do``), knows how to
revert that (``undo``), how to persist it through the HTTP API
(``persist``), how to fold the authoritative answer back in (``confirm``)
and which Socket.IO event announces it to other clients (``broadcast``).

Commands issued against a task that is still being created carry its
temporary id. ``resolve`` swaps in the persisted id once the create has
confirmed; one that never confirmed fails with ``NotFoundError`` instead of
reaching the API.
"""

from __future__ import annotations

import copy
import uuid
from typing import Any, Protocol

from boardsync.client.board import BoardState, MoveResult, RemovedTask, TaskState
from boardsync.errors import NotFoundError
from boardsync.realtime.events import ClientEvents

TEMP_PREFIX = "tmp-"


def is_placeholder(task_id: str) -> bool:
  return task_id.startswith(TEMP_PREFIX)


class MutationApi(Protocol):
  async def move_task(self, task_id: str, column_id: str, position: int, version: int | None = None) -> dict: ...

  async def create_task(self, data: dict) -> dict: ...

  async def update_task(self, task_id: str, data: dict) -> dict: ...

  async def delete_task(self, task_id: str) -> dict: ...

  async def create_comment(self, data: dict) -> dict: ...

  async def fetch_board(self, board_id: str) -> dict: ...


class Command:
  key: str = ""
  task_id: str = ""
  # A newer command on the same key decides the final state of the record.
  supersedable = True
  # NotFoundError from persist means the work is already done.
  accepts_not_found = False
  board_id = ""

  def resolve(self, board: BoardState) -> None:
    if self.task_id:
      self.task_id = board.resolve_id(self.task_id)

  def do(self, board: BoardState) -> bool:
    raise NotImplementedError

  def undo(self, board: BoardState) -> None:
    raise NotImplementedError

  async def persist(self, api: MutationApi) -> dict | None:
    raise NotImplementedError

  def confirm(self, board: BoardState, result: dict | None) -> None:
    pass

  def adopt(self, board: BoardState, result: dict | None) -> None:
    """Confirm while newer commands for the same record are still queued."""
    self.confirm(board, result)

  def sync_version(self, board: BoardState, result: dict | None) -> None:
    if not result or result.get("version") is None:
      return
    t = board.task(str(result.get("id")))
    if t is not None:
      t.version = int(result["version"])

  def broadcast(self, result: dict | None) -> tuple[str, dict] | None:
    return None

  def _require_persisted(self) -> None:
    if is_placeholder(self.task_id):
      raise NotFoundError("Task was never created")


class MoveTaskCommand(Command):
  def __init__(self, task_id: str, target_column_id: str, target_index: int, *, source_column_id: str | None = None) -> None:
    self.task_id = task_id
    self.key = task_id
    self.target_column_id = target_column_id
    self.target_index = target_index
    self.source_column_id = source_column_id
    self.move: MoveResult | None = None
    self._board: BoardState | None = None

  def do(self, board: BoardState) -> bool:
    self._board = board
    self.board_id = board.id
    source = self.source_column_id
    if source is None:
      found = board.locate(self.task_id)
      if found is None:
        return False
      source = found[0].id
    self.move = board.move_task(self.task_id, source, self.target_column_id, self.target_index)
    # Dropping a task back into its own slot is not a mutation.
    return self.move is not None and self.move.changed

  def undo(self, board: BoardState) -> None:
    found = board.locate(self.task_id)
    if found is None or self.move is None:
      return
    board.move_task(self.task_id, found[0].id, self.move.from_column_id, self.move.from_index)

  async def persist(self, api: MutationApi) -> dict:
    self._require_persisted()
    # read at persist time: a superseded predecessor may have bumped it
    t = self._board.task(self.task_id) if self._board else None
    return await api.move_task(
      self.task_id, self.move.to_column_id, self.move.to_index, version=t.version if t else None
    )

  def confirm(self, board: BoardState, result: dict | None) -> None:
    if result:
      board.merge_task(result)

  def broadcast(self, result: dict | None) -> tuple[str, dict] | None:
    if not result:
      return None
    return ClientEvents.TASK_MOVE, {
      "boardId": self.board_id,
      "taskId": self.task_id,
      "columnId": result["columnId"],
      "position": result["position"],
      "version": result.get("version"),
    }


class CreateTaskCommand(Command):
  # later commands on the placeholder depend on the create, they never replace it
  supersedable = False

  def __init__(
    self,
    column_id: str,
    title: str,
    *,
    description: str | None = None,
    priority: str = "MEDIUM",
    due_date: str | None = None,
    assignee_id: str | None = None,
    parent_id: str | None = None,
    tag_ids: list[str] | None = None,
  ) -> None:
    self.temp_id = f"{TEMP_PREFIX}{uuid.uuid4().hex}"
    self.key = self.temp_id
    self.task_id = self.temp_id
    self.column_id = column_id
    self.title = title
    self.description = description
    self.priority = priority
    self.due_date = due_date
    self.assignee_id = assignee_id
    self.parent_id = parent_id
    self.tag_ids = list(tag_ids or [])

  def do(self, board: BoardState) -> bool:
    self.board_id = board.id
    t = TaskState(
      id=self.temp_id,
      column_id=self.column_id,
      title=self.title,
      description=self.description,
      priority=self.priority,
      due_date=self.due_date,
      assignee_id=self.assignee_id,
      parent_id=self.parent_id,
    )
    return board.add_task(self.column_id, t)

  def undo(self, board: BoardState) -> None:
    board.remove_task(self.temp_id)

  async def persist(self, api: MutationApi) -> dict:
    return await api.create_task(
      {
        "columnId": self.column_id,
        "title": self.title,
        "description": self.description,
        "priority": self.priority,
        "dueDate": self.due_date,
        "assigneeId": self.assignee_id,
        "parentId": self.parent_id,
        "tagIds": self.tag_ids,
      }
    )

  def confirm(self, board: BoardState, result: dict | None) -> None:
    if not result:
      return
    self.task_id = result["id"]
    if board.replace_task(self.temp_id, TaskState.from_payload(result)):
      board.merge_task(result)
    else:
      board.aliases[self.temp_id] = self.task_id

  def adopt(self, board: BoardState, result: dict | None) -> None:
    if not result:
      return
    self.task_id = result["id"]
    t = board.task(self.temp_id)
    if t is None:
      board.aliases[self.temp_id] = self.task_id
      return
    # queued commands own the local fields and slot; only the identity changes
    local = copy.deepcopy(t)
    local.id = self.task_id
    local.version = int(result.get("version") or 0)
    local.creator_id = result.get("creatorId", local.creator_id)
    if not board.replace_task(self.temp_id, local):
      board.aliases[self.temp_id] = self.task_id

  def broadcast(self, result: dict | None) -> tuple[str, dict] | None:
    if not result:
      return None
    return ClientEvents.TASK_CREATE, {"boardId": self.board_id, "task": result}


_UPDATE_FIELDS = {
  "title": "title",
  "description": "description",
  "priority": "priority",
  "due_date": "dueDate",
  "assignee_id": "assigneeId",
  "parent_id": "parentId",
}


class UpdateTaskCommand(Command):
  def __init__(self, task_id: str, **changes: Any) -> None:
    unknown = set(changes) - set(_UPDATE_FIELDS)
    if unknown:
      raise ValueError(f"Unsupported task fields: {sorted(unknown)}")
    self.task_id = task_id
    self.key = task_id
    self.changes = changes
    self.previous: dict[str, Any] | None = None
    self._board: BoardState | None = None

  def do(self, board: BoardState) -> bool:
    self._board = board
    self.board_id = board.id
    self.previous = board.update_task(self.task_id, **self.changes)
    return self.previous is not None

  def undo(self, board: BoardState) -> None:
    if self.previous is not None:
      board.update_task(self.task_id, **self.previous)

  async def persist(self, api: MutationApi) -> dict:
    self._require_persisted()
    t = self._board.task(self.task_id) if self._board else None
    data = {_UPDATE_FIELDS[k]: v for k, v in self.changes.items()}
    data["version"] = t.version if t else None
    return await api.update_task(self.task_id, data)

  def confirm(self, board: BoardState, result: dict | None) -> None:
    if result:
      board.merge_task(result)

  def broadcast(self, result: dict | None) -> tuple[str, dict] | None:
    if not result:
      return None
    return ClientEvents.TASK_UPDATE, {"boardId": self.board_id, "task": result}


class DeleteTaskCommand(Command):
  accepts_not_found = True

  def __init__(self, task_id: str) -> None:
    self.task_id = task_id
    self.key = task_id
    self.removed: RemovedTask | None = None

  def do(self, board: BoardState) -> bool:
    self.board_id = board.id
    self.removed = board.remove_task(self.task_id)
    return self.removed is not None

  def undo(self, board: BoardState) -> None:
    if self.removed is None:
      return
    # removed while still a placeholder; it comes back under its persisted id
    self.removed.task.id = self.task_id
    board.add_task(self.removed.column_id, self.removed.task, index=self.removed.index)

  async def persist(self, api: MutationApi) -> dict:
    self._require_persisted()
    return await api.delete_task(self.task_id)

  def sync_version(self, board: BoardState, result: dict | None) -> None:
    pass

  def broadcast(self, result: dict | None) -> tuple[str, dict] | None:
    if is_placeholder(self.task_id):
      return None
    return ClientEvents.TASK_DELETE, {"boardId": self.board_id, "taskId": self.task_id}


class CreateCommentCommand(Command):
  supersedable = False

  def __init__(self, task_id: str, content: str) -> None:
    self.task_id = task_id
    self.key = task_id
    self.content = content
    self.comment: dict | None = None

  def do(self, board: BoardState) -> bool:
    self.board_id = board.id
    t = board.task(self.task_id)
    if t is None:
      return False
    t.comments_count += 1
    return True

  def undo(self, board: BoardState) -> None:
    t = board.task(self.task_id)
    if t is not None:
      t.comments_count = max(0, t.comments_count - 1)

  async def persist(self, api: MutationApi) -> dict:
    self._require_persisted()
    return await api.create_comment({"taskId": self.task_id, "content": self.content})

  def confirm(self, board: BoardState, result: dict | None) -> None:
    self.comment = result

  def sync_version(self, board: BoardState, result: dict | None) -> None:
    pass

  def broadcast(self, result: dict | None) -> tuple[str, dict] | None:
    if not result:
      return None
    return ClientEvents.COMMENT_CREATE, {"taskId": self.task_id, "comment": result}
