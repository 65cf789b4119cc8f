"""
Client-side mirror of a board.

``BoardState`` is a plain in-memory structure that the UI mutates
optimistically and that remote Socket.IO events are merged into. Every
operation is synchronous and keeps task and column positions dense.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from typing import Any

from boardsync.ordering import clamp_index, index_of, is_dense, relocate, resequence

_TASK_KEYS = {
  "id": "id",
  "columnId": "column_id",
  "position": "position",
  "title": "title",
  "description": "description",
  "priority": "priority",
  "dueDate": "due_date",
  "assigneeId": "assignee_id",
  "creatorId": "creator_id",
  "parentId": "parent_id",
  "tags": "tags",
  "commentsCount": "comments_count",
  "attachmentsCount": "attachments_count",
  "version": "version",
}

# structural fields only change through move/add/remove
_STRUCTURAL = {"id", "column_id", "position"}


@dataclass
class TaskState:
  id: str
  column_id: str
  position: int = 0
  title: str = ""
  description: str | None = None
  priority: str = "MEDIUM"
  due_date: str | None = None
  assignee_id: str | None = None
  creator_id: str | None = None
  parent_id: str | None = None
  tags: list[dict] = field(default_factory=list)
  comments_count: int = 0
  attachments_count: int = 0
  version: int = 0

  @classmethod
  def from_payload(cls, data: dict[str, Any]) -> TaskState:
    kw = {attr: data[key] for key, attr in _TASK_KEYS.items() if key in data}
    return cls(**kw)

  def to_payload(self) -> dict[str, Any]:
    return {key: copy.deepcopy(getattr(self, attr)) for key, attr in _TASK_KEYS.items()}


@dataclass
class ColumnState:
  id: str
  name: str = ""
  color: str = "#6b7280"
  position: int = 0
  tasks: list[TaskState] = field(default_factory=list)

  @classmethod
  def from_payload(cls, data: dict[str, Any]) -> ColumnState:
    tasks = [TaskState.from_payload({**t, "columnId": data["id"]}) for t in data.get("tasks") or []]
    tasks.sort(key=lambda t: t.position)
    return cls(id=data["id"], name=data.get("name", ""), color=data.get("color") or "#6b7280", position=int(data.get("position", 0)), tasks=tasks)


@dataclass(frozen=True)
class MoveResult:
  task_id: str
  from_column_id: str
  from_index: int
  to_column_id: str
  to_index: int

  @property
  def changed(self) -> bool:
    return self.from_column_id != self.to_column_id or self.from_index != self.to_index


@dataclass(frozen=True)
class RemovedTask:
  task: TaskState
  column_id: str
  index: int


@dataclass(frozen=True)
class DropTarget:
  column_id: str
  index: int


@dataclass
class BoardState:
  id: str
  name: str = ""
  project_id: str = ""
  organization_id: str = ""
  columns: list[ColumnState] = field(default_factory=list)
  # temporary id -> persisted id, filled in as creates confirm
  aliases: dict[str, str] = field(default_factory=dict, repr=False)

  @classmethod
  def from_payload(cls, data: dict[str, Any]) -> BoardState:
    columns = [ColumnState.from_payload(c) for c in data.get("columns") or []]
    columns.sort(key=lambda c: c.position)
    b = cls(
      id=data["id"],
      name=data.get("name", ""),
      project_id=data.get("projectId", ""),
      organization_id=data.get("organizationId", ""),
      columns=columns,
    )
    b._renumber_all()
    return b

  # lookups

  def column(self, column_id: str) -> ColumnState | None:
    for c in self.columns:
      if c.id == column_id:
        return c
    return None

  def locate(self, task_id: str) -> tuple[ColumnState, int] | None:
    for c in self.columns:
      idx = index_of(c.tasks, task_id)
      if idx >= 0:
        return c, idx
    return None

  def task(self, task_id: str) -> TaskState | None:
    found = self.locate(task_id)
    if found is None:
      return None
    c, idx = found
    return c.tasks[idx]

  # task operations

  def move_task(self, task_id: str, source_column_id: str, target_column_id: str, target_index: int) -> MoveResult | None:
    """
    Move a task between (or within) columns.

    A task that is not in ``source_column_id``, or an unknown target column,
    makes this a no-op returning None. The index is clamped to the target
    column's length after removal and both columns are renumbered.
    """
    source = self.column(source_column_id)
    target = self.column(target_column_id)
    if source is None or target is None:
      return None
    moved = relocate(source.tasks, target.tasks, task_id, target_index)
    if moved is None:
      return None
    t, from_idx, to_idx = moved
    t.column_id = target.id
    return MoveResult(task_id, source.id, from_idx, target.id, to_idx)

  def add_task(self, column_id: str, task: TaskState, index: int | None = None) -> bool:
    c = self.column(column_id)
    if c is None or self.locate(task.id) is not None:
      return False
    idx = len(c.tasks) if index is None else clamp_index(index, len(c.tasks))
    task.column_id = c.id
    c.tasks.insert(idx, task)
    resequence(c.tasks)
    return True

  def update_task(self, task_id: str, **changes: Any) -> dict[str, Any] | None:
    """Apply field changes; returns the previous values (for undo) or None for an unknown task."""
    t = self.task(task_id)
    if t is None:
      return None
    allowed = {f.name for f in fields(TaskState)} - _STRUCTURAL
    unknown = set(changes) - allowed
    if unknown:
      raise ValueError(f"Unknown task fields: {sorted(unknown)}")
    previous = {k: copy.deepcopy(getattr(t, k)) for k in changes}
    for k, v in changes.items():
      setattr(t, k, v)
    return previous

  def remove_task(self, task_id: str) -> RemovedTask | None:
    found = self.locate(task_id)
    if found is None:
      return None
    c, idx = found
    t = c.tasks.pop(idx)
    resequence(c.tasks)
    return RemovedTask(task=t, column_id=c.id, index=idx)

  def replace_task(self, old_id: str, task: TaskState) -> bool:
    """Swap a task record in place (e.g. temporary id -> persisted id), keeping its slot."""
    found = self.locate(old_id)
    if found is None:
      return False
    c, idx = found
    if task.id != old_id and self.locate(task.id) is not None:
      return False
    task.column_id = c.id
    task.position = idx
    c.tasks[idx] = task
    if task.id != old_id:
      self.aliases[old_id] = task.id
    return True

  def resolve_id(self, task_id: str) -> str:
    """The persisted id for a task created under a temporary one."""
    return self.aliases.get(task_id, task_id)

  def merge_task(self, data: dict[str, Any]) -> bool:
    """Merge an authoritative task record, including its column and position."""
    t = self.task(data["id"])
    if t is None:
      return False
    incoming = TaskState.from_payload(data)
    changes = {
      attr: getattr(incoming, attr) for key, attr in _TASK_KEYS.items() if key in data and attr not in _STRUCTURAL
    }
    self.update_task(t.id, **changes)
    column_id = data.get("columnId") or t.column_id
    position = int(data.get("position", t.position))
    if column_id != t.column_id or position != t.position:
      self.move_task(t.id, t.column_id, column_id, position)
    return True

  # column operations

  def add_column(self, column: ColumnState, index: int | None = None) -> bool:
    if self.column(column.id) is not None:
      return False
    idx = len(self.columns) if index is None else clamp_index(index, len(self.columns))
    self.columns.insert(idx, column)
    resequence(self.columns)
    for t in column.tasks:
      t.column_id = column.id
    resequence(column.tasks)
    return True

  def update_column(self, column_id: str, *, name: str | None = None, color: str | None = None) -> bool:
    c = self.column(column_id)
    if c is None:
      return False
    if name is not None:
      c.name = name
    if color is not None:
      c.color = color
    return True

  def remove_column(self, column_id: str) -> ColumnState | None:
    idx = index_of(self.columns, column_id)
    if idx < 0:
      return None
    c = self.columns.pop(idx)
    resequence(self.columns)
    return c

  def reorder_columns(self, column_ids: list[str]) -> None:
    by_id = {c.id: c for c in self.columns}
    if len(column_ids) != len(by_id) or set(column_ids) != set(by_id):
      raise ValueError("column_ids must name every column exactly once")
    self.columns = [by_id[cid] for cid in column_ids]
    resequence(self.columns)

  # drag and drop

  def resolve_drop_target(self, active_task_id: str, over_id: str) -> DropTarget | None:
    """
    Map a drop over ``over_id`` to a column and index.

    Over a task: insert immediately before it, counted with the dragged task
    removed. Over a column: append. Anything else resolves to None.
    """
    if over_id == active_task_id:
      found = self.locate(active_task_id)
      if found is None:
        return None
      return DropTarget(found[0].id, found[1])
    found = self.locate(over_id)
    if found is not None:
      c, _ = found
      rest = [t for t in c.tasks if t.id != active_task_id]
      return DropTarget(c.id, index_of(rest, over_id))
    c = self.column(over_id)
    if c is not None:
      return DropTarget(c.id, len([t for t in c.tasks if t.id != active_task_id]))
    return None

  # remote merges

  def apply_remote_moved(self, data: dict[str, Any]) -> MoveResult | None:
    task_id = data.get("taskId")
    found = self.locate(task_id) if task_id else None
    if found is None:
      return None
    current, _ = found
    res = self.move_task(task_id, current.id, data.get("columnId"), int(data.get("position", 0)))
    # the version is authoritative even when the slot is already right
    if data.get("version") is not None:
      self.task(task_id).version = int(data["version"])
    return res

  def apply_remote_created(self, data: dict[str, Any]) -> bool:
    if not data or not data.get("id") or self.locate(data["id"]) is not None:
      return False
    t = TaskState.from_payload(data)
    return self.add_task(t.column_id, t, index=t.position)

  def apply_remote_updated(self, data: dict[str, Any]) -> bool:
    if not data or not data.get("id"):
      return False
    return self.merge_task(data)

  def apply_remote_deleted(self, task_id: Any) -> bool:
    if isinstance(task_id, dict):
      task_id = task_id.get("taskId") or task_id.get("id")
    if not task_id:
      return False
    return self.remove_task(str(task_id)) is not None

  # whole-board helpers

  def snapshot(self) -> list[ColumnState]:
    return copy.deepcopy(self.columns)

  def restore(self, snapshot: list[ColumnState]) -> None:
    self.columns = copy.deepcopy(snapshot)

  def replace(self, board: BoardState) -> None:
    self.id = board.id
    self.name = board.name
    self.project_id = board.project_id
    self.organization_id = board.organization_id
    self.columns = copy.deepcopy(board.columns)

  def is_consistent(self) -> bool:
    seen: set[str] = set()
    if not is_dense(self.columns):
      return False
    for c in self.columns:
      if not is_dense(c.tasks):
        return False
      for t in c.tasks:
        if t.id in seen or t.column_id != c.id:
          return False
        seen.add(t.id)
    return True

  def _renumber_all(self) -> None:
    resequence(self.columns)
    for c in self.columns:
      resequence(c.tasks)
