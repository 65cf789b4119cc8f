"""
Dense-position helpers shared by the API routes and the client board mirror.

Both sides keep sibling lists (tasks in a column, columns in a board) ordered
by a zero-based, gap-free ``position``. Every structural change goes through
these helpers so the renumbering rule is the same everywhere.
"""

from __future__ import annotations

from typing import Any, MutableSequence, Sequence


def clamp_index(index: int, length: int) -> int:
  return max(0, min(int(index), int(length)))


def resequence(items: Sequence[Any], attr: str = "position") -> None:
  for idx, x in enumerate(items):
    setattr(x, attr, idx)


def is_dense(items: Sequence[Any], attr: str = "position") -> bool:
  return [getattr(x, attr) for x in items] == list(range(len(items)))


def index_of(items: Sequence[Any], item_id: str) -> int:
  for idx, x in enumerate(items):
    if x.id == item_id:
      return idx
  return -1


def relocate(
  source: MutableSequence[Any],
  target: MutableSequence[Any],
  item_id: str,
  index: int,
  attr: str = "position",
) -> tuple[Any, int, int] | None:
  """
  Remove ``item_id`` from ``source`` and insert it into ``target`` at ``index``.

  ``source`` and ``target`` may be the same list (reorder). The index is
  clamped to ``[0, len(target)]`` measured after removal, then both lists are
  renumbered. Returns ``(item, old_index, new_index)`` or None when the item
  is not in ``source``.
  """
  old_idx = index_of(source, item_id)
  if old_idx < 0:
    return None
  item = source.pop(old_idx)
  new_idx = clamp_index(index, len(target))
  target.insert(new_idx, item)
  resequence(source, attr)
  if target is not source:
    resequence(target, attr)
  return item, old_idx, new_idx
