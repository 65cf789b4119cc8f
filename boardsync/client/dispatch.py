"""
Mutation dispatch queue.

Applies commands optimistically, persists them one at a time per record and
reconciles the local board with the authoritative answer:

* success of the newest command for a record -> ``confirm`` + broadcast;
* success of an older one -> only its version is kept (a newer command owns
  the record's final state);
* failure of the newest -> undo it, plus any older failed commands for the
  same record back to the last success, newest first;
* ``ConflictError`` -> refetch the board when a refetch hook is available.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from boardsync.client.board import BoardState
from boardsync.client.commands import Command, MutationApi
from boardsync.config import settings
from boardsync.errors import BoardSyncError, ConflictError, NotFoundError, TransportError

logger = logging.getLogger(__name__)

Emitter = Callable[[str, dict], Any]
Refetch = Callable[[], Awaitable[Any]]


class Outcome(str, Enum):
  CONFIRMED = "confirmed"
  ROLLED_BACK = "rolled_back"
  REFETCHED = "refetched"
  SUPERSEDED = "superseded"
  NOOP = "noop"


@dataclass
class DispatchResult:
  outcome: Outcome
  command: Command
  result: dict | None = None
  error: BoardSyncError | None = None


@dataclass(eq=False)
class _Entry:
  command: Command
  key: str
  generation: int
  done: bool = False
  error: BoardSyncError | None = None
  result: dict | None = field(default=None, repr=False)


class MutationDispatchQueue:
  def __init__(
    self,
    board: BoardState,
    api: MutationApi,
    *,
    emitter: Emitter | None = None,
    refetch: Refetch | None = None,
    timeout: float | None = None,
  ) -> None:
    self.board = board
    self.api = api
    self.emitter = emitter
    self.refetch = refetch
    self.timeout = settings.dispatch_timeout_seconds if timeout is None else float(timeout)
    self._locks: dict[str, asyncio.Lock] = {}
    self._generations: dict[str, int] = {}
    self._ledger: dict[str, list[_Entry]] = {}
    self._tasks: set[asyncio.Task] = set()

  def submit(self, command: Command) -> asyncio.Future:
    """
    Apply ``command`` locally right away and schedule its persistence.

    Must be called from a running event loop. The returned future resolves
    to a ``DispatchResult``.
    """
    loop = asyncio.get_running_loop()
    command.resolve(self.board)
    if not command.do(self.board):
      fut = loop.create_future()
      fut.set_result(DispatchResult(Outcome.NOOP, command))
      return fut

    key = self._key_for(command)
    # only supersedable commands compete for the final state of a record
    gen = self._generations.get(key, 0)
    if command.supersedable:
      gen += 1
      self._generations[key] = gen
    entry = _Entry(command=command, key=key, generation=gen)
    self._ledger.setdefault(key, []).append(entry)

    task = loop.create_task(self._run(entry))
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)
    return task

  async def dispatch(self, command: Command) -> DispatchResult:
    return await self.submit(command)

  def pending(self, key: str) -> int:
    return sum(1 for e in self._ledger.get(key, []) if not e.done)

  async def drain(self) -> None:
    while self._tasks:
      await asyncio.gather(*list(self._tasks), return_exceptions=True)

  async def _run(self, entry: _Entry) -> DispatchResult:
    cmd = entry.command
    key = entry.key
    lock = self._locks.setdefault(key, asyncio.Lock())
    async with lock:
      cmd.resolve(self.board)
      try:
        entry.result = await self._persist(cmd)
      except NotFoundError as exc:
        if not cmd.accepts_not_found:
          entry.error = exc
      except BoardSyncError as exc:
        entry.error = exc
      entry.done = True

      if cmd.supersedable and self._generations.get(key) != entry.generation:
        if entry.error is None:
          cmd.sync_version(self.board, entry.result)
        else:
          logger.info(f"Superseded {type(cmd).__name__} key={key} failed: {entry.error.message}")
        return DispatchResult(Outcome.SUPERSEDED, cmd, entry.result, entry.error)

      if entry.error is None:
        res = await self._confirm(entry, settled=not self._has_successor(entry))
      else:
        res = await self._fail(entry)
      self._forget(entry)

    if key not in self._ledger:
      self._locks.pop(key, None)
    return res

  async def _persist(self, cmd: Command) -> dict | None:
    try:
      return await asyncio.wait_for(cmd.persist(self.api), timeout=self.timeout)
    except asyncio.TimeoutError:
      raise TransportError(f"Request timed out after {self.timeout:g}s")

  async def _confirm(self, entry: _Entry, *, settled: bool = True) -> DispatchResult:
    cmd = entry.command
    if settled:
      cmd.confirm(self.board, entry.result)
    else:
      cmd.adopt(self.board, entry.result)
    await self._emit(cmd.broadcast(entry.result))
    return DispatchResult(Outcome.CONFIRMED, cmd, entry.result)

  async def _fail(self, entry: _Entry) -> DispatchResult:
    cmd = entry.command
    error = entry.error
    if isinstance(error, ConflictError) and self.refetch is not None:
      try:
        fresh = await self.refetch()
      except BoardSyncError as exc:
        logger.warning(f"Refetch after conflict failed, rolling back instead: {exc.message}")
      else:
        self.board.replace(fresh if isinstance(fresh, BoardState) else BoardState.from_payload(fresh))
        logger.info(f"{type(cmd).__name__} key={cmd.key} conflicted; board refetched")
        return DispatchResult(Outcome.REFETCHED, cmd, None, error)

    chain = self._rollback_chain(entry)
    for e in chain:
      e.command.undo(self.board)
    logger.info(f"{type(cmd).__name__} key={cmd.key} rolled back ({len(chain)} command(s)): {error.message}")
    return DispatchResult(Outcome.ROLLED_BACK, cmd, None, error)

  def _rollback_chain(self, entry: _Entry) -> list[_Entry]:
    chain = [entry]
    if not entry.command.supersedable:
      return chain
    entries = self._ledger.get(entry.key, [])
    idx = entries.index(entry) if entry in entries else 0
    for e in reversed(entries[:idx]):
      if not e.command.supersedable:
        continue
      if e.error is None:
        break
      chain.append(e)
    return chain

  def _has_successor(self, entry: _Entry) -> bool:
    entries = self._ledger.get(entry.key, [])
    idx = entries.index(entry) if entry in entries else len(entries)
    return idx + 1 < len(entries)

  def _key_for(self, command: Command) -> str:
    key = self.board.resolve_id(command.key)
    # commands still queued under a temporary id keep their lock
    for temp, real in self.board.aliases.items():
      if real == key and temp in self._ledger:
        return temp
    return key

  def _forget(self, entry: _Entry) -> None:
    key = entry.key
    entries = self._ledger.get(key, [])
    if entry in entries:
      if entry.command.supersedable:
        del entries[: entries.index(entry) + 1]
      else:
        entries.remove(entry)
    if not entries:
      self._ledger.pop(key, None)
      self._generations.pop(key, None)

  async def _emit(self, event: tuple[str, dict] | None) -> None:
    if self.emitter is None or event is None:
      return
    name, payload = event
    try:
      res = self.emitter(name, payload)
      if inspect.isawaitable(res):
        await res
    except Exception as exc:
      logger.warning(f"Broadcast {name} failed: {exc}")
