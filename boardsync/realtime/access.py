from __future__ import annotations

import logging

from sqlalchemy import select

from boardsync.db import SessionLocal
from boardsync.deps import organization_for_board, task_with_board
from boardsync.errors import NotFoundError
from boardsync.models import OrganizationMember
from boardsync.realtime.registry import SessionClaims

logger = logging.getLogger(__name__)


async def db_room_authorizer(session: SessionClaims, kind: str, room_id: str) -> bool:
  """Room joins require membership of the organization that owns the room."""
  async with SessionLocal() as db:
    try:
      if kind == "organization":
        org_id = room_id
      elif kind == "board":
        org_id = await organization_for_board(room_id, db)
      else:
        _, board_id = await task_with_board(room_id, db)
        org_id = await organization_for_board(board_id, db)
    except NotFoundError:
      return False
    res = await db.execute(
      select(OrganizationMember.id).where(
        OrganizationMember.organization_id == org_id, OrganizationMember.user_id == session.user_id
      )
    )
    allowed = res.scalar_one_or_none() is not None
  if not allowed:
    logger.info(f"[WS] join {kind}:{room_id} denied for user={session.user_id}")
  return allowed
