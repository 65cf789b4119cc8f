from __future__ import annotations

import re

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boardsync.activity import write_activity
from boardsync.deps import get_current_user, get_db, require_org_role
from boardsync.errors import ConflictError, NotFoundError
from boardsync.models import Organization, OrganizationMember, User
from boardsync.schemas import MemberAddIn, OrganizationCreateIn, OrganizationOut, PresenceOut

router = APIRouter(prefix="/organizations", tags=["organizations"])

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _slugify(name: str) -> str:
  return _SLUG_RE.sub("-", name.strip().lower()).strip("-")[:64] or "org"


def _org_out(o: Organization, role: str) -> OrganizationOut:
  return OrganizationOut(id=o.id, name=o.name, slug=o.slug, role=role)


@router.post("", response_model=OrganizationOut)
async def create_organization(
  payload: OrganizationCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
) -> OrganizationOut:
  slug = _slugify(payload.slug or payload.name)
  res = await db.execute(select(Organization.id).where(Organization.slug == slug))
  if res.scalar_one_or_none():
    raise ConflictError("Slug already taken")
  o = Organization(name=payload.name.strip(), slug=slug)
  db.add(o)
  await db.flush()
  db.add(OrganizationMember(organization_id=o.id, user_id=user.id, role="owner"))
  await write_activity(
    db,
    event_type="organization.created",
    entity_type="Organization",
    entity_id=o.id,
    organization_id=o.id,
    actor_id=user.id,
    payload={"name": o.name, "slug": o.slug},
  )
  await db.commit()
  return _org_out(o, "owner")


@router.get("", response_model=list[OrganizationOut])
async def list_organizations(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[OrganizationOut]:
  res = await db.execute(
    select(Organization, OrganizationMember.role)
    .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
    .where(OrganizationMember.user_id == user.id)
    .order_by(Organization.name.asc())
  )
  return [_org_out(o, role) for o, role in res.all()]


@router.post("/{organization_id}/members")
async def add_member(
  organization_id: str,
  payload: MemberAddIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  await require_org_role(organization_id, "admin", user.id, db)
  ures = await db.execute(select(User).where(User.id == payload.userId))
  if not ures.scalar_one_or_none():
    raise NotFoundError("User not found")
  res = await db.execute(
    select(OrganizationMember).where(
      OrganizationMember.organization_id == organization_id, OrganizationMember.user_id == payload.userId
    )
  )
  m = res.scalar_one_or_none()
  if m:
    m.role = payload.role
  else:
    db.add(OrganizationMember(organization_id=organization_id, user_id=payload.userId, role=payload.role))
  await write_activity(
    db,
    event_type="organization.member_added",
    entity_type="Organization",
    entity_id=organization_id,
    organization_id=organization_id,
    actor_id=user.id,
    payload={"userId": payload.userId, "role": payload.role},
  )
  await db.commit()
  return {"ok": True}


@router.get("/{organization_id}/presence", response_model=list[PresenceOut])
async def list_presence(
  organization_id: str,
  request: Request,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[PresenceOut]:
  await require_org_role(organization_id, "viewer", user.id, db)
  store = request.app.state.realtime.presence
  records = await store.get_all(organization_id)
  return [PresenceOut(userId=r.user_id, status=r.status, lastSeen=r.last_seen) for _, r in sorted(records.items())]
