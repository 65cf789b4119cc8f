from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import bearer, bootstrap_board, create_task, register


@pytest.mark.anyio
async def test_search_matches_title_and_description_case_insensitively(client: AsyncClient) -> None:
  me = await register(client, "owner@example.com")
  token = me["token"]
  board = await bootstrap_board(client, token)
  todo = board["columns"][0]["id"]
  a = await create_task(client, token, todo, "Ship Release notes")
  b = await create_task(client, token, todo, "Polish", description="final RELEASE checklist")
  await create_task(client, token, todo, "Unrelated")

  r = await client.get("/tasks/search", params={"organizationId": board["organizationId"], "q": "release"}, headers=bearer(token))
  assert r.status_code == 200, r.text
  assert {t["id"] for t in r.json()} == {a["id"], b["id"]}
  assert all(t["boardId"] == board["id"] for t in r.json())

  limited = await client.get(
    "/tasks/search", params={"organizationId": board["organizationId"], "q": "release", "limit": 1}, headers=bearer(token)
  )
  assert len(limited.json()) == 1


@pytest.mark.anyio
async def test_search_blank_query_and_wildcards(client: AsyncClient) -> None:
  me = await register(client, "owner@example.com")
  token = me["token"]
  board = await bootstrap_board(client, token)
  await create_task(client, token, board["columns"][0]["id"], "Plain title")
  org_id = board["organizationId"]

  assert (await client.get("/tasks/search", params={"organizationId": org_id, "q": "   "}, headers=bearer(token))).json() == []
  # LIKE wildcards are matched literally
  assert (await client.get("/tasks/search", params={"organizationId": org_id, "q": "%"}, headers=bearer(token))).json() == []


@pytest.mark.anyio
async def test_search_is_scoped_to_the_organization(client: AsyncClient) -> None:
  owner = await register(client, "owner@example.com")
  other = await register(client, "other@example.com")
  mine = await bootstrap_board(client, owner["token"], org_name="Acme")
  theirs = await bootstrap_board(client, other["token"], org_name="Globex")
  await create_task(client, owner["token"], mine["columns"][0]["id"], "Budget review")
  await create_task(client, other["token"], theirs["columns"][0]["id"], "Budget forecast")

  r = await client.get("/tasks/search", params={"organizationId": mine["organizationId"], "q": "budget"}, headers=bearer(owner["token"]))
  assert [t["title"] for t in r.json()] == ["Budget review"]

  denied = await client.get("/tasks/search", params={"organizationId": theirs["organizationId"], "q": "budget"}, headers=bearer(owner["token"]))
  assert denied.status_code == 403


@pytest.mark.anyio
async def test_board_activities_latest_first(client: AsyncClient) -> None:
  me = await register(client, "owner@example.com")
  token = me["token"]
  board = await bootstrap_board(client, token)
  todo, doing = board["columns"][0]["id"], board["columns"][1]["id"]
  t = await create_task(client, token, todo, "Track me")
  r = await client.post(f"/tasks/{t['id']}/move", json={"columnId": doing, "position": 0}, headers=bearer(token))
  assert r.status_code == 200, r.text

  res = await client.get(f"/boards/{board['id']}/activities", headers=bearer(token))
  assert res.status_code == 200, res.text
  items = res.json()
  assert items[0]["eventType"] == "task.moved"
  assert items[0]["taskId"] == t["id"] and items[0]["actorId"] == me["user"]["id"]
  assert "task.created" in [a["eventType"] for a in items]

  one = await client.get(f"/boards/{board['id']}/activities", params={"limit": 1}, headers=bearer(token))
  assert [a["eventType"] for a in one.json()] == ["task.moved"]


@pytest.mark.anyio
async def test_board_activities_require_board_access(client: AsyncClient) -> None:
  owner = await register(client, "owner@example.com")
  stranger = await register(client, "stranger@example.com")
  board = await bootstrap_board(client, owner["token"])
  r = await client.get(f"/boards/{board['id']}/activities", headers=bearer(stranger["token"]))
  assert r.status_code == 403
