from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from conftest import SessionLocal, create_task, grant, signup
from taskhub.accesses.service import list_for_task
from taskhub.audit import task_history
from taskhub.errors import NotFound, ValidationError
from taskhub.models import Access, AccessLevel, Attachment, Task, TaskVisibility
from taskhub.tasks import service as tasks_service


@pytest.mark.anyio
async def test_create_grants_creator_full_access(client: AsyncClient) -> None:
  pid, headers = await signup(client, "creator@example.com", name="Creator")
  body = await create_task(client, headers, "First task")
  assert body["visibility"] == "Private"

  async with SessionLocal() as db:
    rows = (await db.execute(select(Access).where(Access.task_id == body["id"]))).scalars().all()
    assert len(rows) == 1
    assert rows[0].accesslevel == AccessLevel.FULL_ACCESS
    events = await task_history(db, body["id"])
    assert [(e.event_type, e.payload["name"]) for e in events] == [("task.created", "First task")]


@pytest.mark.anyio
async def test_create_requires_auth_and_valid_name(client: AsyncClient) -> None:
  res = await client.post("/api/tasks", json={"name": "Anon"})
  assert res.status_code == 401

  _, headers = await signup(client, "creator@example.com", name="Creator")
  res = await client.post("/api/tasks", json={"name": "x"}, headers=headers)
  assert res.status_code == 400
  assert res.json() == {"error": "Bad Request", "description": "Name must be at least 2 characters long."}

  res = await client.post("/api/tasks", json={"name": "ok", "visibility": "Secret"}, headers=headers)
  assert res.status_code == 422


@pytest.mark.anyio
async def test_create_with_unknown_creator_leaves_nothing(client: AsyncClient) -> None:
  async with SessionLocal() as db:
    with pytest.raises(NotFound):
      await tasks_service.create_task(db, creator_pid="ghost", name="Orphan")
    assert (await tasks_service.search_for_anon(db, "Orphan")) == []
    with pytest.raises(ValidationError):
      await tasks_service.create_task(db, creator_pid="ghost", name="x")


@pytest.mark.anyio
async def test_create_rolls_back_task_when_owner_grant_step_fails(client: AsyncClient, monkeypatch) -> None:
  pid, _ = await signup(client, "creator@example.com", name="Creator")

  async def failing_audit(*args, **kwargs) -> None:
    raise RuntimeError("audit store down")

  monkeypatch.setattr(tasks_service, "write_audit", failing_audit)
  async with SessionLocal() as db:
    with pytest.raises(RuntimeError):
      await tasks_service.create_task(db, creator_pid=pid, name="Doomed")

  async with SessionLocal() as db:
    assert (await db.execute(select(Task).where(Task.name == "Doomed"))).scalars().all() == []
    assert (await db.execute(select(Access))).scalars().all() == []


@pytest.mark.anyio
async def test_list_public_only_returns_public(client: AsyncClient) -> None:
  _, headers = await signup(client, "creator@example.com", name="Creator")
  await create_task(client, headers, "Private task")
  pub = await create_task(client, headers, "Public task", "Public")
  await create_task(client, headers, "Paid task", "Paid")

  res = await client.get("/api/tasks/list")
  assert res.status_code == 200
  assert [t["id"] for t in res.json()] == [pub["id"]]


@pytest.mark.anyio
async def test_search_anon_and_user_union(client: AsyncClient) -> None:
  _, owner = await signup(client, "owner@example.com", name="Owner")
  _, viewer = await signup(client, "viewer@example.com", name="Viewer")
  _, outsider = await signup(client, "outsider@example.com", name="Outsider")
  secret = await create_task(client, owner, "Report secret")
  paid = await create_task(client, owner, "Report paid", "Paid")
  public = await create_task(client, owner, "Report public", "Public")
  await create_task(client, owner, "Unrelated", "Public")
  res = await grant(client, owner, secret["id"], "viewer@example.com", "View")
  assert res.status_code == 200, res.text

  anon = await client.post("/api/tasks/search", json={"name": "report"})
  assert {t["id"] for t in anon.json()} == {paid["id"], public["id"]}

  mine = await client.post("/api/tasks/search", json={"name": "REPORT"}, headers=viewer)
  assert {t["id"] for t in mine.json()} == {secret["id"], paid["id"], public["id"]}

  other = await client.post("/api/tasks/search", json={"name": "report"}, headers=outsider)
  assert {t["id"] for t in other.json()} == {paid["id"], public["id"]}


@pytest.mark.anyio
async def test_search_treats_wildcards_literally(client: AsyncClient) -> None:
  _, owner = await signup(client, "owner@example.com", name="Owner")
  hit = await create_task(client, owner, "100% done", "Public")
  await create_task(client, owner, "1000 done", "Public")
  res = await client.post("/api/tasks/search", json={"name": "0%"})
  assert [t["id"] for t in res.json()] == [hit["id"]]


@pytest.mark.anyio
async def test_search_returns_each_task_once_with_duplicate_grants(client: AsyncClient) -> None:
  _, owner = await signup(client, "owner@example.com", name="Owner")
  _, viewer = await signup(client, "viewer@example.com", name="Viewer")
  t = await create_task(client, owner, "Twice granted", "Public")
  await grant(client, owner, t["id"], "viewer@example.com", "View")
  await grant(client, owner, t["id"], "viewer@example.com", "Edit")
  res = await client.post("/api/tasks/search", json={"name": "twice"}, headers=viewer)
  assert [x["id"] for x in res.json()] == [t["id"]]


@pytest.mark.anyio
async def test_get_task_respects_visibility(client: AsyncClient) -> None:
  _, owner = await signup(client, "owner@example.com", name="Owner")
  _, other = await signup(client, "other@example.com", name="Other")
  private = await create_task(client, owner, "Private task")
  public = await create_task(client, owner, "Public task", "Public")

  assert (await client.get(f"/api/tasks/{public['id']}")).status_code == 200
  assert (await client.get(f"/api/tasks/{private['id']}")).status_code == 401
  assert (await client.get(f"/api/tasks/{private['id']}", headers=other)).status_code == 401
  res = await client.get(f"/api/tasks/{private['id']}", headers=owner)
  assert res.status_code == 200
  assert res.json()["name"] == "Private task"
  assert (await client.get("/api/tasks/424242", headers=owner)).status_code == 404


@pytest.mark.anyio
async def test_update_task_levels(client: AsyncClient) -> None:
  _, owner = await signup(client, "owner@example.com", name="Owner")
  _, editor = await signup(client, "editor@example.com", name="Editor")
  _, solver = await signup(client, "solver@example.com", name="Solver")
  t = await create_task(client, owner, "Original")
  await grant(client, owner, t["id"], "editor@example.com", "Edit")
  await grant(client, owner, t["id"], "solver@example.com", "AddSolution")

  res = await client.put(f"/api/tasks/{t['id']}", json={"name": "Renamed"}, headers=editor)
  assert res.status_code == 200, res.text
  assert res.json()["name"] == "Renamed"
  assert res.json()["visibility"] == "Private"

  res = await client.patch(f"/api/tasks/{t['id']}", json={"visibility": "Public"}, headers=owner)
  assert res.status_code == 200
  assert res.json()["visibility"] == "Public"
  assert res.json()["name"] == "Renamed"

  res = await client.patch(f"/api/tasks/{t['id']}", json={"name": "Nope"}, headers=solver)
  assert res.status_code == 401
  assert res.json()["description"] == f"No access to task {t['id']} at the required level"

  res = await client.patch(f"/api/tasks/{t['id']}", json={"name": "x"}, headers=owner)
  assert res.status_code == 400


@pytest.mark.anyio
async def test_remove_task_cascades(client: AsyncClient, blobs) -> None:
  _, owner = await signup(client, "owner@example.com", name="Owner")
  _, editor = await signup(client, "editor@example.com", name="Editor")
  t = await create_task(client, owner, "Doomed")
  await grant(client, owner, t["id"], "editor@example.com", "Edit")
  res = await client.post(
    f"/api/tasks/attachments/{t['id']}",
    data={"attachment_type": "File"},
    files={"file": ("notes.txt", b"hello", "text/plain")},
    headers=owner,
  )
  assert res.status_code == 200, res.text
  assert len(blobs.blobs) == 1

  res = await client.delete(f"/api/tasks/{t['id']}", headers=editor)
  assert res.status_code == 401

  res = await client.delete(f"/api/tasks/{t['id']}", headers=owner)
  assert res.status_code == 200

  async with SessionLocal() as db:
    assert await list_for_task(db, t["id"]) == []
    assert (await db.execute(select(Attachment).where(Attachment.task_id == t["id"]))).scalars().all() == []
  assert blobs.blobs == {}
  assert (await client.get(f"/api/tasks/{t['id']}", headers=owner)).status_code == 404


@pytest.mark.anyio
async def test_full_task_view(client: AsyncClient) -> None:
  owner_pid, owner = await signup(client, "owner@example.com", name="Owner")
  t = await create_task(client, owner, "Detailed", "Paid")
  await client.post(f"/api/tasks/attachments/{t['id']}", data={"attachment_type": "Tip", "data": "start small"}, headers=owner)

  res = await client.post("/api/tasks/full", json={"taskId": t["id"]})
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["task"]["id"] == t["id"]
  assert body["owner"]["pid"] == owner_pid
  assert body["owner"]["role"] == "User"
  assert [(a["attachmentType"], a["data"]) for a in body["attachments"]] == [("Tip", "start small")]

  private = await create_task(client, owner, "Hidden")
  assert (await client.post("/api/tasks/full", json={"taskId": private["id"]})).status_code == 401
  assert (await client.post("/api/tasks/full", json={"taskId": 99999})).status_code == 404


@pytest.mark.anyio
async def test_list_for_user_and_anon(client: AsyncClient) -> None:
  owner_pid, owner = await signup(client, "owner@example.com", name="Owner")
  _, other = await signup(client, "other@example.com", name="Other")
  private = await create_task(client, owner, "Own private")
  public = await create_task(client, owner, "Own public", "Public")
  paid = await create_task(client, owner, "Own paid", "Paid")
  _, third = await signup(client, "third@example.com", name="Third")
  await create_task(client, third, "Not granted", "Public")

  res = await client.get("/api/user/tasks/me", headers=owner)
  assert [t["id"] for t in res.json()] == [private["id"], public["id"], paid["id"]]

  res = await client.get(f"/api/user/tasks/{owner_pid}", headers=owner)
  assert [t["id"] for t in res.json()] == [private["id"], public["id"], paid["id"]]

  res = await client.get(f"/api/user/tasks/{owner_pid}", headers=other)
  assert [t["id"] for t in res.json()] == [public["id"], paid["id"]]

  res = await client.get(f"/api/user/tasks/{owner_pid}")
  assert [t["id"] for t in res.json()] == [public["id"], paid["id"]]

  assert (await client.get("/api/user/tasks/unknown-pid")).status_code == 404

  async with SessionLocal() as db:
    tasks = await tasks_service.list_for_user(db, owner_pid, "someone-else")
    assert {t.visibility for t in tasks} == {TaskVisibility.PUBLIC, TaskVisibility.PAID}
