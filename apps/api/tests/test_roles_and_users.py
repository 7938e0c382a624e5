from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, bearer, login, signup


async def _admin(client: AsyncClient) -> dict[str, str]:
  return bearer(await login(client, ADMIN_EMAIL, ADMIN_PASSWORD))


@pytest.mark.anyio
async def test_roles_are_listed_publicly(client: AsyncClient) -> None:
  res = await client.get("/api/roles")
  assert res.status_code == 200
  assert [r["name"] for r in res.json()] == ["Admin", "User"]


@pytest.mark.anyio
async def test_role_crud_requires_admin(client: AsyncClient) -> None:
  _, user = await signup(client, "plain@example.com", name="Plain")
  res = await client.post("/api/roles", json={"name": "Moderator"}, headers=user)
  assert res.status_code == 401
  assert res.json()["description"] == "Only users with Admin rights can access this endpoint"
  assert (await client.post("/api/roles", json={"name": "Moderator"})).status_code == 401

  admin = await _admin(client)
  res = await client.post("/api/roles", json={"name": "Moderator"}, headers=admin)
  assert res.status_code == 200, res.text
  role_id = res.json()["id"]

  assert (await client.put(f"/api/roles/{role_id}", json={"name": "Mod"}, headers=user)).status_code == 401
  res = await client.patch(f"/api/roles/{role_id}", json={"name": "Mod"}, headers=admin)
  assert res.status_code == 200
  assert res.json() == {"id": role_id, "name": "Mod"}

  assert (await client.delete(f"/api/roles/{role_id}", headers=user)).status_code == 401
  assert (await client.delete(f"/api/roles/{role_id}", headers=admin)).status_code == 200
  assert (await client.delete(f"/api/roles/{role_id}", headers=admin)).status_code == 404


@pytest.mark.anyio
async def test_role_name_conflicts_and_assigned_roles(client: AsyncClient) -> None:
  admin = await _admin(client)
  res = await client.post("/api/roles", json={"name": "User"}, headers=admin)
  assert res.status_code == 409

  roles = {r["name"]: r["id"] for r in (await client.get("/api/roles")).json()}
  res = await client.put(f"/api/roles/{roles['User']}", json={"name": "Admin"}, headers=admin)
  assert res.status_code == 409
  res = await client.delete(f"/api/roles/{roles['Admin']}", headers=admin)
  assert res.status_code == 409
  assert res.json()["description"] == "Role is still assigned to users"


@pytest.mark.anyio
async def test_user_lookup_endpoints(client: AsyncClient) -> None:
  pid, headers = await signup(client, "someone@example.com", name="Someone")

  res = await client.get("/api/user/me", headers=headers)
  assert res.status_code == 200
  assert res.json() == {"pid": pid, "email": "someone@example.com", "name": "Someone", "role": "User", "isVerified": True}
  assert (await client.get("/api/user/me")).status_code == 401

  res = await client.get(f"/api/user/{pid}")
  assert res.status_code == 200
  assert res.json()["name"] == "Someone"
  assert (await client.get("/api/user/not-a-pid")).status_code == 404
  assert (await client.get("/api/user/tasks/me")).status_code == 401


@pytest.mark.anyio
async def test_health_and_version(client: AsyncClient) -> None:
  res = await client.get("/health")
  assert res.status_code == 200
  assert res.json() == {"ok": True}
  assert res.headers["x-content-type-options"] == "nosniff"
  assert "version" in (await client.get("/version")).json()
