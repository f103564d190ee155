"""
Integration tests for Project endpoints.

Tests cover:
- Project CRUD and visibility (filtered lists, 404 on direct access)
- Project team management
- Workflow settings (defaults, create vs edit roles)
"""

from __future__ import annotations

import pytest


@pytest.fixture
async def acme(seed):
    org = await seed.org(slug="acme", name="Acme")
    project = await seed.project(org, name="Bridge", reference="BRG-1")
    owner = await seed.user()
    admin = await seed.user()
    member = await seed.user()
    contributor = await seed.user()
    finance = await seed.user()
    await seed.org_member(owner, org, "org_owner")
    await seed.org_member(admin, org, "org_admin")
    await seed.org_member(member, org, "org_member")
    await seed.org_member(contributor, org, "org_member")
    await seed.org_member(finance, org, "org_member")
    await seed.project_member(contributor, project, "contributor")
    await seed.project_member(finance, project, "supplier_finance")
    return {
        "org": org,
        "project": project,
        "owner": owner,
        "admin": admin,
        "member": member,
        "contributor": contributor,
        "finance": finance,
    }


def project_url(acme, suffix: str = "") -> str:
    return f"/api/v1/orgs/acme/projects/{acme['project'].id}{suffix}"


class TestProjectCRUD:
    @pytest.mark.asyncio
    async def test_admin_creates_project(self, client, acme, login):
        resp = await client.post(
            "/api/v1/orgs/acme/projects",
            json={"name": "Tunnel", "reference": "TNL-1", "description": "Bore"},
            headers=login(acme["admin"]),
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["org_id"] == str(acme["org"].id)
        assert body["reference"] == "TNL-1"

    @pytest.mark.asyncio
    async def test_member_cannot_create_project(self, client, acme, login):
        resp = await client.post(
            "/api/v1/orgs/acme/projects", json={"name": "Tunnel", "reference": "TNL-1"}, headers=login(acme["member"])
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_reference_rejected(self, client, acme, login):
        resp = await client.post("/api/v1/orgs/acme/projects", json={"name": "Tunnel"}, headers=login(acme["admin"]))
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_list_is_filtered_not_refused(self, client, acme, login):
        resp = await client.get("/api/v1/orgs/acme/projects", headers=login(acme["member"]))
        assert resp.status_code == 200
        assert resp.json()["data"] == []

        resp = await client.get("/api/v1/orgs/acme/projects", headers=login(acme["contributor"]))
        assert [p["reference"] for p in resp.json()["data"]] == ["BRG-1"]

    @pytest.mark.asyncio
    async def test_org_admin_sees_project_without_assignment(self, client, acme, login):
        resp = await client.get(project_url(acme), headers=login(acme["admin"]))
        assert resp.status_code == 200
        assert resp.json()["name"] == "Bridge"

    @pytest.mark.asyncio
    async def test_unassigned_member_gets_404(self, client, acme, login):
        resp = await client.get(project_url(acme), headers=login(acme["member"]))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_project_from_other_org_is_404(self, client, acme, seed, login):
        globex = await seed.org(slug="globex")
        await seed.org_member(acme["owner"], globex, "org_owner")
        resp = await client.get(f"/api/v1/orgs/globex/projects/{acme['project'].id}", headers=login(acme["owner"]))
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_update(self, client, acme, login):
        resp = await client.patch(project_url(acme), json={"name": "Bridge II"}, headers=login(acme["admin"]))
        assert resp.status_code == 200
        assert resp.json()["name"] == "Bridge II"
        assert resp.json()["reference"] == "BRG-1"

    @pytest.mark.asyncio
    async def test_project_role_cannot_rename(self, client, acme, login):
        resp = await client.patch(project_url(acme), json={"name": "Mine"}, headers=login(acme["finance"]))
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_delete_refused_while_team_exists(self, client, acme, login):
        resp = await client.delete(project_url(acme), headers=login(acme["owner"]))
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_delete_empty_project(self, client, acme, seed, login):
        empty = await seed.project(acme["org"], name="Empty", reference="EMP-1")
        resp = await client.delete(f"/api/v1/orgs/acme/projects/{empty.id}", headers=login(acme["owner"]))
        assert resp.status_code == 204

        resp = await client.get(f"/api/v1/orgs/acme/projects/{empty.id}", headers=login(acme["owner"]))
        assert resp.status_code == 404


class TestProjectTeam:
    @pytest.mark.asyncio
    async def test_list_for_supplier_side(self, client, acme, login):
        resp = await client.get(project_url(acme, "/members"), headers=login(acme["finance"]))
        assert resp.status_code == 200
        assert {m["role"] for m in resp.json()["data"]} == {"contributor", "supplier_finance"}

    @pytest.mark.asyncio
    async def test_contributor_sees_only_own_assignment(self, client, acme, login):
        resp = await client.get(project_url(acme, "/members"), headers=login(acme["contributor"]))
        assert [m["user_id"] for m in resp.json()["data"]] == [str(acme["contributor"].id)]

    @pytest.mark.asyncio
    async def test_add_member(self, client, acme, login):
        resp = await client.post(
            project_url(acme, "/members"),
            json={"user_id": str(acme["member"].id), "role": "customer_pm"},
            headers=login(acme["admin"]),
        )
        assert resp.status_code == 201
        assert resp.json()["role"] == "customer_pm"

        resp = await client.get(project_url(acme), headers=login(acme["member"]))
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_add_requires_org_membership(self, client, acme, seed, login):
        outsider = await seed.user()
        resp = await client.post(
            project_url(acme, "/members"), json={"user_id": str(outsider.id)}, headers=login(acme["admin"])
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_add_duplicate(self, client, acme, login):
        resp = await client.post(
            project_url(acme, "/members"), json={"user_id": str(acme["contributor"].id)}, headers=login(acme["admin"])
        )
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_non_admin_cannot_manage_team(self, client, acme, login):
        resp = await client.post(
            project_url(acme, "/members"), json={"user_id": str(acme["member"].id)}, headers=login(acme["finance"])
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_project_admin_manages_team(self, client, acme, seed, login):
        lead = await seed.user()
        await seed.org_member(lead, acme["org"], "org_member")
        await seed.project_member(lead, acme["project"], "admin")
        resp = await client.patch(
            project_url(acme, f"/members/{acme['contributor'].id}"),
            json={"role": "supplier_pm"},
            headers=login(lead),
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "supplier_pm"

    @pytest.mark.asyncio
    async def test_remove_revokes_access(self, client, acme, login):
        resp = await client.delete(
            project_url(acme, f"/members/{acme['contributor'].id}"), headers=login(acme["admin"])
        )
        assert resp.status_code == 204

        resp = await client.get(project_url(acme), headers=login(acme["contributor"]))
        assert resp.status_code == 404


class TestProjectSettings:
    @pytest.mark.asyncio
    async def test_defaults_before_first_write(self, client, acme, login):
        resp = await client.get(project_url(acme, "/settings"), headers=login(acme["finance"]))
        assert resp.status_code == 200
        body = resp.json()
        assert body["project_id"] == str(acme["project"].id)
        assert body["settings"]["workflow"]["timesheet_approval"] is True
        assert body["settings"]["default_hourly_rate"] is None

    @pytest.mark.asyncio
    async def test_contributor_cannot_see_settings(self, client, acme, login):
        resp = await client.get(project_url(acme, "/settings"), headers=login(acme["contributor"]))
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_only_admins_create_settings(self, client, acme, login):
        payload = {"default_hourly_rate": 95.0}
        resp = await client.put(project_url(acme, "/settings"), json=payload, headers=login(acme["finance"]))
        assert resp.status_code == 403

        resp = await client.put(project_url(acme, "/settings"), json=payload, headers=login(acme["admin"]))
        assert resp.status_code == 200
        assert resp.json()["settings"]["default_hourly_rate"] == 95.0

    @pytest.mark.asyncio
    async def test_supplier_side_edits_existing_settings(self, client, acme, login):
        await client.put(project_url(acme, "/settings"), json={}, headers=login(acme["admin"]))

        resp = await client.put(
            project_url(acme, "/settings"),
            json={"workflow": {"timesheet_approval": False}},
            headers=login(acme["finance"]),
        )
        assert resp.status_code == 200

        resp = await client.get(project_url(acme, "/settings"), headers=login(acme["finance"]))
        assert resp.json()["settings"]["workflow"]["timesheet_approval"] is False
        assert resp.json()["settings"]["workflow"]["expense_approval"] is True

    @pytest.mark.asyncio
    async def test_invalid_settings(self, client, acme, login):
        resp = await client.put(
            project_url(acme, "/settings"), json={"default_hourly_rate": -5}, headers=login(acme["admin"])
        )
        assert resp.status_code == 422
