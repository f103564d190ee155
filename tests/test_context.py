"""
Integration tests for the context endpoint and View As.

View As changes what the context endpoint reports. It never changes what the
caller can actually read or write.
"""

from __future__ import annotations

import pytest


@pytest.fixture
async def acme(seed):
    org = await seed.org(slug="acme", name="Acme")
    project = await seed.project(org)
    owner = await seed.user()
    admin = await seed.user()
    member = await seed.user()
    contributor = await seed.user()
    await seed.org_member(owner, org, "org_owner")
    await seed.org_member(admin, org, "org_admin")
    await seed.org_member(member, org, "org_member")
    await seed.org_member(contributor, org, "org_member")
    await seed.project_member(contributor, project, "contributor")
    return {
        "org": org,
        "project": project,
        "owner": owner,
        "admin": admin,
        "member": member,
        "contributor": contributor,
    }


CONTEXT = "/api/v1/orgs/acme/context"
VIEW_AS = "/api/v1/orgs/acme/context/view-as"


def cookie_value(resp, name: str = "pt_view_as") -> str:
    for header in resp.headers.get_list("set-cookie"):
        key, _, rest = header.partition("=")
        if key == name:
            return rest.split(";", 1)[0]
    raise AssertionError(f"{name} not set")


def with_view_as(headers: dict, token: str) -> dict:
    return {**headers, "Cookie": f"pt_view_as={token}"}


class TestContext:
    @pytest.mark.asyncio
    async def test_owner_context(self, client, acme, login):
        resp = await client.get(CONTEXT, headers=login(acme["owner"]))
        assert resp.status_code == 200
        body = resp.json()
        assert body["real"]["kind"] == "org_admin_override"
        assert body["real"]["org_role"] == "org_owner"
        assert body["real"] == body["effective"]
        assert body["is_impersonating"] is False
        assert body["capabilities"]["can_delete_organization"] is True
        assert body["capabilities"]["can_edit_billing"] is True

    @pytest.mark.asyncio
    async def test_contributor_in_project(self, client, acme, login):
        resp = await client.get(
            CONTEXT, params={"project_id": str(acme["project"].id)}, headers=login(acme["contributor"])
        )
        body = resp.json()
        assert body["project_id"] == str(acme["project"].id)
        assert body["real"]["kind"] == "ordinary"
        assert body["real"]["project_role"] == "contributor"
        caps = body["capabilities"]
        assert caps["can_access_project"] is True
        assert caps["can_create_timesheet"] is True
        assert caps["can_approve_timesheet"] is False
        assert caps["can_manage_team"] is False

    @pytest.mark.asyncio
    async def test_system_admin_bypass(self, client, acme, seed, login):
        root = await seed.user("system_admin")
        resp = await client.get(
            CONTEXT, params={"project_id": str(acme["project"].id)}, headers=login(root)
        )
        body = resp.json()
        assert body["real"]["kind"] == "system_admin_bypass"
        assert all(body["capabilities"].values())


class TestAuthorizationScenarios:
    @pytest.mark.asyncio
    async def test_org_member_cannot_view_org_settings(self, client, acme, login):
        resp = await client.get(CONTEXT, headers=login(acme["member"]))
        caps = resp.json()["capabilities"]
        assert caps["can_view_org_settings"] is False
        assert caps["can_view_organization"] is True

    @pytest.mark.asyncio
    async def test_org_admin_reaches_project_but_not_billing_edit(self, client, acme, login):
        resp = await client.get(
            CONTEXT, params={"project_id": str(acme["project"].id)}, headers=login(acme["admin"])
        )
        caps = resp.json()["capabilities"]
        assert caps["can_access_project"] is True
        assert caps["can_edit_billing"] is False
        assert caps["can_view_billing"] is True

    @pytest.mark.asyncio
    async def test_principal_without_memberships_is_denied_everywhere(self, client, acme, seed, login):
        stranger = login(await seed.user())
        project_id = acme["project"].id
        attempts = [
            ("GET", CONTEXT, None),
            ("GET", "/api/v1/orgs/acme/members", None),
            ("POST", "/api/v1/orgs/acme/projects", {"name": "X", "reference": "X-1"}),
            ("GET", f"/api/v1/orgs/acme/projects/{project_id}/timesheets", None),
            ("DELETE", "/api/v1/orgs/acme", None),
        ]
        for method, path, body in attempts:
            resp = await client.request(method, path, json=body, headers=stranger)
            assert resp.status_code == 404, (method, path)
            assert resp.json()["error"]["code"] == "NOT_FOUND"

        resp = await client.get("/api/v1/orgs", headers=stranger)
        assert resp.json()["data"] == []


class TestViewAs:
    @pytest.mark.asyncio
    async def test_admin_previews_as_viewer(self, client, acme, login):
        resp = await client.post(VIEW_AS, json={"role": "viewer"}, headers=login(acme["owner"]))
        assert resp.status_code == 200
        body = resp.json()
        assert body["is_impersonating"] is True
        assert body["view_as"] == "viewer"
        assert body["real"]["org_role"] == "org_owner"
        assert body["effective"]["org_role"] == "org_member"
        assert body["effective"]["project_role"] == "viewer"
        assert body["capabilities"]["can_create_timesheet"] is False

        set_cookie = resp.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=lax" in set_cookie

    @pytest.mark.asyncio
    async def test_cookie_applies_on_later_requests(self, client, acme, login):
        headers = login(acme["owner"])
        token = cookie_value(await client.post(VIEW_AS, json={"role": "customer_pm"}, headers=headers))
        client.cookies.clear()

        resp = await client.get(CONTEXT, headers=with_view_as(headers, token))
        body = resp.json()
        assert body["is_impersonating"] is True
        assert body["effective"]["project_role"] == "customer_pm"
        assert body["capabilities"]["can_approve_timesheet"] is True
        assert body["capabilities"]["can_delete_organization"] is False

    @pytest.mark.asyncio
    async def test_view_as_never_changes_real_authority(self, client, acme, login):
        headers = login(acme["owner"])
        token = cookie_value(await client.post(VIEW_AS, json={"role": "viewer"}, headers=headers))
        client.cookies.clear()
        impersonating = with_view_as(headers, token)

        resp = await client.post(
            f"/api/v1/orgs/acme/projects/{acme['project'].id}/milestones", json={"name": "M1"}, headers=impersonating
        )
        assert resp.status_code == 201

        resp = await client.patch("/api/v1/orgs/acme", json={"name": "Still mine"}, headers=impersonating)
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_member_cannot_use_view_as(self, client, acme, login):
        resp = await client.post(VIEW_AS, json={"role": "viewer"}, headers=login(acme["member"]))
        assert resp.status_code == 403
        assert "set-cookie" not in resp.headers

    @pytest.mark.asyncio
    async def test_project_admin_is_not_an_impersonator(self, client, acme, seed, login):
        lead = await seed.user()
        await seed.org_member(lead, acme["org"], "org_member")
        await seed.project_member(lead, acme["project"], "admin")
        resp = await client.post(VIEW_AS, json={"role": "viewer"}, headers=login(lead))
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_role(self, client, acme, login):
        resp = await client.post(VIEW_AS, json={"role": "emperor"}, headers=login(acme["owner"]))
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_tampered_cookie_is_ignored(self, client, acme, login):
        headers = with_view_as(login(acme["owner"]), "not.a.token")
        resp = await client.get(CONTEXT, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["is_impersonating"] is False

    @pytest.mark.asyncio
    async def test_cookie_is_bound_to_org(self, client, acme, seed, login):
        globex = await seed.org(slug="globex", name="Globex")
        await seed.org_member(acme["owner"], globex, "org_owner")
        headers = login(acme["owner"])
        token = cookie_value(await client.post(VIEW_AS, json={"role": "viewer"}, headers=headers))
        client.cookies.clear()

        resp = await client.get("/api/v1/orgs/globex/context", headers=with_view_as(headers, token))
        assert resp.json()["is_impersonating"] is False

    @pytest.mark.asyncio
    async def test_cookie_is_bound_to_user(self, client, acme, login):
        token = cookie_value(await client.post(VIEW_AS, json={"role": "viewer"}, headers=login(acme["owner"])))
        client.cookies.clear()

        resp = await client.get(CONTEXT, headers=with_view_as(login(acme["admin"]), token))
        assert resp.json()["is_impersonating"] is False

    @pytest.mark.asyncio
    async def test_cookie_ignored_after_demotion(self, client, acme, login):
        headers = login(acme["admin"])
        token = cookie_value(await client.post(VIEW_AS, json={"role": "viewer"}, headers=headers))
        client.cookies.clear()

        resp = await client.patch(
            f"/api/v1/orgs/acme/members/{acme['admin'].id}", json={"role": "org_member"}, headers=login(acme["owner"])
        )
        assert resp.status_code == 200

        resp = await client.get(CONTEXT, headers=with_view_as(headers, token))
        body = resp.json()
        assert body["is_impersonating"] is False
        assert body["real"]["org_role"] == "org_member"

    @pytest.mark.asyncio
    async def test_clear(self, client, acme, login):
        headers = login(acme["owner"])
        await client.post(VIEW_AS, json={"role": "viewer"}, headers=headers)
        client.cookies.clear()

        resp = await client.delete(VIEW_AS, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["is_impersonating"] is False
        assert resp.json()["effective"]["org_role"] == "org_owner"
        assert resp.headers["set-cookie"].startswith("pt_view_as=")
