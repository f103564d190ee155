"""
Tests for the read filter and the Gatekeeper.
"""

from __future__ import annotations

from datetime import date

import pytest
from sqlmodel import select

from app.core.enforcement import BYPASS_OPTION, Gatekeeper
from app.models import ChangeRecord, Deliverable, Milestone, Organization, Project, Resource, Timesheet, UserOrg
from tracker_shared.authz.errors import Forbidden, NotFound, Unauthorized
from tracker_shared.schemas.common import StatusTransition


@pytest.fixture
async def acme(seed):
    """Org with an owner, a plain member, a contributor and a customer PM on one project."""
    org = await seed.org(slug="acme")
    project = await seed.project(org)
    owner = await seed.user()
    member = await seed.user()
    contributor = await seed.user()
    customer = await seed.user()
    outsider = await seed.user()
    await seed.org_member(owner, org, "org_owner")
    await seed.org_member(member, org, "org_member")
    await seed.org_member(contributor, org, "org_member")
    await seed.org_member(customer, org, "org_member")
    await seed.project_member(contributor, project, "contributor")
    await seed.project_member(customer, project, "customer_pm")
    resource = await seed.resource(project, contributor)
    return {
        "org": org,
        "project": project,
        "owner": owner,
        "member": member,
        "contributor": contributor,
        "customer": customer,
        "outsider": outsider,
        "resource": resource,
    }


def act_as(session, user):
    session.info["actor_id"] = user.id
    return session


class TestReadFilter:
    @pytest.mark.asyncio
    async def test_no_actor_sees_nothing(self, acme, session):
        result = await session.execute(select(Organization))
        assert result.scalars().all() == []

    @pytest.mark.asyncio
    async def test_bypass_sees_everything(self, acme, session):
        result = await session.execute(select(Organization).execution_options(**{BYPASS_OPTION: True}))
        assert len(result.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_outsider_sees_no_org(self, acme, session):
        act_as(session, acme["outsider"])
        assert (await session.execute(select(Organization))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_member_sees_org_but_not_project(self, acme, session):
        act_as(session, acme["member"])
        assert len((await session.execute(select(Organization))).scalars().all()) == 1
        assert (await session.execute(select(Project))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_owner_sees_project_without_project_row(self, acme, session):
        act_as(session, acme["owner"])
        projects = (await session.execute(select(Project))).scalars().all()
        assert [p.id for p in projects] == [acme["project"].id]

    @pytest.mark.asyncio
    async def test_member_sees_only_own_membership_row(self, acme, session):
        act_as(session, acme["member"])
        rows = (await session.execute(select(UserOrg))).scalars().all()
        assert [row.user_id for row in rows] == [acme["member"].id]

    @pytest.mark.asyncio
    async def test_owner_sees_all_membership_rows(self, acme, session):
        act_as(session, acme["owner"])
        rows = (await session.execute(select(UserOrg))).scalars().all()
        assert len(rows) == 4

    @pytest.mark.asyncio
    async def test_deactivated_membership_loses_access(self, acme, seed, session):
        gone = await seed.user()
        await seed.org_member(gone, acme["org"], "org_admin", is_active=False)
        act_as(session, gone)
        assert (await session.execute(select(Organization))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_column_selects_are_filtered(self, acme, session):
        act_as(session, acme["outsider"])
        result = await session.execute(select(Organization.id, Organization.name))
        assert result.all() == []


class TestGatekeeperInsert:
    @pytest.mark.asyncio
    async def test_no_actor_is_unauthorized(self, acme, session):
        result = await Gatekeeper(session).insert(Milestone(project_id=acme["project"].id, name="M1"))
        assert not result.ok
        assert isinstance(result.error, Unauthorized)

    @pytest.mark.asyncio
    async def test_denied_insert_returns_forbidden_and_writes_nothing(self, acme, session):
        act_as(session, acme["contributor"])
        result = await Gatekeeper(session).insert(Milestone(project_id=acme["project"].id, name="M1"))
        assert not result.ok
        assert isinstance(result.error, Forbidden)
        with pytest.raises(Forbidden):
            result.unwrap()
        count = await session.execute(select(Milestone).execution_options(**{BYPASS_OPTION: True}))
        assert count.scalars().all() == []

    @pytest.mark.asyncio
    async def test_permitted_insert_leaves_change_record(self, acme, session):
        act_as(session, acme["owner"])
        milestone = (await Gatekeeper(session).insert(
            Milestone(project_id=acme["project"].id, name="Design sign-off")
        )).unwrap()

        records = (await session.execute(
            select(ChangeRecord).execution_options(**{BYPASS_OPTION: True})
        )).scalars().all()
        assert len(records) == 1
        assert records[0].table_name == "milestones"
        assert records[0].record_id == str(milestone.id)
        assert records[0].actor_id == acme["owner"].id
        assert records[0].org_id == acme["org"].id
        assert records[0].action == "insert"
        assert records[0].after["name"] == "Design sign-off"

    @pytest.mark.asyncio
    async def test_contributor_cannot_log_time_on_someone_elses_resource(self, acme, seed, session):
        other_resource = await seed.resource(acme["project"], None, name="Contractor")
        act_as(session, acme["contributor"])
        row = Timesheet(
            project_id=acme["project"].id,
            resource_id=other_resource.id,
            work_date=date(2024, 3, 4),
            hours=4,
            created_by=acme["contributor"].id,
        )
        result = await Gatekeeper(session).insert(row)
        assert isinstance(result.error, Forbidden)


class TestGatekeeperUpdate:
    @pytest.mark.asyncio
    async def test_invisible_row_is_not_found(self, acme, seed, session):
        timesheet = await seed.timesheet(acme["project"], acme["resource"], acme["contributor"])
        act_as(session, acme["member"])
        result = await Gatekeeper(session).update(timesheet, {"hours": 1})
        assert isinstance(result.error, NotFound)

    @pytest.mark.asyncio
    async def test_visible_but_not_owned_is_forbidden(self, acme, seed, session):
        other_resource = await seed.resource(acme["project"], None, name="Contractor")
        timesheet = await seed.timesheet(acme["project"], other_resource, acme["owner"])
        act_as(session, acme["contributor"])
        loaded = (await session.execute(select(Timesheet).where(Timesheet.id == timesheet.id))).scalar_one()
        result = await Gatekeeper(session).update(loaded, {"hours": 1})
        assert isinstance(result.error, Forbidden)

    @pytest.mark.asyncio
    async def test_owner_of_row_can_update(self, acme, seed, session):
        timesheet = await seed.timesheet(acme["project"], acme["resource"], acme["contributor"])
        act_as(session, acme["contributor"])
        loaded = (await session.execute(select(Timesheet).where(Timesheet.id == timesheet.id))).scalar_one()
        updated = (await Gatekeeper(session).update(loaded, {"hours": 6.0})).unwrap()
        assert updated.hours == 6.0

        record = (await session.execute(
            select(ChangeRecord).execution_options(**{BYPASS_OPTION: True})
        )).scalar_one()
        assert record.before["hours"] == 7.5
        assert record.after["hours"] == 6.0

    @pytest.mark.asyncio
    async def test_new_values_are_checked(self, acme, seed, session):
        """A permitted row cannot be moved into a project the actor cannot write."""
        other_org = await seed.org(slug="globex")
        other_project = await seed.project(other_org, reference="GLX-1")
        timesheet = await seed.timesheet(acme["project"], acme["resource"], acme["contributor"])
        act_as(session, acme["contributor"])
        loaded = (await session.execute(select(Timesheet).where(Timesheet.id == timesheet.id))).scalar_one()
        result = await Gatekeeper(session).update(loaded, {"project_id": other_project.id})
        assert isinstance(result.error, Forbidden)


class TestGatekeeperTransition:
    @pytest.mark.asyncio
    async def test_customer_approves_but_cannot_submit_others(self, acme, seed, session):
        timesheet = await seed.timesheet(acme["project"], acme["resource"], acme["contributor"], status="submitted")
        act_as(session, acme["customer"])
        loaded = (await session.execute(select(Timesheet).where(Timesheet.id == timesheet.id))).scalar_one()
        gate = Gatekeeper(session)

        assert isinstance((await gate.transition(loaded, StatusTransition.SUBMIT, "submitted")).error, Forbidden)
        approved = (await gate.transition(loaded, StatusTransition.APPROVE, "approved")).unwrap()
        assert approved.status == "approved"

    @pytest.mark.asyncio
    async def test_deliverable_approval_needs_approve_cell(self, acme, seed, session):
        deliverable = await seed.deliverable(acme["project"], status="submitted")
        act_as(session, acme["contributor"])
        loaded = (await session.execute(select(Deliverable).where(Deliverable.id == deliverable.id))).scalar_one()
        result = await Gatekeeper(session).transition(loaded, StatusTransition.APPROVE, "approved")
        assert isinstance(result.error, Forbidden)

        act_as(session, acme["customer"])
        approved = (await Gatekeeper(session).transition(
            loaded, StatusTransition.APPROVE, "approved", comment="Accepted at site review"
        )).unwrap()
        assert approved.status == "approved"

        record = (await session.execute(
            select(ChangeRecord).execution_options(**{BYPASS_OPTION: True})
        )).scalar_one()
        assert record.action == "transition"
        assert record.comment == "Accepted at site review"

    @pytest.mark.asyncio
    async def test_resources_have_no_transition(self, acme, session):
        act_as(session, acme["owner"])
        loaded = (await session.execute(select(Resource).where(Resource.id == acme["resource"].id))).scalar_one()
        result = await Gatekeeper(session).transition(loaded, StatusTransition.SUBMIT, "submitted")
        assert isinstance(result.error, Forbidden)


class TestGatekeeperDelete:
    @pytest.mark.asyncio
    async def test_deactivate_membership(self, acme, session):
        act_as(session, acme["owner"])
        membership = (await session.execute(
            select(UserOrg).where(UserOrg.user_id == acme["member"].id)
        )).scalar_one()
        result = await Gatekeeper(session).deactivate(membership)
        assert result.ok
        assert membership.is_active is False

    @pytest.mark.asyncio
    async def test_member_cannot_deactivate_others(self, acme, session):
        act_as(session, acme["member"])
        membership = (await session.execute(
            select(UserOrg)
            .where(UserOrg.user_id == acme["owner"].id)
            .execution_options(**{BYPASS_OPTION: True})
        )).scalar_one()
        result = await Gatekeeper(session).deactivate(membership)
        assert isinstance(result.error, NotFound)

    @pytest.mark.asyncio
    async def test_admin_cannot_touch_owner_row(self, acme, seed, session):
        admin = await seed.user()
        await seed.org_member(admin, acme["org"], "org_admin")
        act_as(session, admin)
        owner_row = (await session.execute(
            select(UserOrg).where(UserOrg.user_id == acme["owner"].id)
        )).scalar_one()
        result = await Gatekeeper(session).update(owner_row, {"role": "org_member"})
        assert isinstance(result.error, Forbidden)

    @pytest.mark.asyncio
    async def test_denials_are_logged_at_info(self, acme, session):
        from structlog.testing import capture_logs

        act_as(session, acme["contributor"])
        with capture_logs() as logs:
            await Gatekeeper(session).insert(Milestone(project_id=acme["project"].id, name="M1"))
        denied = [entry for entry in logs if entry["event"] == "authz.write_denied"]
        assert len(denied) == 1
        assert denied[0]["log_level"] == "info"
        assert denied[0]["table"] == "milestones"
