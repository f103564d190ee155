from enum import Enum


class PlatformRole(str, Enum):
    GUEST = "guest"
    USER = "user"
    SYSTEM_ADMIN = "system_admin"


class OrgRole(str, Enum):
    ORG_OWNER = "org_owner"
    ORG_ADMIN = "org_admin"
    ORG_MEMBER = "org_member"


class ProjectRole(str, Enum):
    ADMIN = "admin"
    SUPPLIER_PM = "supplier_pm"
    SUPPLIER_FINANCE = "supplier_finance"
    CUSTOMER_PM = "customer_pm"
    CUSTOMER_FINANCE = "customer_finance"
    CONTRIBUTOR = "contributor"
    VIEWER = "viewer"


class OrgEntity(str, Enum):
    ORGANIZATION = "organization"
    ORG_MEMBERS = "org_members"
    ORG_BILLING = "org_billing"
    ORG_SETTINGS = "org_settings"
    ORG_PROJECTS = "org_projects"


class ProjectEntity(str, Enum):
    TIMESHEET = "timesheet"
    EXPENSE = "expense"
    MILESTONE = "milestone"
    DELIVERABLE = "deliverable"
    RESOURCE = "resource"
    VARIATION = "variation"
    SETTINGS = "settings"
    PROJECT_MEMBERS = "project_members"


class Action(str, Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    APPROVE = "approve"
    DELETE = "delete"
    MANAGE = "manage"
    INVITE = "invite"


# Columns of each grid, in display order
ORG_ACTIONS: tuple[Action, ...] = (
    Action.VIEW,
    Action.EDIT,
    Action.DELETE,
    Action.MANAGE,
    Action.INVITE,
    Action.CREATE,
)

PROJECT_ACTIONS: tuple[Action, ...] = (
    Action.VIEW,
    Action.CREATE,
    Action.EDIT,
    Action.APPROVE,
    Action.DELETE,
    Action.MANAGE,
)

ORG_ADMIN_ROLES: frozenset[OrgRole] = frozenset({OrgRole.ORG_OWNER, OrgRole.ORG_ADMIN})


class WorkStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class StatusTransition(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
