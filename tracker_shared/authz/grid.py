"""
PermissionGrid: the single declarative table of who may do what.

Two grids, one per membership axis (platform actions are implicit through the
system admin bypass). Each maps entity -> action -> frozenset of roles.

Both enforcement points read this module: the Python evaluator looks up cells,
the SQL predicate builder turns the same cells into role IN (...) clauses.
Any value that is not a member of the grid's enums denies.
"""

from __future__ import annotations

from typing import Iterator, Union

from tracker_shared.schemas.common import (
    ORG_ACTIONS,
    PROJECT_ACTIONS,
    Action,
    OrgEntity,
    OrgRole,
    ProjectEntity,
    ProjectRole,
)

Entity = Union[OrgEntity, ProjectEntity]

# ---------------------------------------------------------------------------
# Role groupings
# ---------------------------------------------------------------------------

NOBODY: frozenset = frozenset()

ALL_ORG = frozenset(OrgRole)
ORG_ADMINS = frozenset({OrgRole.ORG_OWNER, OrgRole.ORG_ADMIN})
ORG_OWNER_ONLY = frozenset({OrgRole.ORG_OWNER})

ALL_PROJECT = frozenset(ProjectRole)
ADMIN_ONLY = frozenset({ProjectRole.ADMIN})
SUPPLIER_SIDE = frozenset({ProjectRole.ADMIN, ProjectRole.SUPPLIER_PM, ProjectRole.SUPPLIER_FINANCE})
CUSTOMER_SIDE = frozenset({ProjectRole.ADMIN, ProjectRole.CUSTOMER_PM, ProjectRole.CUSTOMER_FINANCE})
WORKERS = frozenset({
    ProjectRole.ADMIN,
    ProjectRole.SUPPLIER_PM,
    ProjectRole.SUPPLIER_FINANCE,
    ProjectRole.CUSTOMER_FINANCE,
    ProjectRole.CONTRIBUTOR,
})
DELIVERY_TEAM = frozenset({ProjectRole.ADMIN, ProjectRole.SUPPLIER_PM, ProjectRole.CONTRIBUTOR})


def _row(actions: tuple[Action, ...], default: frozenset, **cells: frozenset) -> dict[Action, frozenset]:
    row = {action: default for action in actions}
    for name, roles in cells.items():
        row[Action(name)] = roles
    return row


# ---------------------------------------------------------------------------
# Organization grid
# ---------------------------------------------------------------------------

ORG_GRID: dict[OrgEntity, dict[Action, frozenset]] = {
    OrgEntity.ORGANIZATION: _row(ORG_ACTIONS, ORG_ADMINS, view=ALL_ORG, delete=ORG_OWNER_ONLY),
    OrgEntity.ORG_MEMBERS: _row(ORG_ACTIONS, ORG_ADMINS),
    OrgEntity.ORG_BILLING: _row(ORG_ACTIONS, ORG_ADMINS, edit=ORG_OWNER_ONLY),
    OrgEntity.ORG_SETTINGS: _row(ORG_ACTIONS, ORG_ADMINS),
    OrgEntity.ORG_PROJECTS: _row(ORG_ACTIONS, ORG_ADMINS),
}

# ---------------------------------------------------------------------------
# Project grid
# ---------------------------------------------------------------------------

PROJECT_GRID: dict[ProjectEntity, dict[Action, frozenset]] = {
    ProjectEntity.TIMESHEET: _row(
        PROJECT_ACTIONS, NOBODY,
        view=ALL_PROJECT, create=WORKERS, edit=WORKERS, approve=CUSTOMER_SIDE, delete=SUPPLIER_SIDE,
    ),
    ProjectEntity.EXPENSE: _row(
        PROJECT_ACTIONS, NOBODY,
        view=ALL_PROJECT, create=WORKERS, edit=WORKERS,
        approve=SUPPLIER_SIDE | CUSTOMER_SIDE, delete=SUPPLIER_SIDE,
    ),
    ProjectEntity.MILESTONE: _row(
        PROJECT_ACTIONS, NOBODY,
        view=ALL_PROJECT, create=SUPPLIER_SIDE, edit=SUPPLIER_SIDE, approve=CUSTOMER_SIDE, delete=ADMIN_ONLY,
    ),
    ProjectEntity.DELIVERABLE: _row(
        PROJECT_ACTIONS, NOBODY,
        view=ALL_PROJECT, create=DELIVERY_TEAM, edit=DELIVERY_TEAM, approve=CUSTOMER_SIDE, delete=SUPPLIER_SIDE,
    ),
    ProjectEntity.RESOURCE: _row(
        PROJECT_ACTIONS, NOBODY,
        view=ALL_PROJECT, create=SUPPLIER_SIDE, edit=SUPPLIER_SIDE, delete=ADMIN_ONLY,
    ),
    ProjectEntity.VARIATION: _row(
        PROJECT_ACTIONS, NOBODY,
        view=ALL_PROJECT, create=SUPPLIER_SIDE, edit=SUPPLIER_SIDE, approve=CUSTOMER_SIDE, delete=SUPPLIER_SIDE,
    ),
    ProjectEntity.SETTINGS: _row(
        PROJECT_ACTIONS, NOBODY,
        view=SUPPLIER_SIDE, create=ADMIN_ONLY, edit=SUPPLIER_SIDE, delete=ADMIN_ONLY,
    ),
    ProjectEntity.PROJECT_MEMBERS: _row(
        PROJECT_ACTIONS, NOBODY,
        view=SUPPLIER_SIDE, create=ADMIN_ONLY, edit=ADMIN_ONLY, delete=ADMIN_ONLY, manage=ADMIN_ONLY,
    ),
}


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def parse_entity(value) -> Entity | None:
    """Coerce an entity name to its enum, or None when unknown."""
    for enum_cls in (OrgEntity, ProjectEntity):
        try:
            return enum_cls(value)
        except ValueError:
            continue
    return None


def parse_action(value) -> Action | None:
    try:
        return Action(value)
    except ValueError:
        return None


def is_project_scoped(entity: Entity) -> bool:
    return isinstance(entity, ProjectEntity)


def roles_with(entity, action) -> frozenset:
    """All roles granted `action` on `entity`; empty for unknown cells."""
    entity = parse_entity(entity)
    action = parse_action(action)
    if entity is None or action is None:
        return NOBODY
    grid = PROJECT_GRID if is_project_scoped(entity) else ORG_GRID
    return grid[entity].get(action, NOBODY)


def allows(role, entity, action) -> bool:
    """Raw cell lookup. Unknown, empty or None roles never match."""
    if role is None or role == "":
        return False
    entity = parse_entity(entity)
    if entity is None:
        return False
    role_enum = ProjectRole if is_project_scoped(entity) else OrgRole
    try:
        role = role_enum(role)
    except ValueError:
        return False
    return role in roles_with(entity, action)


def cells() -> Iterator[tuple[Entity, Action]]:
    """Every (entity, action) cell across both grids."""
    for entity, row in ORG_GRID.items():
        for action in row:
            yield entity, action
    for entity, row in PROJECT_GRID.items():
        for action in row:
            yield entity, action


def is_cell(entity, action) -> bool:
    """True when (entity, action) is a column of its grid."""
    entity = parse_entity(entity)
    action = parse_action(action)
    if entity is None or action is None:
        return False
    grid = PROJECT_GRID if is_project_scoped(entity) else ORG_GRID
    return action in grid[entity]
