"""Project work entity schemas: resources, timesheets, expenses and the delivery records."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field
from pydantic import UUID4

from .common import StatusTransition, WorkStatus


# ---------------------------------------------------------------------------
# Status workflow (timesheets, expenses, milestones, deliverables, variations)
# ---------------------------------------------------------------------------

# transition -> (allowed source states, resulting state)
STATUS_TRANSITIONS: dict[StatusTransition, tuple[frozenset[WorkStatus], WorkStatus]] = {
    StatusTransition.SUBMIT: (frozenset({WorkStatus.DRAFT, WorkStatus.REJECTED}), WorkStatus.SUBMITTED),
    StatusTransition.APPROVE: (frozenset({WorkStatus.SUBMITTED}), WorkStatus.APPROVED),
    StatusTransition.REJECT: (frozenset({WorkStatus.SUBMITTED}), WorkStatus.REJECTED),
}


def validate_status_transition(current: WorkStatus, transition: StatusTransition) -> tuple[bool, str]:
    """Validate a status transition.

    Returns (is_valid, error_message).
    """
    sources, _ = STATUS_TRANSITIONS[transition]
    if current not in sources:
        allowed = ", ".join(sorted(s.value for s in sources))
        return False, f"Cannot {transition.value} a {current.value} record (allowed from: {allowed})"
    return True, ""


def target_status(transition: StatusTransition) -> WorkStatus:
    return STATUS_TRANSITIONS[transition][1]


# States in which a record may still be edited or deleted
EDITABLE_STATUSES = frozenset({WorkStatus.DRAFT, WorkStatus.REJECTED})
DELETABLE_STATUSES = frozenset({WorkStatus.DRAFT})


def is_editable(status: str) -> bool:
    return status in {s.value for s in EDITABLE_STATUSES}


def is_deletable(status: str) -> bool:
    return status in {s.value for s in DELETABLE_STATUSES}


class TransitionRequest(BaseModel):
    transition: StatusTransition
    comment: Optional[str] = Field(default=None, max_length=1000)


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------

class ResourceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    user_id: Optional[UUID4] = None  # links the resource to a login
    role_title: Optional[str] = None
    day_rate: Optional[float] = Field(default=None, ge=0)


class ResourceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    user_id: Optional[UUID4] = None
    role_title: Optional[str] = None
    day_rate: Optional[float] = Field(default=None, ge=0)


class ResourceRead(ResourceCreate):
    id: UUID4
    project_id: UUID4
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Timesheets
# ---------------------------------------------------------------------------

class TimesheetCreate(BaseModel):
    resource_id: UUID4
    work_date: date
    hours: float = Field(gt=0, le=24)
    description: Optional[str] = None


class TimesheetUpdate(BaseModel):
    work_date: Optional[date] = None
    hours: Optional[float] = Field(default=None, gt=0, le=24)
    description: Optional[str] = None


class TimesheetRead(TimesheetCreate):
    id: UUID4
    project_id: UUID4
    status: WorkStatus
    created_by: Optional[UUID4] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------

class ExpenseCreate(BaseModel):
    resource_id: UUID4
    expense_date: date
    amount: float = Field(gt=0)
    currency: str = Field(default="GBP", pattern=r"^[A-Z]{3}$")
    category: str = "other"
    description: Optional[str] = None


class ExpenseUpdate(BaseModel):
    expense_date: Optional[date] = None
    amount: Optional[float] = Field(default=None, gt=0)
    currency: Optional[str] = Field(default=None, pattern=r"^[A-Z]{3}$")
    category: Optional[str] = None
    description: Optional[str] = None


class ExpenseRead(ExpenseCreate):
    id: UUID4
    project_id: UUID4
    status: WorkStatus
    created_by: Optional[UUID4] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Milestones, deliverables, variations
# ---------------------------------------------------------------------------

class MilestoneCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    due_date: Optional[date] = None
    amount: Optional[float] = Field(default=None, ge=0)


class MilestoneUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    due_date: Optional[date] = None
    amount: Optional[float] = Field(default=None, ge=0)


class MilestoneRead(MilestoneCreate):
    id: UUID4
    project_id: UUID4
    status: WorkStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class DeliverableCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    milestone_id: Optional[UUID4] = None


class DeliverableUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    milestone_id: Optional[UUID4] = None


class DeliverableRead(DeliverableCreate):
    id: UUID4
    project_id: UUID4
    status: WorkStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class VariationCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    cost_impact: float = 0
    days_impact: int = 0


class VariationUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    cost_impact: Optional[float] = None
    days_impact: Optional[int] = None


class VariationRead(VariationCreate):
    id: UUID4
    project_id: UUID4
    status: WorkStatus
    created_at: datetime

    model_config = {"from_attributes": True}
