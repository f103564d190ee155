"""Project work entities: resources, timesheets, expenses, milestones, deliverables, variations."""

from datetime import date
from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Resource(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "resources"

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    user_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", index=True)
    name: str = Field(nullable=False)
    role_title: Optional[str] = None
    day_rate: Optional[float] = None


class Timesheet(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "timesheets"

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    resource_id: uuid.UUID = Field(foreign_key="resources.id", nullable=False, index=True)
    work_date: date = Field(nullable=False)
    hours: float = Field(nullable=False)
    description: Optional[str] = None
    status: str = Field(nullable=False, default="draft")  # draft | submitted | approved | rejected
    created_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")


class Expense(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "expenses"

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    resource_id: uuid.UUID = Field(foreign_key="resources.id", nullable=False, index=True)
    expense_date: date = Field(nullable=False)
    amount: float = Field(nullable=False)
    currency: str = Field(nullable=False, default="GBP")
    category: str = Field(nullable=False, default="other")
    description: Optional[str] = None
    status: str = Field(nullable=False, default="draft")
    created_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")


class Milestone(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "milestones"

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    name: str = Field(nullable=False)
    description: Optional[str] = None
    due_date: Optional[date] = None
    amount: Optional[float] = None
    status: str = Field(nullable=False, default="draft")


class Deliverable(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "deliverables"

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    milestone_id: Optional[uuid.UUID] = Field(default=None, foreign_key="milestones.id")
    name: str = Field(nullable=False)
    description: Optional[str] = None
    status: str = Field(nullable=False, default="draft")


class Variation(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "variations"

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    cost_impact: float = Field(nullable=False, default=0)
    days_impact: int = Field(nullable=False, default=0)
    status: str = Field(nullable=False, default="draft")
