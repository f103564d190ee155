from typing import Optional
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime


class ProjectBase(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    reference: str = Field(min_length=1, max_length=50)
    description: Optional[str] = None


class ProjectCreate(ProjectBase):
    pass


class ProjectUpdate(BaseModel):
    # org_id is deliberately absent: a project never changes organization
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    reference: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = None


class ProjectRead(ProjectBase):
    id: UUID
    org_id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProjectListResponse(BaseModel):
    data: list[ProjectRead]


class ApprovalWorkflow(BaseModel):
    timesheet_approval: bool = True
    expense_approval: bool = True
    deliverable_approval: bool = True
    milestone_dual_signature: bool = False
    variation_dual_signature: bool = True


class ProjectWorkflowSettings(BaseModel):
    """Per-project workflow settings (one row per project)."""
    workflow: ApprovalWorkflow = Field(default_factory=ApprovalWorkflow)
    default_hourly_rate: Optional[float] = Field(default=None, ge=0)
    budget_tracking_enabled: bool = True


class ProjectSettingsRead(BaseModel):
    project_id: UUID
    settings: ProjectWorkflowSettings
    updated_at: datetime

    model_config = {"from_attributes": True}
