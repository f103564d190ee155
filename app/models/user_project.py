"""User-Project membership (join table, guarded)."""

from datetime import datetime, timezone
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


class UserProject(SQLModel, table=True):
    __tablename__ = "user_projects"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    project_id: uuid.UUID = Field(foreign_key="projects.id", primary_key=True)
    role: str = Field(nullable=False, default="viewer")
    is_active: bool = Field(default=True, nullable=False)
    is_default: bool = Field(default=False, nullable=False)
    assigned_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
