"""User-Organization membership (join table, guarded)."""

from datetime import datetime, timezone
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


class UserOrg(SQLModel, table=True):
    __tablename__ = "users_orgs"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    org_id: uuid.UUID = Field(foreign_key="organizations.id", primary_key=True)
    role: str = Field(nullable=False, default="org_member")  # org_owner | org_admin | org_member
    is_active: bool = Field(default=True, nullable=False)
    is_default: bool = Field(default=False, nullable=False)
    joined_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
