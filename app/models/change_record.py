"""Change capture: one row per permitted mutation, stamped with the acting principal."""

from datetime import datetime, timezone
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import JSONType, UUIDMixin


class ChangeRecord(UUIDMixin, SQLModel, table=True):
    __tablename__ = "change_records"

    table_name: str = Field(nullable=False, index=True)
    record_id: str = Field(nullable=False, index=True)
    org_id: Optional[uuid.UUID] = Field(default=None, foreign_key="organizations.id", index=True)
    actor_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    action: str = Field(nullable=False)  # insert | update | transition | delete | deactivate
    before: Optional[dict] = Field(default=None, sa_type=JSONType)
    after: Optional[dict] = Field(default=None, sa_type=JSONType)
    comment: Optional[str] = None  # reviewer note on transitions
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
