"""User model (the principal)."""

from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin


class User(UUIDMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: Optional[str] = Field(default=None, unique=True, index=True)
    display_name: Optional[str] = None
    platform_role: str = Field(nullable=False, default="user")  # guest | user | system_admin
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
        sa_column_kwargs={
            "server_default": sa.func.now(),
        },
        sa_type=sa.DateTime(timezone=True),
    )
