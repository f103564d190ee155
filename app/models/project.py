"""Project model."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class Project(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "projects"

    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    name: str = Field(nullable=False)
    reference: str = Field(nullable=False, index=True)
    description: Optional[str] = None


class ProjectSettings(TimestampMixin, SQLModel, table=True):
    __tablename__ = "project_settings"

    project_id: uuid.UUID = Field(foreign_key="projects.id", primary_key=True)
    settings: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)
