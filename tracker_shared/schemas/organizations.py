"""
Organization-related Pydantic schemas.

Covers: Org CRUD request/response and OrgSettings with its sub-models.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Org Settings sub-models
# ---------------------------------------------------------------------------

class FeatureFlags(BaseModel):
    ai_chat_enabled: bool = True
    receipt_scanner_enabled: bool = True
    variations_enabled: bool = True
    report_builder_enabled: bool = True


class OrgDefaults(BaseModel):
    currency: str = Field(default="GBP", pattern=r"^[A-Z]{3}$", description="ISO 4217 code")
    hours_per_day: float = Field(default=8, gt=0, le=24)
    date_format: str = "DD/MM/YYYY"
    timezone: str = "Europe/London"


class BrandingSettings(BaseModel):
    logo_url: Optional[str] = None
    primary_color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")


class LimitsSettings(BaseModel):
    max_projects: Optional[int] = Field(default=None, ge=1, description="null = unlimited")
    max_members: Optional[int] = Field(default=None, ge=1, description="null = unlimited")


class OrgSettings(BaseModel):
    """Complete org-level settings schema. All fields optional with defaults."""

    features: FeatureFlags = Field(default_factory=FeatureFlags)
    defaults: OrgDefaults = Field(default_factory=OrgDefaults)
    branding: BrandingSettings = Field(default_factory=BrandingSettings)
    limits: LimitsSettings = Field(default_factory=LimitsSettings)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Organization display name")
    slug: str = Field(
        ...,
        min_length=2,
        max_length=50,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$",
        description="URL-safe org identifier",
    )


class OrgUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    settings: Optional[dict] = Field(
        None,
        description="Partial settings update (deep-merged via JSON Merge Patch)",
    )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    is_active: bool
    settings: OrgSettings
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrgListItem(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    role: Optional[str] = None  # the requesting user's role in this org

    model_config = {"from_attributes": True}


class OrgListResponse(BaseModel):
    data: list[OrgListItem]
