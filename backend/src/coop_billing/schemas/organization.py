"""Pydantic schemas for Organization model."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class OrganizationCreate(BaseModel):
    """Schema for creating an organization."""

    name: str = Field(..., min_length=1, max_length=255, description="Organization name")
    org_type: str = Field(default="cooperative", description="Organization type (cooperative, buyer, ...)")


class Organization(OrganizationCreate):
    """Schema for returning organization data."""

    id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
