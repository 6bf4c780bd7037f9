"""Pydantic schemas for Member model."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from coop_billing.models.member import MemberStatus, SeatType

# Historical names the seat was stored under, in precedence order
LEGACY_SEAT_FIELDS = ("seat_type", "seatType", "seatStatus", "premiumSeatType")


class MemberCreate(BaseModel):
    """
    Schema for adding a member to an organization roster.

    Imported records may carry the seat under any of its historical names;
    the first one that is not null lands in the single seat_type column.
    """

    display_name: str = Field(..., min_length=1, max_length=255, description="Member display name")
    user_uid: str | None = Field(default=None, description="Linked platform user id")
    role: str = Field(default="member", description="Organization role (org_admin, org_staff, member)")
    status: MemberStatus = Field(default=MemberStatus.PENDING, description="Membership status")
    seat_type: SeatType = Field(default=SeatType.NONE, description="Seat held at import time")

    @model_validator(mode="before")
    @classmethod
    def coalesce_legacy_seat_fields(cls, data: Any) -> Any:
        """Fold seatType / seatStatus / premiumSeatType into seat_type."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        seat = None
        for key in LEGACY_SEAT_FIELDS:
            value = data.pop(key, None)
            if seat is None and value is not None:
                seat = value
        data["seat_type"] = seat or SeatType.NONE
        return data


class MemberStatusUpdate(BaseModel):
    """Schema for changing a member's status."""

    status: MemberStatus = Field(..., description="New membership status")


class Member(BaseModel):
    """Schema for returning member data."""

    id: UUID
    org_id: UUID
    display_name: str
    user_uid: str | None
    role: str
    status: MemberStatus
    seat_type: SeatType
    seat_assigned_at: datetime | None
    seat_assigned_by: str | None
    seat_assigned_by_name: str | None
    entitlement: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
