"""Shared billing schemas: actor identity, seat counts and usage."""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BillingActor(BaseModel):
    """Who performed a billing mutation, for ledger attribution."""

    uid: str = Field(..., min_length=1, description="Actor user id")
    name: str = Field(..., description="Actor display name")


SYSTEM_ACTOR = BillingActor(uid="system", name="System")


class SeatCounts(BaseModel):
    """Paid and sponsored seat totals."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    paid_total: int = Field(..., ge=0, description="Paid seats")
    sponsored_total: int = Field(..., ge=0, description="Sponsored seats")


class SeatSnapshot(SeatCounts):
    """Seat totals and usage right after a mutation."""

    paid_used: int = Field(..., ge=0)
    sponsored_used: int = Field(..., ge=0)


class SeatUsage(BaseModel):
    """Display-only view of seat capacity and consumption."""

    paid_used: int
    sponsored_used: int
    paid_total: int
    sponsored_total: int
    paid_remaining: int
    sponsored_remaining: int
    active_members: int
    premium_enabled_members: int

    def snapshot(self) -> SeatSnapshot:
        """Totals and usage in ledger snapshot form."""
        return SeatSnapshot(
            paid_total=self.paid_total,
            sponsored_total=self.sponsored_total,
            paid_used=self.paid_used,
            sponsored_used=self.sponsored_used,
        )
