"""Member model: the seat holders of an organization's roster."""
import enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, JSON, String
from sqlalchemy.orm import relationship

from coop_billing.models.base import Base, org_id_column


class MemberStatus(str, enum.Enum):
    """Membership status within the organization."""

    ACTIVE = "active"
    PENDING = "pending"
    SUSPENDED = "suspended"
    REJECTED = "rejected"


class SeatType(str, enum.Enum):
    """Premium seat a member holds."""

    NONE = "none"
    PAID = "paid"
    SPONSORED = "sponsored"


class Member(Base):
    """
    Organization member.

    Holds at most one seat type at a time. The entitlement column is a
    derived snapshot ({premiumActive, features}) rewritten on every seat or
    status change.
    """

    __tablename__ = "org_members"

    org_id = org_id_column()
    user_uid = Column(String, nullable=True, index=True)  # Linked platform user, if any
    display_name = Column(String, nullable=False)
    role = Column(String, nullable=False, default="member")  # org_admin, admin, org_staff, staff, member
    status = Column(SQLEnum(MemberStatus), nullable=False, default=MemberStatus.PENDING, index=True)

    seat_type = Column(SQLEnum(SeatType), nullable=False, default=SeatType.NONE, index=True)
    seat_assigned_at = Column(DateTime, nullable=True)
    seat_assigned_by = Column(String, nullable=True)
    seat_assigned_by_name = Column(String, nullable=True)
    entitlement = Column(JSON, nullable=False, default=lambda: {"premiumActive": False, "features": {}})

    # Relationships
    organization = relationship("Organization", back_populates="members")

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE

    def __repr__(self) -> str:
        """String representation."""
        return f"<Member(id={self.id}, status={self.status.value}, seat_type={self.seat_type.value})>"
