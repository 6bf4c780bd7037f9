"""Organization model: the tenant that owns one subscription and seat pool."""
from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from coop_billing.models.base import Base


class Organization(Base):
    """
    Cooperative or other organization billed as one tenant.

    Members, the subscription, billing settings, invoices, payments and the
    seat ledger all hang off an organization.
    """

    __tablename__ = "organizations"

    name = Column(String, nullable=False)
    org_type = Column(String, nullable=False, default="cooperative")  # cooperative, buyer, enterprise, ...

    # Relationships
    members = relationship("Member", back_populates="organization", cascade="all, delete-orphan")
    subscription = relationship("OrgSubscription", back_populates="organization", uselist=False)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Organization(id={self.id}, name={self.name}, org_type={self.org_type})>"
