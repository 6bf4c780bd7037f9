"""Declarative base and the column helpers shared by billing tables."""
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Uuid

from coop_billing.database import Base as DeclarativeBase


def org_id_column(unique: bool = False) -> Column:
    """Owning organization; billing rows go away with their organization."""
    return Column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        unique=unique,
        index=True,
    )


class Base(DeclarativeBase):
    """UUID key plus creation and modification times.

    ``updated_at`` also serves as the write that bumps a versioned row.
    """

    __abstract__ = True

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
