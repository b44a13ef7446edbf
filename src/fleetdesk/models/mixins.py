"""
Mixins for SQLAlchemy models.
Provides reusable column sets for timestamps and the shared association columns.
"""
import enum
from uuid import uuid4

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declared_attr
from sqlalchemy.sql import func


class AuditMixin:
    """
    Adds bookkeeping timestamps to any model.

    Provides:
    - created_at: Automatic timestamp (UTC) when record is created
    - updated_at: Automatic timestamp (UTC) when record is modified
    """

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="UTC timestamp when record was created"
    )

    updated_at = Column(
        DateTime(timezone=True),
        onupdate=func.now(),
        comment="UTC timestamp when record was last updated"
    )


class AssociationMixin(AuditMixin):
    """
    Columns shared by every company <-> invitee association table.

    Concrete models add the invitee column (mapped to the `invitee_id`
    attribute) plus any business attributes of their own.

    Status: 'pending', 'active', 'inactive', 'suspended'
    """

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4, nullable=False)

    @declared_attr
    def company_id(cls):
        return Column(
            UUID(as_uuid=True),
            ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )

    # Present only while the row is pending and unused
    invite_code = Column(String(16), nullable=True, unique=True, index=True)

    # Code that bound this membership; kept after invite_code is cleared
    redeemed_code = Column(String(16), nullable=True, index=True)

    status = Column(String(20), nullable=False, default="pending")

    # NULL = never expires
    expires_at = Column(DateTime(timezone=True), nullable=True)
    joined_at = Column(DateTime(timezone=True), nullable=True)

    # Issuing owner, audit only
    invited_by = Column(String(255), nullable=True)


class AssociationStatus(str, enum.Enum):
    """Lifecycle states of a company association."""
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


DORMANT_STATUSES = (AssociationStatus.INACTIVE.value, AssociationStatus.SUSPENDED.value)
