"""
Profile model - application-side record of an identity-provider user.

`company_id` is a denormalized "current company" pointer used for
convenience reads. Association tables remain the source of truth.
"""
from sqlalchemy import Column, String, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
import enum

from fleetdesk.db.database import Base
from fleetdesk.models.mixins import AuditMixin


class UserRole(str, enum.Enum):
    """Roles a profile can hold."""
    OWNER = "owner"
    DISPATCHER = "dispatcher"
    DRIVER = "driver"
    DISPATCH_COMPANY = "dispatch_company"


class Profile(Base, AuditMixin):
    __tablename__ = "profiles"

    # Identity-provider user id (JWT `sub`)
    id = Column(String(255), primary_key=True)

    email = Column(String, nullable=True, index=True)
    name = Column(String, nullable=True)
    role = Column(String(50), nullable=False, default=UserRole.OWNER.value)

    # Status: 'active', 'inactive'
    status = Column(String(20), nullable=False, default="active")

    company_id = Column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self):
        return f"<Profile(id={self.id}, role={self.role}, company={self.company_id})>"
