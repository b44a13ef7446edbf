"""
Company model - the owning side of every association.

Owners (and dispatch companies) own exactly one company; dispatchers and
drivers join companies through invite codes.
"""
from sqlalchemy import Column, String
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4

from fleetdesk.db.database import Base
from fleetdesk.models.mixins import AuditMixin


class Company(Base, AuditMixin):
    __tablename__ = "companies"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4, nullable=False)
    name = Column(String, nullable=False)

    # Identity-provider subject of the owning user
    owner_id = Column(String(255), nullable=False, index=True)

    def __repr__(self):
        return f"<Company(id={self.id}, name={self.name}, owner={self.owner_id})>"
