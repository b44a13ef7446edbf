"""
DriverAssociation model - links a company to a driver.

Same lifecycle as DispatcherAssociation, without a fee.
"""
from sqlalchemy import Column, String, Index, text

from fleetdesk.db.database import Base
from fleetdesk.models.mixins import AssociationMixin


class DriverAssociation(Base, AssociationMixin):
    __tablename__ = "driver_company_associations"

    invitee_id = Column("driver_id", String(255), nullable=True, index=True)

    __table_args__ = (
        Index(
            "ix_driver_assoc_company_driver_active",
            "company_id",
            "driver_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_driver_assoc_company_status", "company_id", "status"),
    )

    @property
    def driver_id(self):
        return self.invitee_id

    def __repr__(self):
        return (
            f"<DriverAssociation(company={self.company_id}, "
            f"driver={self.invitee_id}, status={self.status})>"
        )
