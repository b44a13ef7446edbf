"""
DispatcherAssociation model - links a company to a dispatcher.

A row starts life as an unused invite code (dispatcher_id NULL, status
'pending') and becomes the membership record once the code is redeemed.
The fee percentage is fixed by the owner when the code is generated; it is
0 for dispatch-company to dispatch-company invites.
"""
from sqlalchemy import Column, String, Numeric, Index, CheckConstraint, text

from fleetdesk.db.database import Base
from fleetdesk.models.mixins import AssociationMixin


class DispatcherAssociation(Base, AssociationMixin):
    __tablename__ = "dispatcher_company_associations"

    invitee_id = Column("dispatcher_id", String(255), nullable=True, index=True)

    fee_percentage = Column(Numeric(5, 2), nullable=False, default=12)

    __table_args__ = (
        CheckConstraint(
            "fee_percentage >= 0 AND fee_percentage <= 100",
            name="ck_dispatcher_assoc_fee_range",
        ),
        # One active membership per (company, dispatcher)
        Index(
            "ix_dispatcher_assoc_company_dispatcher_active",
            "company_id",
            "dispatcher_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_dispatcher_assoc_company_status", "company_id", "status"),
    )

    @property
    def dispatcher_id(self):
        return self.invitee_id

    def __repr__(self):
        return (
            f"<DispatcherAssociation(company={self.company_id}, "
            f"dispatcher={self.invitee_id}, status={self.status})>"
        )
