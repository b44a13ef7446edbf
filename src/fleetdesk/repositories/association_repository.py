# src/fleetdesk/repositories/association_repository.py

from datetime import datetime
from typing import Any, List, Optional, Type
import logging

from sqlalchemy.orm import Session
from opentelemetry import trace

from fleetdesk.models.mixins import AssociationStatus, DORMANT_STATUSES

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

PENDING = AssociationStatus.PENDING.value
ACTIVE = AssociationStatus.ACTIVE.value


class AssociationRepository:
    """
    Store access for one association table.

    State transitions go through predicate-guarded UPDATE/DELETE statements
    and return the number of rows matched, so callers can tell whether they
    won a race.
    """

    def __init__(self, model: Type[Any]):
        self.model = model
        self.table = model.__tablename__

    def create_pending(
        self,
        db: Session,
        *,
        company_id,
        invite_code: str,
        expires_at: Optional[datetime],
        invited_by: Optional[str],
        **attributes,
    ):
        association = self.model(
            company_id=company_id,
            invitee_id=None,
            invite_code=invite_code,
            status=PENDING,
            expires_at=expires_at,
            invited_by=invited_by,
            **attributes,
        )

        with tracer.start_as_current_span("db.create_pending_association") as span:
            span.set_attribute("db.table", self.table)
            span.set_attribute("company.id", str(company_id))

            db.add(association)
            db.commit()
            db.refresh(association)

        logger.info(
            "Created pending %s row id=%s company=%s",
            self.table,
            association.id,
            company_id,
        )
        return association

    def get_by_id(self, db: Session, association_id):
        with tracer.start_as_current_span("db.get_association") as span:
            span.set_attribute("db.table", self.table)
            span.set_attribute("association.id", str(association_id))

            return (
                db.query(self.model)
                .filter(self.model.id == association_id)
                .first()
            )

    def find_pending_by_code(self, db: Session, code: str):
        """Pending, unbound row carrying `code` (expiry not checked)."""
        with tracer.start_as_current_span("db.find_pending_by_code") as span:
            span.set_attribute("db.table", self.table)

            return (
                db.query(self.model)
                .filter(
                    self.model.invite_code == code,
                    self.model.status == PENDING,
                    self.model.invitee_id.is_(None),
                )
                .first()
            )

    def find_redeemed_by_code(self, db: Session, code: str):
        """Membership row that was bound by `code`, if any."""
        with tracer.start_as_current_span("db.find_redeemed_by_code") as span:
            span.set_attribute("db.table", self.table)

            return (
                db.query(self.model)
                .filter(self.model.redeemed_code == code)
                .order_by(self.model.joined_at.desc())
                .first()
            )

    def list_for_pair(self, db: Session, company_id, invitee_id: str) -> List[Any]:
        """Every row linking `invitee_id` to `company_id`, most recently touched first."""
        with tracer.start_as_current_span("db.list_associations_for_pair") as span:
            span.set_attribute("db.table", self.table)
            span.set_attribute("company.id", str(company_id))
            span.set_attribute("invitee.id", invitee_id)

            return (
                db.query(self.model)
                .filter(
                    self.model.company_id == company_id,
                    self.model.invitee_id == invitee_id,
                )
                .order_by(self.model.updated_at.desc(), self.model.created_at.desc())
                .all()
            )

    def claim_code(self, db: Session, association_id, invitee_id: str, joined_at: datetime, code: str) -> int:
        """
        Bind an unused code row to `invitee_id` and activate it.

        Guarded by `status = pending AND invitee IS NULL` at write time.
        Returns 0 when another request got there first.
        """
        with tracer.start_as_current_span("db.claim_invite_code") as span:
            span.set_attribute("db.table", self.table)
            span.set_attribute("association.id", str(association_id))

            matched = (
                db.query(self.model)
                .filter(
                    self.model.id == association_id,
                    self.model.status == PENDING,
                    self.model.invitee_id.is_(None),
                )
                .update(
                    {
                        self.model.invitee_id: invitee_id,
                        self.model.status: ACTIVE,
                        self.model.joined_at: joined_at,
                        self.model.invite_code: None,
                        self.model.expires_at: None,
                        self.model.redeemed_code: code,
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
            span.set_attribute("db.rows_matched", matched)

        logger.debug("Claim of %s id=%s matched %d row(s)", self.table, association_id, matched)
        return matched

    def reactivate(self, db: Session, association_id, joined_at: datetime, code: str, *, commit: bool = True) -> int:
        """
        Flip a dormant (inactive/suspended) row back to active.

        With commit=False the caller owns the transaction.
        """
        with tracer.start_as_current_span("db.reactivate_association") as span:
            span.set_attribute("db.table", self.table)
            span.set_attribute("association.id", str(association_id))

            matched = (
                db.query(self.model)
                .filter(
                    self.model.id == association_id,
                    self.model.status.in_(DORMANT_STATUSES),
                )
                .update(
                    {
                        self.model.status: ACTIVE,
                        self.model.joined_at: joined_at,
                        self.model.redeemed_code: code,
                    },
                    synchronize_session=False,
                )
            )
            if commit:
                db.commit()
            span.set_attribute("db.rows_matched", matched)

        return matched

    def delete_unused(self, db: Session, association_id, *, commit: bool = True) -> int:
        """
        Delete a code row only if it was never bound to an invitee.

        Safe to repeat: deleting an already-deleted row matches nothing.
        """
        with tracer.start_as_current_span("db.delete_unused_code") as span:
            span.set_attribute("db.table", self.table)
            span.set_attribute("association.id", str(association_id))

            matched = (
                db.query(self.model)
                .filter(
                    self.model.id == association_id,
                    self.model.status == PENDING,
                    self.model.invitee_id.is_(None),
                )
                .delete(synchronize_session=False)
            )
            if commit:
                db.commit()
            span.set_attribute("db.rows_matched", matched)

        return matched

    def set_status(self, db: Session, association_id, status: str, *, from_statuses=None, joined_at=None) -> int:
        """
        Set `status`, clearing any leftover code/expiry.

        `from_statuses` restricts the rows the update may match.
        `joined_at`, when given, restamps the membership start.
        """
        with tracer.start_as_current_span("db.set_association_status") as span:
            span.set_attribute("db.table", self.table)
            span.set_attribute("association.id", str(association_id))
            span.set_attribute("association.new_status", status)

            query = db.query(self.model).filter(
                self.model.id == association_id,
                self.model.invitee_id.isnot(None),
            )
            if from_statuses:
                query = query.filter(self.model.status.in_(tuple(from_statuses)))

            values = {
                self.model.status: status,
                self.model.invite_code: None,
                self.model.expires_at: None,
            }
            if joined_at is not None:
                values[self.model.joined_at] = joined_at

            matched = query.update(values, synchronize_session=False)
            db.commit()
            span.set_attribute("db.rows_matched", matched)

        logger.info("Set %s id=%s status -> %s (%d row)", self.table, association_id, status, matched)
        return matched

    def update_fields(self, db: Session, association_id, **values) -> int:
        with tracer.start_as_current_span("db.update_association") as span:
            span.set_attribute("db.table", self.table)
            span.set_attribute("association.id", str(association_id))

            matched = (
                db.query(self.model)
                .filter(self.model.id == association_id)
                .update(
                    {getattr(self.model, key): value for key, value in values.items()},
                    synchronize_session=False,
                )
            )
            db.commit()

        return matched

    def list_active(self, db: Session, company_id) -> List[Any]:
        with tracer.start_as_current_span("db.list_active_associations") as span:
            span.set_attribute("db.table", self.table)
            span.set_attribute("company.id", str(company_id))

            results = (
                db.query(self.model)
                .filter(
                    self.model.company_id == company_id,
                    self.model.status == ACTIVE,
                    self.model.invitee_id.isnot(None),
                )
                .order_by(self.model.joined_at.desc())
                .all()
            )

        logger.debug("Listed %d active %s rows for company=%s", len(results), self.table, company_id)
        return results

    def list_pending_codes(self, db: Session, company_id) -> List[Any]:
        """Unbound code rows of a company, expired ones included."""
        with tracer.start_as_current_span("db.list_pending_codes") as span:
            span.set_attribute("db.table", self.table)
            span.set_attribute("company.id", str(company_id))

            return (
                db.query(self.model)
                .filter(
                    self.model.company_id == company_id,
                    self.model.status == PENDING,
                    self.model.invitee_id.is_(None),
                    self.model.invite_code.isnot(None),
                )
                .order_by(self.model.created_at.desc())
                .all()
            )

    def list_for_invitee(self, db: Session, invitee_id: str, status: Optional[str] = None) -> List[Any]:
        with tracer.start_as_current_span("db.list_associations_for_invitee") as span:
            span.set_attribute("db.table", self.table)
            span.set_attribute("invitee.id", invitee_id)

            query = db.query(self.model).filter(self.model.invitee_id == invitee_id)
            if status:
                query = query.filter(self.model.status == status)

            return query.order_by(self.model.joined_at.desc()).all()

    def purge_expired(self, db: Session, cutoff: datetime) -> int:
        """Delete unbound pending rows whose expiry is before `cutoff`."""
        with tracer.start_as_current_span("db.purge_expired_codes") as span:
            span.set_attribute("db.table", self.table)

            matched = (
                db.query(self.model)
                .filter(
                    self.model.status == PENDING,
                    self.model.invitee_id.is_(None),
                    self.model.expires_at.isnot(None),
                    self.model.expires_at < cutoff,
                )
                .delete(synchronize_session=False)
            )
            db.commit()
            span.set_attribute("db.rows_matched", matched)

        logger.info("Purged %d expired code(s) from %s", matched, self.table)
        return matched
