# src/fleetdesk/repositories/company_repository.py

from typing import Iterable, List, Optional
import logging

from sqlalchemy.orm import Session
from opentelemetry import trace

from fleetdesk.models.company import Company
from fleetdesk.models.profile import Profile

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CompanyRepository:

    @staticmethod
    def get_by_id(db: Session, company_id) -> Optional[Company]:
        with tracer.start_as_current_span("db.get_company") as span:
            span.set_attribute("company.id", str(company_id))

            return db.query(Company).filter(Company.id == company_id).first()

    @staticmethod
    def get_by_owner(db: Session, owner_id: str) -> Optional[Company]:
        with tracer.start_as_current_span("db.get_company_by_owner") as span:
            span.set_attribute("owner.id", owner_id)

            return (
                db.query(Company)
                .filter(Company.owner_id == owner_id)
                .order_by(Company.created_at.asc())
                .first()
            )

    @staticmethod
    def list_by_ids(db: Session, company_ids: Iterable) -> List[Company]:
        ids = list(company_ids)
        if not ids:
            return []

        with tracer.start_as_current_span("db.list_companies") as span:
            span.set_attribute("company.count", len(ids))

            return db.query(Company).filter(Company.id.in_(ids)).all()

    @staticmethod
    def create(db: Session, *, name: str, owner_id: str) -> Company:
        company = Company(name=name, owner_id=owner_id)

        with tracer.start_as_current_span("db.create_company") as span:
            span.set_attribute("owner.id", owner_id)

            db.add(company)
            db.commit()
            db.refresh(company)

        logger.info("Created company id=%s owner=%s", company.id, owner_id)
        return company

    @staticmethod
    def get_profile(db: Session, user_id: str) -> Optional[Profile]:
        with tracer.start_as_current_span("db.get_profile") as span:
            span.set_attribute("user.id", user_id)

            return db.query(Profile).filter(Profile.id == user_id).first()

    @staticmethod
    def backfill_profile_company(db: Session, user_id: str, company_id) -> int:
        """Point the profile at `company_id` only if it has no company yet."""
        with tracer.start_as_current_span("db.backfill_profile_company") as span:
            span.set_attribute("user.id", user_id)
            span.set_attribute("company.id", str(company_id))

            matched = (
                db.query(Profile)
                .filter(Profile.id == user_id, Profile.company_id.is_(None))
                .update({Profile.company_id: company_id}, synchronize_session=False)
            )
            db.commit()

        if matched:
            logger.info("Backfilled profile %s company -> %s", user_id, company_id)
        return matched
