"""
Company resolver: which company context applies to a user.

Owners and dispatch companies own a company. Dispatchers and drivers belong
to every company they hold an active association with, and pick one of them
as their current company.
"""
from dataclasses import dataclass, field
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from fleetdesk.models.company import Company
from fleetdesk.models.mixins import AssociationStatus
from fleetdesk.models.profile import UserRole
from fleetdesk.repositories.association_repository import AssociationRepository
from fleetdesk.repositories.company_repository import CompanyRepository
from fleetdesk.services.invitation_service import DISPATCHER, DRIVER

logger = logging.getLogger(__name__)

OWNING_ROLES = (UserRole.OWNER.value, UserRole.DISPATCH_COMPANY.value)

# Association tables a role can be a member through
MEMBERSHIP_KINDS = {
    UserRole.DISPATCHER.value: (DISPATCHER,),
    UserRole.DRIVER.value: (DRIVER,),
    # dispatch-company to dispatch-company invites use dispatcher codes
    UserRole.DISPATCH_COMPANY.value: (DISPATCHER,),
}


@dataclass
class CompanyContext:
    user_id: str
    role: str
    current_company: Optional[Company] = None
    owned_company: Optional[Company] = None
    member_companies: List[Company] = field(default_factory=list)

    @property
    def companies(self) -> List[Company]:
        """Every company the user can switch to, owned one first."""
        result = [self.owned_company] if self.owned_company else []
        result.extend(c for c in self.member_companies if c.id not in {r.id for r in result})
        return result

    @property
    def is_owner(self) -> bool:
        return self.owned_company is not None

    def can_access(self, company_id) -> bool:
        return any(c.id == company_id for c in self.companies)


class CompanyResolver:
    """Resolve the company context for a user."""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, user_id: str, requested_company_id=None) -> Optional[CompanyContext]:
        """
        Build the company context for `user_id`.

        Args:
            user_id: Identity-provider user id
            requested_company_id: Company the user asked to switch to, if any

        Returns:
            CompanyContext, or None if the user has no profile
        """
        profile = CompanyRepository.get_profile(self.db, user_id)
        if profile is None:
            logger.debug(f"No profile for user {user_id}")
            return None

        owned = self._owned_company(profile) if profile.role in OWNING_ROLES else None
        members = self._member_companies(user_id, profile.role)

        context = CompanyContext(
            user_id=user_id,
            role=profile.role,
            owned_company=owned,
            member_companies=members,
        )
        context.current_company = self._pick_current(context, requested_company_id, profile.company_id)

        logger.debug(
            f"Resolved user {user_id} ({profile.role}) to company "
            f"{context.current_company.id if context.current_company else None}"
        )
        return context

    def _owned_company(self, profile) -> Optional[Company]:
        if profile.company_id is not None:
            company = CompanyRepository.get_by_id(self.db, profile.company_id)
            if company is not None and company.owner_id == profile.id:
                return company

        company = CompanyRepository.get_by_owner(self.db, profile.id)
        if company is not None and profile.company_id is None:
            # Profile predates the pointer; fix it for later reads
            CompanyRepository.backfill_profile_company(self.db, profile.id, company.id)
        return company

    def _member_companies(self, user_id: str, role: str) -> List[Company]:
        rows = []
        for kind in MEMBERSHIP_KINDS.get(role, ()):
            rows.extend(
                AssociationRepository(kind.model).list_for_invitee(
                    self.db, user_id, status=AssociationStatus.ACTIVE.value
                )
            )

        companies = {c.id: c for c in CompanyRepository.list_by_ids(self.db, {r.company_id for r in rows})}

        # Keep most recently joined first
        ordered = []
        for row in rows:
            company = companies.pop(row.company_id, None)
            if company is not None:
                ordered.append(company)
        return ordered

    @staticmethod
    def _pick_current(context: CompanyContext, requested_company_id, profile_company_id) -> Optional[Company]:
        for candidate in (requested_company_id, profile_company_id):
            if candidate is None:
                continue
            for company in context.companies:
                if company.id == candidate:
                    return company

        companies = context.companies
        return companies[0] if companies else None
