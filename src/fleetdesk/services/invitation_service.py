"""
Invitation service: the invite-code gated membership state machine.

Handles, for one invitee kind (dispatcher or driver):
- Code generation, preview and redemption
- Reactivation of dormant members instead of duplicate rows
- Revocation of unused codes and removal of members
- Read-only projections of members and unused codes

State machine:

    (none) --generate--> pending --redeem (CAS)--> active --revoke/remove--> inactive
    inactive/suspended --redeem (fresh code)--> active   (reactivation)
    pending --revoke--> deleted
    pending past expires_at: inert, hidden from reads, removed only by the sweep

Every operation returns an InvitationResult; only NotAuthenticated is raised.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Type
import logging
import os

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fleetdesk.auth.session import CallerSession
from fleetdesk.metrics import (
    expired_invite_codes_purged_total,
    invite_code_redemptions_total,
    invite_codes_generated_total,
)
from fleetdesk.models.company import Company
from fleetdesk.models.dispatcher_association import DispatcherAssociation
from fleetdesk.models.driver_association import DriverAssociation
from fleetdesk.models.mixins import AssociationStatus, DORMANT_STATUSES
from fleetdesk.repositories.association_repository import AssociationRepository
from fleetdesk.repositories.company_repository import CompanyRepository
from fleetdesk.services.invitation_errors import (
    AlreadyAssociated,
    AssociationNotFound,
    CodeAlreadyUsed,
    CodeExpired,
    InvalidCode,
    InvalidFeePercentage,
    InvalidStatusTransition,
    InvitationError,
    NotAuthenticated,
    PersistenceError,
    Unauthorized,
)
from fleetdesk.services.invite_code_service import (
    generate_unique_invite_code,
    normalize_invite_code,
    validate_invite_code_format,
)
from fleetdesk.utils.time_utils import days_from_now, ensure_aware, is_past, utcnow

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_DAYS = int(os.getenv("INVITE_CODE_EXPIRY_DAYS", "30"))
DEFAULT_FEE_PERCENTAGE = Decimal(os.getenv("DEFAULT_DISPATCHER_FEE_PERCENTAGE", "12.00"))

ACTIVE = AssociationStatus.ACTIVE.value
INACTIVE = AssociationStatus.INACTIVE.value
SUSPENDED = AssociationStatus.SUSPENDED.value
MANAGEABLE_STATUSES = (ACTIVE, INACTIVE, SUSPENDED)


@dataclass(frozen=True)
class InviteeKind:
    """Which association table a service instance drives."""
    name: str
    model: Type[Any]
    label: str


DISPATCHER = InviteeKind(name="dispatcher", model=DispatcherAssociation, label="dispatcher")
DRIVER = InviteeKind(name="driver", model=DriverAssociation, label="driver")


@dataclass
class InvitePreview:
    company_id: Any
    company_name: Optional[str]
    expires_at: Optional[datetime]
    fee_percentage: Optional[float] = None


@dataclass
class InvitationResult:
    success: bool
    error: Optional[str] = None
    error_code: Optional[str] = None
    code: Optional[str] = None
    association: Any = None
    preview: Optional[InvitePreview] = None
    deleted: bool = False

    @classmethod
    def ok(cls, **payload) -> "InvitationResult":
        return cls(success=True, **payload)

    @classmethod
    def failure(cls, error: InvitationError) -> "InvitationResult":
        return cls(success=False, error=error.message, error_code=error.code)


class InvitationService:
    """Invite-code membership lifecycle for one invitee kind."""

    kind: Optional[InviteeKind] = None

    def __init__(self, db: Session, kind: Optional[InviteeKind] = None):
        self.db = db
        if kind is not None:
            self.kind = kind
        if self.kind is None:
            raise ValueError("An invitee kind is required")
        self.repo = AssociationRepository(self.kind.model)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run(self, operation: str, func: Callable[[], InvitationResult]) -> InvitationResult:
        """Turn expected failures and store errors into results."""
        try:
            return func()
        except InvitationError as e:
            logger.info(f"{self.kind.name} {operation} rejected: {e.code} ({e.message})")
            return InvitationResult.failure(e)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{self.kind.name} {operation} failed in the store: {e}")
            return InvitationResult.failure(PersistenceError(cause=e))

    @staticmethod
    def _require_caller(caller: Optional[CallerSession]) -> CallerSession:
        if caller is None or not caller.user_id:
            raise NotAuthenticated()
        return caller

    def _require_owner(self, caller: CallerSession, company_id) -> Company:
        company = CompanyRepository.get_by_id(self.db, company_id)
        if company is None or company.owner_id != caller.user_id:
            raise Unauthorized()
        return company

    def _get_association(self, association_id, missing_message: str):
        association = self.repo.get_by_id(self.db, association_id)
        if association is None:
            raise AssociationNotFound(missing_message)
        return association

    @staticmethod
    def _normalized_code(code: Optional[str]) -> str:
        """Client-side fast-fail: malformed input never reaches the store."""
        normalized = normalize_invite_code(code)
        if not validate_invite_code_format(normalized):
            raise InvalidCode("Invite codes are 8 letters or digits, e.g. ABCD-1234")
        return normalized

    def _prepare_attributes(self, attributes: Dict[str, Any]) -> Dict[str, Any]:
        """Validate kind-specific attributes stored on a new code row."""
        if attributes:
            raise TypeError(
                f"{self.kind.name} invite codes take no attributes: {sorted(attributes)}"
            )
        return {}

    def _preview_attributes(self, association) -> Dict[str, Any]:
        return {}

    def _backfill_profile(self, user_id: str, company_id) -> None:
        """Best-effort: point the invitee's profile at its first company."""
        try:
            CompanyRepository.backfill_profile_company(self.db, user_id, company_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Could not backfill company for profile {user_id}: {e}")

    def _record_redemption(self, outcome: str) -> None:
        invite_code_redemptions_total.labels(kind=self.kind.name, outcome=outcome).inc()

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def generate_code(
        self,
        caller: Optional[CallerSession],
        company_id,
        expires_in_days: Optional[int] = DEFAULT_EXPIRY_DAYS,
        **attributes,
    ) -> InvitationResult:
        """
        Create a pending association carrying a fresh invite code.

        Args:
            caller: Current session (required)
            company_id: Company the code invites into
            expires_in_days: Days until the code stops working; None never expires
            **attributes: Kind-specific attributes (fee_percentage for dispatchers)

        Returns:
            InvitationResult with the raw `code` and the created `association`

        Raises:
            NotAuthenticated: If there is no caller session
        """
        caller = self._require_caller(caller)

        def op():
            values = self._prepare_attributes(attributes)

            if CompanyRepository.get_by_id(self.db, company_id) is None:
                raise AssociationNotFound("Company not found")

            code = generate_unique_invite_code(self.db)
            association = self.repo.create_pending(
                self.db,
                company_id=company_id,
                invite_code=code,
                expires_at=days_from_now(expires_in_days),
                invited_by=caller.user_id,
                **values,
            )
            invite_codes_generated_total.labels(kind=self.kind.name).inc()
            logger.info(f"User {caller.user_id} generated a {self.kind.name} invite code for company {company_id}")
            return InvitationResult.ok(code=code, association=association)

        return self._run("generate_code", op)

    def revoke_code(self, caller: Optional[CallerSession], association_id) -> InvitationResult:
        """
        Revoke an invite code.

        Unused codes are deleted outright. A code that has already been
        redeemed represents a real membership, so revoking it deactivates
        the member instead of deleting history.
        """
        caller = self._require_caller(caller)

        def op():
            association = self._get_association(association_id, "Invite code not found")
            self._require_owner(caller, association.company_id)

            if association.invitee_id is None:
                if self.repo.delete_unused(self.db, association_id):
                    logger.info(f"Deleted unused {self.kind.name} invite code {association_id}")
                    return InvitationResult.ok(deleted=True)

                # Redeemed (or deleted) between our read and the delete
                association = self.repo.get_by_id(self.db, association_id)
                if association is None:
                    return InvitationResult.ok(deleted=True)
                if association.invitee_id is None:
                    raise InvalidStatusTransition("This invite code can no longer be revoked")

            return self._deactivate(association_id)

        return self._run("revoke_code", op)

    def remove_member(self, caller: Optional[CallerSession], association_id) -> InvitationResult:
        """Deactivate a member. Same effect as revoking a used code."""
        caller = self._require_caller(caller)

        def op():
            association = self._get_association(association_id, f"{self.kind.label.capitalize()} not found")
            self._require_owner(caller, association.company_id)

            if association.invitee_id is None:
                raise InvalidStatusTransition("This invite code has not been used yet; revoke it instead")

            return self._deactivate(association_id)

        return self._run("remove_member", op)

    def _deactivate(self, association_id) -> InvitationResult:
        if not self.repo.set_status(self.db, association_id, INACTIVE, from_statuses=(ACTIVE, SUSPENDED)):
            current = self._get_association(association_id, f"{self.kind.label.capitalize()} not found")
            if current.status != INACTIVE:
                raise InvalidStatusTransition(f"Cannot deactivate a {current.status} association")
            return InvitationResult.ok(association=current)

        logger.info(f"Deactivated {self.kind.name} association {association_id}")
        return InvitationResult.ok(association=self.repo.get_by_id(self.db, association_id))

    def update_status(self, caller: Optional[CallerSession], association_id, status: str) -> InvitationResult:
        """
        Manually set a member's status (active, inactive or suspended).

        Unused code rows cannot change status, and a member cannot be
        activated twice for the same company. Moving a member back to
        active restamps `joined_at`.
        """
        caller = self._require_caller(caller)

        def op():
            if status not in MANAGEABLE_STATUSES:
                raise InvalidStatusTransition(f"Unsupported status: {status}")

            association = self._get_association(association_id, f"{self.kind.label.capitalize()} not found")
            self._require_owner(caller, association.company_id)

            if association.invitee_id is None:
                raise InvalidStatusTransition("Unused invite codes cannot change status")

            # Re-activation starts a new membership period.
            joined_at = utcnow() if status == ACTIVE and association.status != ACTIVE else None
            try:
                self.repo.set_status(self.db, association_id, status, joined_at=joined_at)
            except IntegrityError:
                self.db.rollback()
                raise AlreadyAssociated(
                    f"This {self.kind.label} already has an active association with this company"
                )

            return InvitationResult.ok(association=self.repo.get_by_id(self.db, association_id))

        return self._run("update_status", op)

    # ------------------------------------------------------------------
    # Invitee operations
    # ------------------------------------------------------------------

    def preview_code(self, code: Optional[str]) -> InvitationResult:
        """
        Show what a code would join, without changing anything.

        Returns:
            InvitationResult with `preview` (company, expiry, kind attributes)
        """

        def op():
            normalized = self._normalized_code(code)

            association = self.repo.find_pending_by_code(self.db, normalized)
            if association is None:
                if self.repo.find_redeemed_by_code(self.db, normalized) is not None:
                    raise CodeAlreadyUsed()
                raise InvalidCode()

            if is_past(association.expires_at):
                raise CodeExpired()

            # Unreachable through the pending/unbound filter unless the read was stale
            if association.invitee_id is not None:
                raise CodeAlreadyUsed()

            company = CompanyRepository.get_by_id(self.db, association.company_id)
            preview = InvitePreview(
                company_id=association.company_id,
                company_name=company.name if company else None,
                expires_at=ensure_aware(association.expires_at),
                **self._preview_attributes(association),
            )
            return InvitationResult.ok(preview=preview)

        return self._run("preview_code", op)

    def redeem_code(self, caller: Optional[CallerSession], code: Optional[str]) -> InvitationResult:
        """
        Join a company with an invite code.

        Concurrent redemptions of one code are resolved by a conditional
        update: exactly one caller binds the row. A loser that turns out to be
        the same caller gets an idempotent success, anyone else gets
        CodeAlreadyUsed. A caller with a dormant association to the company
        is reactivated instead of getting a second row.

        Raises:
            NotAuthenticated: If there is no caller session
        """
        caller = self._require_caller(caller)

        def op():
            normalized = self._normalized_code(code)

            invite = self.repo.find_pending_by_code(self.db, normalized)
            if invite is None:
                self._raise_for_spent_code(caller, normalized)

            if is_past(invite.expires_at):
                raise CodeExpired()

            if invite.invitee_id is not None:
                raise CodeAlreadyUsed()

            # Rows may be deleted by a concurrent request once we commit
            invite_id = invite.id
            company_id = invite.company_id

            existing = self.repo.list_for_pair(self.db, company_id, caller.user_id)
            if any(row.status == ACTIVE for row in existing):
                raise AlreadyAssociated()

            dormant = next((row for row in existing if row.status in DORMANT_STATUSES), None)
            if dormant is not None:
                result = self._reactivate(caller, invite_id, dormant.id, company_id, normalized)
                if result is not None:
                    return result

            return self._claim(caller, invite_id, company_id, normalized)

        result = self._run("redeem_code", op)
        self._record_redemption("success" if result.success else result.error_code)
        return result

    def _raise_for_spent_code(self, caller: CallerSession, code: str) -> None:
        """No unused row carries `code`: tell a spent code apart from an unknown one."""
        redeemed = self.repo.find_redeemed_by_code(self.db, code)
        if redeemed is None:
            raise InvalidCode()
        if redeemed.invitee_id == caller.user_id and redeemed.status == ACTIVE:
            raise AlreadyAssociated()
        raise CodeAlreadyUsed()

    def _reactivate(self, caller: CallerSession, invite_id, dormant_id, company_id, code: str) -> Optional[InvitationResult]:
        """
        Flip the caller's dormant row back to active and drop the code row.

        Both writes are conditional and commit together: if the code row was
        claimed or revoked after our read, the reactivation is rolled back.

        Returns None when the dormant row vanished concurrently, so the
        caller falls back to claiming the code itself.
        """
        try:
            matched = self.repo.reactivate(self.db, dormant_id, utcnow(), code, commit=False)
            if matched and not self.repo.delete_unused(self.db, invite_id, commit=False):
                self.db.rollback()
                return self._lost_code_race(caller, invite_id)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise AlreadyAssociated()

        if matched:
            self._backfill_profile(caller.user_id, company_id)
            logger.info(f"Reactivated {self.kind.name} {caller.user_id} in company {company_id}")
            return InvitationResult.ok(association=self.repo.get_by_id(self.db, dormant_id))

        current = self.repo.get_by_id(self.db, dormant_id)
        if current is not None and current.status == ACTIVE:
            # Another request by the same caller reactivated it first
            return InvitationResult.ok(association=current)

        return None

    def _lost_code_race(self, caller: CallerSession, invite_id) -> InvitationResult:
        """The code row changed under us: same-caller success or a definitive failure."""
        current = self.repo.get_by_id(self.db, invite_id)
        if current is None:
            raise InvalidCode()
        if current.invitee_id == caller.user_id and current.status == ACTIVE:
            logger.info(f"Concurrent redemption of {invite_id} by {caller.user_id} already succeeded")
            return InvitationResult.ok(association=current)
        raise CodeAlreadyUsed()

    def _claim(self, caller: CallerSession, invite_id, company_id, code: str) -> InvitationResult:
        try:
            matched = self.repo.claim_code(self.db, invite_id, caller.user_id, utcnow(), code)
        except IntegrityError:
            # One-active-per-(company, invitee) index: joined via another code meanwhile
            self.db.rollback()
            raise AlreadyAssociated()

        if not matched:
            return self._lost_code_race(caller, invite_id)

        self._backfill_profile(caller.user_id, company_id)
        logger.info(f"{self.kind.label.capitalize()} {caller.user_id} joined company {company_id}")
        return InvitationResult.ok(association=self.repo.get_by_id(self.db, invite_id))

    # ------------------------------------------------------------------
    # Read-only projections
    # ------------------------------------------------------------------

    def list_active(self, company_id) -> List[Any]:
        """Active members of a company."""
        return self.repo.list_active(self.db, company_id)

    def list_unused_codes(self, company_id) -> List[Any]:
        """Unused, unexpired invite codes of a company."""
        now = utcnow()
        return [
            row for row in self.repo.list_pending_codes(self.db, company_id)
            if not is_past(row.expires_at, now)
        ]

    def list_for_invitee(self, invitee_id: str) -> List[Any]:
        """Every association of one invitee, any status."""
        return self.repo.list_for_invitee(self.db, invitee_id)

    def list_companies_for_invitee(self, invitee_id: str) -> List[Company]:
        """Companies the invitee is currently active in."""
        rows = self.repo.list_for_invitee(self.db, invitee_id, status=ACTIVE)
        return CompanyRepository.list_by_ids(self.db, {row.company_id for row in rows})

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired_codes(self, grace_days: int = 0) -> int:
        """
        Delete unused codes that expired more than `grace_days` ago.

        Read sites already hide expired codes; this only reclaims storage.
        """
        cutoff = utcnow() - timedelta(days=grace_days)
        purged = self.repo.purge_expired(self.db, cutoff)
        expired_invite_codes_purged_total.labels(kind=self.kind.name).inc(purged)
        return purged


class DriverInvitationService(InvitationService):
    kind = DRIVER


class DispatcherInvitationService(InvitationService):
    """Dispatcher variant: every association carries a fee percentage."""

    kind = DISPATCHER

    def generate_code(
        self,
        caller: Optional[CallerSession],
        company_id,
        expires_in_days: Optional[int] = DEFAULT_EXPIRY_DAYS,
        fee_percentage=DEFAULT_FEE_PERCENTAGE,
    ) -> InvitationResult:
        return super().generate_code(
            caller, company_id, expires_in_days, fee_percentage=fee_percentage
        )

    def _prepare_attributes(self, attributes: Dict[str, Any]) -> Dict[str, Any]:
        unexpected = set(attributes) - {"fee_percentage"}
        if unexpected:
            raise TypeError(f"Unexpected dispatcher attributes: {sorted(unexpected)}")
        return {"fee_percentage": _validated_fee(attributes.get("fee_percentage", DEFAULT_FEE_PERCENTAGE))}

    def _preview_attributes(self, association) -> Dict[str, Any]:
        return {"fee_percentage": float(association.fee_percentage)}

    def update_fee(self, caller: Optional[CallerSession], association_id, fee_percentage) -> InvitationResult:
        """Change a dispatcher's fee in place; status is untouched."""
        caller = self._require_caller(caller)

        def op():
            fee = _validated_fee(fee_percentage)
            association = self._get_association(association_id, "Dispatcher not found")
            self._require_owner(caller, association.company_id)

            self.repo.update_fields(self.db, association_id, fee_percentage=fee)
            logger.info(f"Updated fee for dispatcher association {association_id} to {fee}")
            return InvitationResult.ok(association=self.repo.get_by_id(self.db, association_id))

        return self._run("update_fee", op)


def _validated_fee(value) -> Decimal:
    if value is None or isinstance(value, bool):
        raise InvalidFeePercentage()
    try:
        fee = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidFeePercentage()
    if not fee.is_finite() or fee < 0 or fee > 100:
        raise InvalidFeePercentage()
    return fee.quantize(Decimal("0.01"))


SERVICES = {
    DISPATCHER.name: DispatcherInvitationService,
    DRIVER.name: DriverInvitationService,
}


def get_invitation_service(db: Session, kind: str) -> InvitationService:
    """Service instance for `kind` ('dispatcher' or 'driver')."""
    try:
        return SERVICES[kind](db)
    except KeyError:
        raise ValueError(f"Unknown invitee kind: {kind}")
