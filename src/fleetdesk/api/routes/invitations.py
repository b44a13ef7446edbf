"""
API routes for invite-code membership, one router per invitee kind.

Endpoints (under /dispatcher-invitations and /driver-invitations):
- POST /codes - Generate an invite code (owner)
- GET /codes - List unused, unexpired codes (owner)
- DELETE /codes/{association_id} - Revoke a code
- GET /codes/{code}/preview - Preview a code before joining
- POST /codes/{code}/redeem - Join a company with a code
- GET /members - List active members (owner)
- DELETE /members/{association_id} - Remove a member
- PATCH /members/{association_id}/status - Suspend / reactivate a member
- PATCH /members/{association_id}/fee - Update fee (dispatchers only)
- GET /me - The caller's own associations
- GET /me/companies - Companies the caller is active in
"""
from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from opentelemetry import trace
from pydantic import BaseModel, Field, computed_field
from sqlalchemy.orm import Session
import logging

from fleetdesk.api.dependencies.company import get_owned_company
from fleetdesk.api.routes.companies import CompanyOut
from fleetdesk.auth.identity import get_caller_session
from fleetdesk.auth.session import CallerSession
from fleetdesk.db.database import get_db
from fleetdesk.models.company import Company
from fleetdesk.services.invitation_service import (
    DEFAULT_EXPIRY_DAYS,
    DEFAULT_FEE_PERCENTAGE,
    DISPATCHER,
    DRIVER,
    InvitationResult,
    InviteeKind,
    get_invitation_service,
)
from fleetdesk.services.invite_code_service import format_invite_code

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ERROR_STATUS = {
    "invalid_code": status.HTTP_400_BAD_REQUEST,
    "code_expired": status.HTTP_410_GONE,
    "code_already_used": status.HTTP_409_CONFLICT,
    "already_associated": status.HTTP_409_CONFLICT,
    "unauthorized": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "invalid_fee": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "invalid_status": status.HTTP_400_BAD_REQUEST,
    "persistence_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


# ==================== Request/Response Models ====================

class GenerateCodeRequest(BaseModel):
    """Request to generate an invite code. Omit expiry for a non-expiring code."""
    expires_in_days: Optional[int] = Field(DEFAULT_EXPIRY_DAYS, gt=0, le=365)


class DispatcherGenerateCodeRequest(GenerateCodeRequest):
    fee_percentage: float = Field(float(DEFAULT_FEE_PERCENTAGE), ge=0, le=100)

    class Config:
        json_schema_extra = {
            "example": {
                "expires_in_days": 30,
                "fee_percentage": 12
            }
        }


class UpdateStatusRequest(BaseModel):
    status: Literal["active", "inactive", "suspended"]


class UpdateFeeRequest(BaseModel):
    fee_percentage: float


class AssociationResponse(BaseModel):
    """Response model for a company association."""
    id: UUID
    company_id: UUID
    invitee_id: Optional[str] = None
    status: str
    invite_code: Optional[str] = None
    expires_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None
    invited_by: Optional[str] = None
    created_at: Optional[datetime] = None
    fee_percentage: Optional[float] = None

    class Config:
        from_attributes = True

    @computed_field
    @property
    def display_code(self) -> Optional[str]:
        return format_invite_code(self.invite_code) if self.invite_code else None


class GeneratedCodeResponse(BaseModel):
    code: str
    display_code: str
    association: AssociationResponse


class CodePreviewResponse(BaseModel):
    company_id: UUID
    company_name: Optional[str] = None
    expires_at: Optional[datetime] = None
    fee_percentage: Optional[float] = None


class RevokeResponse(BaseModel):
    deleted: bool
    association: Optional[AssociationResponse] = None


def _raise_for_failure(result: InvitationResult) -> None:
    if result.success:
        return
    raise HTTPException(
        status_code=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST),
        detail=result.error,
    )


# ==================== Router factory ====================

def build_invitation_router(kind: InviteeKind) -> APIRouter:
    """Routes for one invitee kind; the dispatcher router also manages fees."""
    router = APIRouter(prefix=f"/{kind.name}-invitations", tags=[f"{kind.label.capitalize()} invitations"])
    generate_model = DispatcherGenerateCodeRequest if kind is DISPATCHER else GenerateCodeRequest

    def get_service(db: Session = Depends(get_db)):
        return get_invitation_service(db, kind.name)

    @router.post("/codes", response_model=GeneratedCodeResponse, status_code=status.HTTP_201_CREATED)
    def generate_invite_code(
        request: generate_model,
        caller: CallerSession = Depends(get_caller_session),
        company: Company = Depends(get_owned_company),
        service=Depends(get_service),
    ):
        """
        Generate an invite code for the caller's company.

        The raw code is returned once; share it as XXXX-XXXX.
        """
        with tracer.start_as_current_span("api.generate_invite_code") as span:
            span.set_attribute("invitee.kind", kind.name)
            span.set_attribute("company.id", str(company.id))

            attributes = request.model_dump(exclude={"expires_in_days"})
            result = service.generate_code(
                caller, company.id, expires_in_days=request.expires_in_days, **attributes
            )
            _raise_for_failure(result)

        return GeneratedCodeResponse(
            code=result.code,
            display_code=format_invite_code(result.code),
            association=AssociationResponse.model_validate(result.association),
        )

    @router.get("/codes", response_model=List[AssociationResponse])
    def list_unused_codes(
        company: Company = Depends(get_owned_company),
        service=Depends(get_service),
    ):
        """List the company's unused, unexpired invite codes."""
        return service.list_unused_codes(company.id)

    @router.delete("/codes/{association_id}", response_model=RevokeResponse)
    def revoke_invite_code(
        association_id: UUID,
        caller: CallerSession = Depends(get_caller_session),
        service=Depends(get_service),
    ):
        """
        Revoke an invite code.

        Unused codes are deleted; a code that was already redeemed
        deactivates the member instead.
        """
        result = service.revoke_code(caller, association_id)
        _raise_for_failure(result)
        association = result.association
        return RevokeResponse(
            deleted=result.deleted,
            association=AssociationResponse.model_validate(association) if association else None,
        )

    @router.get("/codes/{code}/preview", response_model=CodePreviewResponse)
    def preview_invite_code(code: str, service=Depends(get_service)):
        """Show which company a code joins, without using it."""
        result = service.preview_code(code)
        _raise_for_failure(result)
        preview = result.preview
        return CodePreviewResponse(
            company_id=preview.company_id,
            company_name=preview.company_name,
            expires_at=preview.expires_at,
            fee_percentage=preview.fee_percentage,
        )

    @router.post("/codes/{code}/redeem", response_model=AssociationResponse)
    def redeem_invite_code(
        code: str,
        caller: CallerSession = Depends(get_caller_session),
        service=Depends(get_service),
    ):
        """
        Join a company using an invite code.

        Rejoining a company you were removed from reactivates the old membership.
        """
        with tracer.start_as_current_span("api.redeem_invite_code") as span:
            span.set_attribute("invitee.kind", kind.name)
            span.set_attribute("user.id", caller.user_id)

            result = service.redeem_code(caller, code)
            span.set_attribute("redeem.success", result.success)
            _raise_for_failure(result)

        return result.association

    @router.get("/members", response_model=List[AssociationResponse])
    def list_members(
        company: Company = Depends(get_owned_company),
        service=Depends(get_service),
    ):
        """List active members of the caller's company."""
        return service.list_active(company.id)

    @router.delete("/members/{association_id}", response_model=AssociationResponse)
    def remove_member(
        association_id: UUID,
        caller: CallerSession = Depends(get_caller_session),
        service=Depends(get_service),
    ):
        """Remove a member (sets the association inactive)."""
        result = service.remove_member(caller, association_id)
        _raise_for_failure(result)
        return result.association

    @router.patch("/members/{association_id}/status", response_model=AssociationResponse)
    def update_member_status(
        association_id: UUID,
        request: UpdateStatusRequest,
        caller: CallerSession = Depends(get_caller_session),
        service=Depends(get_service),
    ):
        """Suspend, deactivate or reactivate a member."""
        result = service.update_status(caller, association_id, request.status)
        _raise_for_failure(result)
        return result.association

    if kind is DISPATCHER:
        @router.patch("/members/{association_id}/fee", response_model=AssociationResponse)
        def update_member_fee(
            association_id: UUID,
            request: UpdateFeeRequest,
            caller: CallerSession = Depends(get_caller_session),
            service=Depends(get_service),
        ):
            """Change a dispatcher's fee percentage."""
            result = service.update_fee(caller, association_id, request.fee_percentage)
            _raise_for_failure(result)
            return result.association

    @router.get("/me", response_model=List[AssociationResponse])
    def list_my_associations(
        caller: CallerSession = Depends(get_caller_session),
        service=Depends(get_service),
    ):
        """The caller's own associations, any status."""
        return service.list_for_invitee(caller.user_id)

    @router.get("/me/companies", response_model=List[CompanyOut])
    def list_my_companies(
        caller: CallerSession = Depends(get_caller_session),
        service=Depends(get_service),
    ):
        """Companies the caller is currently active in."""
        return service.list_companies_for_invitee(caller.user_id)

    return router


dispatcher_router = build_invitation_router(DISPATCHER)
driver_router = build_invitation_router(DRIVER)
