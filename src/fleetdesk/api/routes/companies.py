# src/fleetdesk/api/routes/companies.py

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import List, Optional
from uuid import UUID

from fleetdesk.api.dependencies.company import get_company_context
from fleetdesk.services.company_resolver import CompanyContext

router = APIRouter(
    prefix="/companies",
    tags=["Companies"],
)


class CompanyOut(BaseModel):
    id: UUID
    name: str
    owner_id: str

    class Config:
        from_attributes = True


class CompanyContextOut(BaseModel):
    user_id: str
    role: str
    is_owner: bool
    current_company: Optional[CompanyOut] = None
    companies: List[CompanyOut]


@router.get("/current", response_model=CompanyContextOut)
def get_current_company(context: CompanyContext = Depends(get_company_context)):
    """
    Company context for the caller: the current company plus every
    company they can switch to (send X-Company-ID to switch).
    """
    return CompanyContextOut(
        user_id=context.user_id,
        role=context.role,
        is_owner=context.is_owner,
        current_company=CompanyOut.model_validate(context.current_company) if context.current_company else None,
        companies=[CompanyOut.model_validate(c) for c in context.companies],
    )
