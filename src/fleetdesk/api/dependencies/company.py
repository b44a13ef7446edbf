from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from fleetdesk.auth.identity import get_current_user_id
from fleetdesk.db.database import get_db
from fleetdesk.models.company import Company
from fleetdesk.services.company_resolver import CompanyContext, CompanyResolver


def get_company_context(
    user_id: str = Depends(get_current_user_id),
    x_company_id: Optional[UUID] = Header(None),
    db: Session = Depends(get_db),
) -> CompanyContext:
    """
    Resolve the caller's company context.
    The optional X-Company-ID header selects among the caller's companies.
    """
    context = CompanyResolver(db).resolve(user_id, x_company_id)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found"
        )

    return context


def get_owned_company(
    context: CompanyContext = Depends(get_company_context),
) -> Company:
    """The company the caller owns; 403 for non-owners."""
    if not context.is_owner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only company owners can manage invitations"
        )

    return context.owned_company
