from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.orm import Session
import os
import logging

from fleetdesk.auth.session import CallerSession
from fleetdesk.db.database import get_db
from fleetdesk.repositories.company_repository import CompanyRepository

logger = logging.getLogger(__name__)

security = HTTPBearer()


def decode_token(token: str) -> dict:
    """
    Decode the identity provider's JWT.

    Signatures are verified when AUTH_JWT_SECRET is set. Without it the token
    is only decoded, which assumes an upstream gateway already verified it.
    """
    secret = os.getenv("AUTH_JWT_SECRET")
    audience = os.getenv("AUTH_JWT_AUDIENCE")

    if secret:
        return jwt.decode(
            token,
            secret,
            algorithms=[os.getenv("AUTH_JWT_ALGORITHM", "HS256")],
            audience=audience,
            options={"verify_aud": bool(audience)},
        )

    return jwt.get_unverified_claims(token)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> str:
    """
    Verify the bearer token and return the caller's user id (`sub`).
    """
    try:
        payload = decode_token(credentials.credentials)
    except JWTError as e:
        logger.error(f"Token verification failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )

    user_id = payload.get("sub")
    if not user_id:
        logger.warning("Token missing user_id")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: no user_id found"
        )

    logger.debug(f"Authenticated user: {user_id}")
    return user_id


async def get_caller_session(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> CallerSession:
    """
    Caller session for the invitation services.

    Role and email come from the application profile when one exists.
    """
    profile = CompanyRepository.get_profile(db, user_id)
    role: Optional[str] = profile.role if profile else None
    email: Optional[str] = profile.email if profile else None
    return CallerSession(user_id=user_id, role=role, email=email)
