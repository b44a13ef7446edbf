"""
Authentication for FleetDesk.

The identity provider issues the JWTs; this package only reads them.

Usage:
    from fleetdesk.auth import (
        CallerSession,
        get_current_user_id,
        get_caller_session,
    )
"""

from fleetdesk.auth.session import CallerSession
from fleetdesk.auth.identity import (
    decode_token,
    get_current_user_id,
    get_caller_session,
)

__all__ = [
    "CallerSession",
    "decode_token",
    "get_current_user_id",
    "get_caller_session",
]
