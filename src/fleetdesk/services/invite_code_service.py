"""
Invite code generation and formatting.

Codes are 8 characters over A-Z0-9 (36 symbols, ~41 bits of entropy) and are
displayed as XXXX-XXXX. Formatting helpers are pure and never touch the store.
"""
import logging
import os
import re
import secrets
import string
import time
from typing import Literal

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from opentelemetry import trace

from fleetdesk.models.dispatcher_association import DispatcherAssociation
from fleetdesk.models.driver_association import DriverAssociation

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_CODE_LENGTH = int(os.getenv("INVITE_CODE_LENGTH", "8"))
DEFAULT_MAX_RETRIES = int(os.getenv("INVITE_CODE_MAX_RETRIES", "10"))

# Every table that holds invite codes; codes must be unique across all of them.
CODE_BEARING_MODELS = (DispatcherAssociation, DriverAssociation)

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_VALID_CODE = re.compile(r"^[A-Z0-9]+$")

CodeStyle = Literal["dashed", "plain"]


def generate_random_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    """Uniform-random code over uppercase letters and digits."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(CODE_ALPHABET[26 + rem] if rem < 10 else CODE_ALPHABET[rem - 10])
    return "".join(reversed(digits)) or "0"


def _fallback_code(length: int) -> str:
    """Short random prefix + base-36 millisecond timestamp suffix."""
    suffix = _base36(int(time.time() * 1000))[-4:]
    prefix = generate_random_code(max(length - 4, 0))
    return (prefix + suffix)[:length]


def code_exists(db: Session, code: str) -> bool:
    """True if any association table holds `code`, live or already redeemed."""
    for model in CODE_BEARING_MODELS:
        found = (
            db.query(model.id)
            .filter(or_(model.invite_code == code, model.redeemed_code == code))
            .first()
        )
        if found is not None:
            return True
    return False


def generate_unique_invite_code(
    db: Session,
    length: int = DEFAULT_CODE_LENGTH,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> str:
    """
    Generate a code that is not present in any association table.

    Args:
        db: Database session
        length: Code length (default 8)
        max_retries: Collision retries before falling back to a
            timestamp-suffixed code

    Returns:
        Raw (unformatted) invite code
    """
    with tracer.start_as_current_span("invite_code.generate_unique") as span:
        span.set_attribute("code.length", length)

        for attempt in range(max_retries):
            code = generate_random_code(length)
            try:
                taken = code_exists(db, code)
            except SQLAlchemyError as e:
                # The unique index on invite_code still guards the insert.
                logger.error(f"Error checking invite code uniqueness: {e}")
                db.rollback()
                return code

            if not taken:
                span.set_attribute("code.attempts", attempt + 1)
                return code

            logger.debug(f"Invite code collision on attempt {attempt + 1}")

        logger.warning(f"Exhausted {max_retries} invite code retries, using timestamp fallback")
        span.set_attribute("code.fallback", True)
        return _fallback_code(length)


def normalize_invite_code(value: str | None) -> str:
    """Strip everything but letters and digits, then uppercase."""
    if not value:
        return ""
    return _NON_ALNUM.sub("", value).upper()


def format_invite_code(code: str | None, style: CodeStyle = "dashed") -> str:
    """
    Render a code for display.

    'dashed' splits the code at its midpoint (XXXX-XXXX for 8 chars),
    'plain' returns the normalized code.
    """
    if style not in ("dashed", "plain"):
        raise ValueError(f"Unknown invite code style: {style}")

    normalized = normalize_invite_code(code)
    if style == "dashed" and len(normalized) >= 4:
        mid = len(normalized) // 2
        return f"{normalized[:mid]}-{normalized[mid:]}"
    return normalized


def validate_invite_code_format(code: str | None, length: int = DEFAULT_CODE_LENGTH) -> bool:
    """Exact length and alphanumeric-only content, after normalization."""
    normalized = normalize_invite_code(code)
    if len(normalized) != length:
        return False
    return bool(_VALID_CODE.match(normalized))
