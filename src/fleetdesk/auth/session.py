"""
Caller session as supplied by the identity provider.

The invitation core never authenticates anyone itself; it only reads the
ambient session handed to it by the HTTP layer (or a test).
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CallerSession:
    user_id: str
    role: Optional[str] = None
    email: Optional[str] = None
