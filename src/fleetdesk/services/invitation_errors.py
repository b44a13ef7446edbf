"""
Error taxonomy for the invitation lifecycle.

Service operations report these as `InvitationResult.error_code` instead of
raising; only NotAuthenticated escapes, since a missing session is an
upstream programming error rather than a user mistake.
"""


class NotAuthenticated(Exception):
    """No caller session was supplied to an operation that needs one."""

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class InvitationError(Exception):
    """Base class for expected, user-facing invitation failures."""

    code = "invitation_error"
    default_message = "Invitation operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCode(InvitationError):
    code = "invalid_code"
    default_message = "Invalid invite code"


class CodeExpired(InvitationError):
    code = "code_expired"
    default_message = "This invite code has expired"


class CodeAlreadyUsed(InvitationError):
    code = "code_already_used"
    default_message = "This invite code has already been used"


class AlreadyAssociated(InvitationError):
    code = "already_associated"
    default_message = "You are already associated with this company"


class Unauthorized(InvitationError):
    code = "unauthorized"
    default_message = "Only the company owner can manage this association"


class AssociationNotFound(InvitationError):
    code = "not_found"
    default_message = "Association not found"


class InvalidFeePercentage(InvitationError):
    code = "invalid_fee"
    default_message = "Fee percentage must be between 0 and 100"


class InvalidStatusTransition(InvitationError):
    code = "invalid_status"
    default_message = "Status change not allowed"


class PersistenceError(InvitationError):
    """Store-level failure; wraps the underlying exception."""

    code = "persistence_error"
    default_message = "Database operation failed"

    def __init__(self, message: str | None = None, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause
