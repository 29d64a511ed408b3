"""Domain errors for the tenancy core.

Every business-rule failure is a TenancyError subclass with a stable
machine-readable ``code`` and the HTTP status the API renders it with.
One exception handler in main.py turns them into::

    {"error": "<code>", "message": "<human readable>"}

Services raise these; endpoints never translate them by hand.
"""

from __future__ import annotations


class TenancyError(Exception):
    code = "tenancy_error"
    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NoMembership(TenancyError):
    code = "no_membership"
    status_code = 403
    default_message = (
        "User has no organization memberships. "
        "Please create or join an organization."
    )


class NotAMember(TenancyError):
    code = "not_a_member"
    status_code = 403
    default_message = "You are not a member of this organization"


class SelfModification(TenancyError):
    code = "self_modification"
    status_code = 400
    default_message = "You cannot change your own role"


class InsufficientRole(TenancyError):
    code = "insufficient_role"
    status_code = 403
    default_message = "Insufficient organization permissions"


class LastOwnerViolation(TenancyError):
    code = "last_owner"
    status_code = 409
    default_message = "An organization must keep at least one owner"


class InvalidToken(TenancyError):
    code = "invalid_token"
    status_code = 404
    default_message = "Invalid invitation token"


class InvitationExpired(TenancyError):
    code = "invitation_expired"
    status_code = 410
    default_message = "Invitation has expired"


class InvitationAlreadyUsed(TenancyError):
    code = "invitation_used"
    status_code = 409
    default_message = "Invitation has already been used"


class EmailMismatch(TenancyError):
    code = "email_mismatch"
    status_code = 403
    default_message = "This invitation is for a different email address"


class AlreadyMember(TenancyError):
    code = "already_member"
    status_code = 409
    default_message = "User is already a member of this organization"


class SlugTaken(TenancyError):
    code = "slug_taken"
    status_code = 409
    default_message = "Organization slug is already taken"


class ConfirmationRequired(TenancyError):
    code = "confirmation_required"
    status_code = 400
    default_message = "You must type DELETE to confirm deletion"


class StorageError(TenancyError):
    """Transient storage failure, wrapped with what was being attempted.

    Never retried by the service; the client may retry the request.
    """

    code = "storage_unavailable"
    status_code = 503
    default_message = "Storage temporarily unavailable"
