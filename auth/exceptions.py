"""Typed exceptions for auth failures."""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class InvalidTokenError(AuthError):
    """Session token is unknown or malformed."""


class SessionExpiredError(AuthError):
    """Session has expired and user must re-authenticate."""


class NoClinicMembershipError(AuthError):
    """User is signed in but does not belong to any clinic."""


class UserInactiveError(AuthError):
    """User account is deactivated. Access not permitted."""


class PermissionDeniedError(AuthError):
    """User's role does not allow the requested action."""

    def __init__(self, role: str | None, action: str):
        self.role = role
        self.action = action
        super().__init__(f"Role {role or 'UNKNOWN'} may not {action}")
