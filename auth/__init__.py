"""Authentication context for requests.

Sign-in is handled by the external auth provider; this package reads its
sessions and enforces staff roles.
"""

from auth.exceptions import (
    AuthError,
    InvalidTokenError,
    SessionExpiredError,
    NoClinicMembershipError,
    UserInactiveError,
    PermissionDeniedError,
)
from auth.types import Role, Session
from auth.session import SessionReader
from auth.permissions import require_role
from auth.security_middleware import AuthMiddleware
