"""Session lookup for requests.

Sign-in, sign-out and token issuance belong to the external auth provider,
which writes to the auth_sessions table. This module only reads it and
resolves which clinic and role the session's user acts as.
"""

import logging

from clients.postgres_client import PostgresClient
from auth.types import Session
from auth.exceptions import (
    InvalidTokenError,
    NoClinicMembershipError,
    SessionExpiredError,
    UserInactiveError,
)
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SessionReader:
    """Validates session tokens against the auth provider's tables.

    auth_sessions and users carry no RLS: they are read before any clinic
    context exists.
    """

    def __init__(self, postgres: PostgresClient):
        self._postgres = postgres

    def validate_session(self, token: str) -> Session:
        """Resolve a session token to the user's clinic identity.

        Raises:
            InvalidTokenError: Unknown token
            SessionExpiredError: Token past its expiry
            UserInactiveError: User deactivated
            NoClinicMembershipError: User not attached to a clinic
        """
        row = self._postgres.execute_single(
            """
            SELECT s.token, s.user_id, s.expires_at, u.clinic_id, u.role, u.is_active
            FROM auth_sessions s
            JOIN users u ON u.id = s.user_id
            WHERE s.token = %s
            """,
            (token,)
        )

        if row is None:
            raise InvalidTokenError("Session not found")

        if now_utc() > row["expires_at"]:
            raise SessionExpiredError("Session expired")

        if not row["is_active"]:
            logger.warning("Inactive user %s presented a valid session", row["user_id"])
            raise UserInactiveError("User is deactivated")

        if row["clinic_id"] is None:
            raise NoClinicMembershipError("User has no clinic")

        return Session(
            token=row["token"],
            user_id=row["user_id"],
            clinic_id=row["clinic_id"],
            role=row["role"],
            expires_at=row["expires_at"],
        )
