"""Security middleware for FastAPI - session validation and clinic context."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from auth.session import SessionReader
from auth.exceptions import (
    InvalidTokenError,
    NoClinicMembershipError,
    SessionExpiredError,
    UserInactiveError,
)
from api.base import error_response, ErrorCodes
from utils.user_context import set_request_context, set_request_origin, clear_request_context


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that validates the session and sets clinic/user context.

    For protected routes:
    1. Extracts the session token from the cookie or a Bearer header
    2. Validates it via SessionReader
    3. Sets clinic, user and role in request.state and the request context
    4. Clears context after the request completes

    Public paths bypass authentication entirely.
    """

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, session_reader: SessionReader, cookie_name: str = "session_token"):
        super().__init__(app)
        self._session_reader = session_reader
        self._cookie_name = cookie_name

    def _is_public_path(self, path: str) -> bool:
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    def _extract_token(self, request: Request) -> str | None:
        token = request.cookies.get(self._cookie_name)
        if token:
            return token
        authorization = request.headers.get("authorization", "")
        if authorization.lower().startswith("bearer "):
            return authorization[7:].strip() or None
        return None

    def _reject(self, status_code: int, code: str, message: str) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content=error_response(code, message).model_dump(mode="json"),
        )

    async def dispatch(self, request: Request, call_next):
        if self._is_public_path(request.url.path):
            return await call_next(request)

        token = self._extract_token(request)
        if not token:
            return self._reject(401, ErrorCodes.NOT_AUTHENTICATED, "Authentication required")

        try:
            session = self._session_reader.validate_session(token)
        except InvalidTokenError:
            return self._reject(401, ErrorCodes.INVALID_TOKEN, "Invalid session")
        except SessionExpiredError:
            return self._reject(401, ErrorCodes.SESSION_EXPIRED, "Session has expired")
        except (UserInactiveError, NoClinicMembershipError) as e:
            return self._reject(403, ErrorCodes.FORBIDDEN, str(e))

        set_request_context(session.clinic_id, session.user_id, session.role.value)
        set_request_origin(_client_ip(request), request.headers.get("user-agent"))
        request.state.user_id = session.user_id
        request.state.clinic_id = session.clinic_id
        request.state.session = session

        try:
            return await call_next(request)
        finally:
            clear_request_context()
