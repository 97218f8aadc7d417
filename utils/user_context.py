"""Propagate clinic and user identity through the call stack using contextvars."""

from contextvars import ContextVar
from uuid import UUID
from contextlib import contextmanager

_current_clinic_id: ContextVar[UUID | None] = ContextVar("current_clinic_id", default=None)
_current_user_id: ContextVar[UUID | None] = ContextVar("current_user_id", default=None)
_current_user_role: ContextVar[str | None] = ContextVar("current_user_role", default=None)
# (ip_address, user_agent) of the request being served
_request_origin: ContextVar[tuple[str | None, str | None]] = ContextVar(
    "request_origin", default=(None, None)
)


def get_current_clinic_id() -> UUID:
    """
    Get current clinic (tenant) ID from context.

    Raises RuntimeError if no clinic context is set.
    Clinic-scoped code running outside a request is a bug.
    """
    clinic_id = _current_clinic_id.get()
    if clinic_id is None:
        raise RuntimeError(
            "No clinic context set. This usually means you're calling "
            "clinic-scoped code outside of an authenticated request."
        )
    return clinic_id


def get_current_user_id() -> UUID:
    """
    Get current user ID from context.

    Raises RuntimeError if no user context is set.
    """
    user_id = _current_user_id.get()
    if user_id is None:
        raise RuntimeError(
            "No user context set. This usually means you're calling "
            "user-scoped code outside of an authenticated request."
        )
    return user_id


def get_current_user_role() -> str | None:
    """Role of the current user (ADMIN, DOCTOR, NURSE, RECEPTIONIST), if known."""
    return _current_user_role.get()


def get_request_origin() -> tuple[str | None, str | None]:
    """Client IP address and user agent of the current request, if any."""
    return _request_origin.get()


def set_request_origin(ip_address: str | None, user_agent: str | None) -> None:
    _request_origin.set((ip_address, user_agent))


def set_request_context(clinic_id: UUID, user_id: UUID, role: str | None = None) -> None:
    """
    Set clinic, user and role in context.

    Called by auth middleware after resolving the session.
    """
    _current_clinic_id.set(clinic_id)
    _current_user_id.set(user_id)
    _current_user_role.set(role)


def clear_request_context() -> None:
    """
    Clear clinic, user and role context.

    Must be called in a finally block to prevent context leakage.
    """
    _current_clinic_id.set(None)
    _current_user_id.set(None)
    _current_user_role.set(None)
    _request_origin.set((None, None))


@contextmanager
def clinic_context(clinic_id: UUID, user_id: UUID, role: str | None = None):
    """
    Context manager for temporarily acting inside a clinic as a user.

    Useful for:
    - Tests
    - Background jobs that iterate over clinics
    - Admin operations on behalf of a user

    Example:
        with clinic_context(clinic_id, user_id, "DOCTOR"):
            patients = patient_service.list()
    """
    previous = (_current_clinic_id.get(), _current_user_id.get(), _current_user_role.get())
    set_request_context(clinic_id, user_id, role)
    try:
        yield
    finally:
        _current_clinic_id.set(previous[0])
        _current_user_id.set(previous[1])
        _current_user_role.set(previous[2])
