"""Utility modules for cross-cutting concerns."""

from utils.timezone import (
    now_utc,
    to_utc,
    to_local,
    parse_iso,
    local_day_bounds,
    format_local,
)
from utils.user_context import (
    get_current_clinic_id,
    get_current_user_id,
    get_current_user_role,
    get_request_origin,
    set_request_origin,
    set_request_context,
    clear_request_context,
    clinic_context,
)
