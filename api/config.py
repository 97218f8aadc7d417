"""Application configuration."""

from pydantic import BaseModel, Field, field_validator

from utils.timezone import DEFAULT_CLINIC_TIMEZONE, get_zone


class AppConfig(BaseModel):
    """
    Application configuration.

    Secrets (database URLs) are not here; they come from Vault.
    """

    # Paging
    default_page_size: int = Field(
        default=20,
        description="Rows returned when a listing does not ask for a limit",
        ge=1,
        le=100,
    )
    max_page_size: int = Field(
        default=500,
        description="Upper bound on any listing's limit",
        ge=10,
        le=1000,
    )

    # Calendar
    clinic_timezone: str = Field(
        default=DEFAULT_CLINIC_TIMEZONE,
        description="IANA timezone used for calendar days and user-facing times",
    )
    max_calendar_days: int = Field(
        default=62,
        description="Widest calendar window a single request may ask for",
        ge=1,
        le=366,
    )

    # Auth provider integration
    session_cookie_name: str = Field(
        default="session_token",
        description="Cookie the auth provider stores the session token in",
    )

    # Database pool
    db_max_connections: int = Field(default=20, ge=2, le=200)

    @field_validator("clinic_timezone")
    @classmethod
    def known_timezone(cls, value: str) -> str:
        get_zone(value)
        return value
