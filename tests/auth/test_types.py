"""Tests for auth/types.py - Pydantic models for the request identity."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError

from auth.types import Role, Session


def session_data(**overrides):
    data = {
        "token": "abc123",
        "user_id": uuid4(),
        "clinic_id": uuid4(),
        "role": "DOCTOR",
        "expires_at": datetime.now(timezone.utc),
    }
    data.update(overrides)
    return data


class TestSessionValidation:
    """Tests that Session rejects invalid data."""

    def test_role_coerced_from_database_string(self):
        assert Session(**session_data()).role == Role.DOCTOR

    def test_rejects_unknown_role(self):
        with pytest.raises(ValidationError):
            Session(**session_data(role="JANITOR"))

    def test_rejects_missing_clinic(self):
        data = session_data()
        del data["clinic_id"]

        with pytest.raises(ValidationError):
            Session(**data)
