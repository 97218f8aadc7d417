"""Shared test fixtures for the clinic test suite."""

import pytest
from uuid import UUID
from pathlib import Path
from unittest.mock import Mock

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger
from utils.user_context import clinic_context, clear_request_context


# =============================================================================
# TEST IDENTITY CONSTANTS
# =============================================================================

TEST_CLINIC_ID = UUID("00000000-0000-0000-0000-0000000000c1")
TEST_CLINIC_B_ID = UUID("00000000-0000-0000-0000-0000000000c2")

# Staff of the primary clinic
TEST_ADMIN_ID = UUID("00000000-0000-0000-0000-000000000001")
TEST_DOCTOR_ID = UUID("00000000-0000-0000-0000-000000000002")
TEST_RECEPTIONIST_ID = UUID("00000000-0000-0000-0000-000000000003")


# =============================================================================
# REQUEST CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_request_context():
    """Ensure clean request context before and after each test."""
    clear_request_context()
    yield
    clear_request_context()


@pytest.fixture
def clinic_id() -> UUID:
    return TEST_CLINIC_ID


@pytest.fixture
def as_admin():
    """Act as the clinic administrator."""
    with clinic_context(TEST_CLINIC_ID, TEST_ADMIN_ID, "ADMIN"):
        yield TEST_ADMIN_ID


@pytest.fixture
def as_doctor():
    """Act as a doctor of the primary clinic."""
    with clinic_context(TEST_CLINIC_ID, TEST_DOCTOR_ID, "DOCTOR"):
        yield TEST_DOCTOR_ID


@pytest.fixture
def as_receptionist():
    with clinic_context(TEST_CLINIC_ID, TEST_RECEPTIONIST_ID, "RECEPTIONIST"):
        yield TEST_RECEPTIONIST_ID


# =============================================================================
# DATABASE DOUBLES
# =============================================================================


@pytest.fixture
def postgres():
    """PostgresClient double; tests script its return values per query."""
    return Mock(spec=PostgresClient)


@pytest.fixture
def audit():
    """AuditLogger double for asserting what was recorded."""
    return Mock(spec=AuditLogger)
