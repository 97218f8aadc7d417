"""
Clinic audit trail for record access and changes.

Every mutation, and every read of a clinical or billing record, is logged
here. The audit log is:
- Append-only (entries never modified or deleted)
- Clinic- and user-attributed (who, in which clinic)
- Detailed (old and new values, client IP and user agent)
"""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4
from typing import Any

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.user_context import (
    get_current_clinic_id,
    get_current_user_id,
    get_current_user_role,
    get_request_origin,
)
from utils.timezone import now_utc

_AUDIT_COLUMNS = (
    "id, clinic_id, user_id, entity_type, entity_id, entity_name, "
    "action, changes, ip_address, user_agent, created_at"
)


class AuditAction(Enum):
    """Type of access or change made to an entity."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    for key in set(old.keys()) | set(new.keys()):
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Clinic audit trail.

    Pass Pydantic models through model_dump(mode="json") so UUIDs, Decimals
    and datetimes are JSON-compatible.

    Usage:
        audit = AuditLogger(postgres)

        audit.log_change(
            entity_type="patient",
            entity_id=patient.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)},
            entity_name=patient.full_name,
        )

        audit.log_access("patient", patient.id, patient.full_name)

        history = audit.get_entity_history("patient", patient.id)
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
        entity_name: str | None = None,
        user_id: UUID | None = None
    ) -> None:
        """
        Log an entity change or access.

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - READ: {}
        - UPDATE: {"field": {"old": old_val, "new": new_val}, ...}
        - DELETE: {"deleted": {full entity data at deletion}}
        """
        if user_id is None:
            user_id = get_current_user_id()
        ip_address, user_agent = get_request_origin()

        self.postgres.execute(
            f"""
            INSERT INTO audit_log ({_AUDIT_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                uuid4(),
                get_current_clinic_id(),
                user_id,
                entity_type,
                entity_id,
                entity_name,
                action.value,
                Json(changes),
                ip_address,
                user_agent,
                now_utc()
            )
        )

    def log_access(self, entity_type: str, entity_id: UUID, entity_name: str | None = None) -> None:
        """Record that the current user viewed a record."""
        self.log_change(entity_type, entity_id, AuditAction.READ, {}, entity_name=entity_name)

    def _visible_entries(self, user_id: UUID | None = None) -> tuple[list[str], list[Any]]:
        """
        WHERE conditions limiting entries to what the caller may see.

        Admins see the whole clinic, optionally narrowed to user_id. Everyone
        else sees only their own entries, whatever user_id they ask for.
        """
        conditions = ["clinic_id = %s"]
        params: list[Any] = [get_current_clinic_id()]

        if get_current_user_role() != "ADMIN":
            conditions.append("user_id = %s")
            params.append(get_current_user_id())
        elif user_id is not None:
            conditions.append("user_id = %s")
            params.append(user_id)

        return conditions, params

    def get_entity_history(
        self,
        entity_type: str,
        entity_id: UUID
    ) -> list[dict[str, Any]]:
        """Audit history for an entity that the caller may see, newest first."""
        conditions, params = self._visible_entries()
        conditions += ["entity_type = %s", "entity_id = %s"]
        params += [entity_type, entity_id]
        where = " AND ".join(conditions)

        return self.postgres.execute(
            f"""
            SELECT {_AUDIT_COLUMNS}
            FROM audit_log
            WHERE {where}
            ORDER BY created_at DESC
            """,
            tuple(params)
        )

    def get_user_activity(
        self,
        user_id: UUID | None = None,
        limit: int = 100
    ) -> list[dict[str, Any]]:
        """Recent activity by a user (defaults to current context), newest first."""
        if user_id is None:
            user_id = get_current_user_id()
        conditions, params = self._visible_entries(user_id)
        where = " AND ".join(conditions)

        return self.postgres.execute(
            f"""
            SELECT {_AUDIT_COLUMNS}
            FROM audit_log
            WHERE {where}
            ORDER BY created_at DESC
            LIMIT %s
            """,
            tuple(params) + (limit,)
        )

    def search(
        self,
        action: AuditAction | None = None,
        entity_type: str | None = None,
        entity_id: UUID | None = None,
        user_id: UUID | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 50,
        offset: int = 0
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Filtered clinic audit listing.

        Admins may look at any user's entries (optionally narrowed by user_id);
        everyone else only sees their own.

        Returns:
            (entries newest first, total matching count)
        """
        conditions, params = self._visible_entries(user_id)

        if action is not None:
            conditions.append("action = %s")
            params.append(action.value)
        if entity_type:
            conditions.append("entity_type = %s")
            params.append(entity_type)
        if entity_id is not None:
            conditions.append("entity_id = %s")
            params.append(entity_id)
        if start is not None:
            conditions.append("created_at >= %s")
            params.append(start)
        if end is not None:
            conditions.append("created_at <= %s")
            params.append(end)

        where = " AND ".join(conditions)
        total = self.postgres.execute_scalar(
            f"SELECT COUNT(*) FROM audit_log WHERE {where}",
            tuple(params)
        )
        rows = self.postgres.execute(
            f"""
            SELECT {_AUDIT_COLUMNS}
            FROM audit_log
            WHERE {where}
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params) + (limit, offset)
        )
        return rows, total or 0
