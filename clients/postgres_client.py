"""
PostgreSQL client with connection pooling and RLS clinic isolation.

Uses psycopg2 with ThreadedConnectionPool. Tenant isolation is enforced via
PostgreSQL Row Level Security: the clinic ID is read from a contextvar and
set as app.current_clinic_id on each connection.

No clinic context = see nothing (RLS blocks all rows).
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

from utils.user_context import _current_clinic_id

logger = logging.getLogger(__name__)

_jsonb_registered = False


class PostgresClient:
    """
    PostgreSQL client with automatic RLS context from contextvar.

    - Clinic context set → sees only that clinic's rows
    - No clinic context → sees nothing

    Usage:
        db = PostgresClient(database_url)

        with clinic_context(clinic_id, user_id):
            patients = db.execute("SELECT * FROM patients")
    """

    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str, minconn: int = 2, maxconn: int = 20):
        self._database_url = database_url
        self._minconn = minconn
        self._maxconn = maxconn
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self._minconn,
                    maxconn=self._maxconn,
                    dsn=self._database_url,
                    connect_timeout=30,
                )

                global _jsonb_registered
                if not _jsonb_registered:
                    psycopg2.extras.register_default_jsonb(globally=True)
                    _jsonb_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created (max %d connections)", self._maxconn)

    @contextmanager
    def get_connection(self):
        """Get connection with RLS clinic context from contextvar."""
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            conn = pool.getconn()
            if conn is None:
                raise RuntimeError("Could not get connection from pool")

            clinic_id = _current_clinic_id.get()

            with conn.cursor() as cur:
                if clinic_id is not None:
                    cur.execute("SET app.current_clinic_id = %s", (str(clinic_id),))
                else:
                    # Policies read '' as NULL, which matches no rows
                    cur.execute("SET app.current_clinic_id = ''")

            yield conn

        finally:
            if conn:
                # Reads leave a transaction open; a failed query leaves it aborted
                if not conn.closed:
                    conn.rollback()
                pool.putconn(conn)

    def _convert_params(self, params: Tuple | Dict | None) -> Tuple | Dict | None:
        """Convert UUID objects to strings."""
        if params is None:
            return None

        def convert(value: Any) -> Any:
            if isinstance(value, UUID):
                return str(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(params)

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                if cur.description:
                    return [dict(row) for row in cur.fetchall()]
                conn.commit()
                return []

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                result = cur.fetchone()
                return result[0] if result else None

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE with RETURNING, return results."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            try:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    cur.execute(query, params)
                    rows = [dict(row) for row in cur.fetchall()]
                conn.commit()
                return rows
            except psycopg2.Error:
                conn.rollback()
                raise

    def execute_many_returning(
        self,
        statements: List[Tuple[str, Tuple | Dict | None]]
    ) -> List[List[Dict[str, Any]]]:
        """
        Run several statements in one transaction.

        Returns the RETURNING rows of each statement (empty list when a
        statement returns nothing). Rolls back everything on failure.
        """
        with self.get_connection() as conn:
            try:
                results = []
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    for query, params in statements:
                        cur.execute(query, self._convert_params(params))
                        if cur.description:
                            results.append([dict(row) for row in cur.fetchall()])
                        else:
                            results.append([])
                conn.commit()
                return results
            except psycopg2.Error:
                conn.rollback()
                raise

    @contextmanager
    def transaction(self):
        """
        One transaction across several statements whose later steps depend
        on earlier reads (e.g. SELECT ... FOR UPDATE, then write).

        Commits when the block exits normally; any exception rolls back.

        Usage:
            with db.transaction() as tx:
                row = tx.execute_single("SELECT ... FOR UPDATE", (id,))
                tx.execute("UPDATE ...", (...))
        """
        with self.get_connection() as conn:
            try:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    yield Transaction(cur, self._convert_params)
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()


class Transaction:
    """Statements on the cursor of an open PostgresClient.transaction()."""

    def __init__(self, cursor, convert_params):
        self._cursor = cursor
        self._convert_params = convert_params

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Run a statement, return its rows (empty list when it returns none)."""
        self._cursor.execute(query, self._convert_params(params))
        if self._cursor.description:
            return [dict(row) for row in self._cursor.fetchall()]
        return []

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        rows = self.execute(query, params)
        return rows[0] if rows else None
