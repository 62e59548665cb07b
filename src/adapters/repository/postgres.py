"""
PostgreSQL repository adapter - Implements UserStore protocol.

This module provides the PostgreSQL implementation of the domain's
user store port using psycopg3 (async pool) with raw SQL.

Identity Convergence
--------------------
The users table enforces one row per natural identity:

1. **user_id PRIMARY KEY**: the auth identity id; a retried provisioning
   call that reaches create() again hits the key and reports
   RecordAlreadyExists instead of inserting a second row.

2. **phone_number UNIQUE / email UNIQUE**: a different identity can never
   claim an already-registered phone or email.

3. **INSERT ... ON CONFLICT DO NOTHING RETURNING**: the conflict check and
   the insert are one atomic statement, so concurrent creates resolve to
   exactly one winner without a read-then-write race.
"""

import logging
from pathlib import Path
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from src.domain.exceptions import ExternalServiceError, RecordAlreadyExists
from src.domain.models import UserRecord
from src.domain.ports import AccountStatus

logger = logging.getLogger(__name__)

_COLUMNS = (
    "user_id",
    "phone_number",
    "email",
    "name",
    "surname",
    "date_of_birth",
    "national_id",
    "status",
    "created_at",
)

_UPDATABLE = {"phone_number", "email", "name", "surname", "date_of_birth", "status"}


def _row_to_record(row: dict[str, Any]) -> UserRecord:
    return UserRecord(
        user_id=row["user_id"],
        phone_number=row["phone_number"],
        email=row["email"],
        name=row["name"],
        surname=row["surname"],
        date_of_birth=row["date_of_birth"],
        national_id=row["national_id"],
        status=AccountStatus(row["status"]),
        created_at=row["created_at"],
    )


class PostgresUserStore:
    """
    Implements UserStore protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: AsyncConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 AsyncConnectionPool for database connections
        """
        self._pool = pool

    async def create(self, record: UserRecord) -> UserRecord:
        """
        Atomically insert a user record.

        Raises:
            RecordAlreadyExists: user_id, phone_number or email already present
            ExternalServiceError: Database failure
        """
        query = """
            INSERT INTO users (user_id, phone_number, email, name, surname,
                               date_of_birth, national_id, status, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, NOW())
            ON CONFLICT DO NOTHING
            RETURNING user_id, phone_number, email, name, surname,
                      date_of_birth, national_id, status, created_at
        """
        params = (
            record.user_id,
            record.phone_number,
            record.email,
            record.name,
            record.surname,
            record.date_of_birth,
            record.national_id,
            record.status.value,
        )

        row = await self._fetch_one(query, params, commit=True)
        if row is None:
            raise RecordAlreadyExists(
                "An account with this phone number or email already exists.", 409
            )
        return _row_to_record(row)

    async def get_by_id(self, user_id: str) -> UserRecord | None:
        query = f"SELECT {', '.join(_COLUMNS)} FROM users WHERE user_id = %s"
        row = await self._fetch_one(query, (user_id,))
        return _row_to_record(row) if row else None

    async def get_by_phone_or_email(self, phone_or_email: str) -> UserRecord | None:
        query = f"""
            SELECT {', '.join(_COLUMNS)} FROM users
            WHERE phone_number = %s OR email = %s
            ORDER BY created_at
            LIMIT 1
        """
        row = await self._fetch_one(query, (phone_or_email, phone_or_email))
        return _row_to_record(row) if row else None

    async def update(self, user_id: str, changes: dict[str, Any]) -> UserRecord:
        """
        Update whitelisted columns of a record.

        Raises:
            ExternalServiceError: Unknown column, missing record or database failure
        """
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ExternalServiceError(f"Cannot update {', '.join(sorted(unknown))}", 400)
        if not changes:
            record = await self.get_by_id(user_id)
            if record is None:
                raise ExternalServiceError("User not found", 404)
            return record

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in changes
        )
        query = sql.SQL(
            "UPDATE users SET {assignments}, updated_at = NOW() WHERE user_id = %s "
            "RETURNING {columns}"
        ).format(
            assignments=assignments,
            columns=sql.SQL(", ").join(sql.Identifier(column) for column in _COLUMNS),
        )
        values = [
            value.value if isinstance(value, AccountStatus) else value
            for value in changes.values()
        ]

        row = await self._fetch_one(query, (*values, user_id), commit=True)
        if row is None:
            raise ExternalServiceError("User not found", 404)
        return _row_to_record(row)

    async def _fetch_one(
        self, query: Any, params: tuple, commit: bool = False
    ) -> dict[str, Any] | None:
        try:
            async with self._pool.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cursor:
                    await cursor.execute(query, params)
                    row = await cursor.fetchone()
                if commit:
                    await conn.commit()
                return row
        except psycopg.errors.UniqueViolation as e:
            raise RecordAlreadyExists(
                "An account with this phone number or email already exists.", 409
            ) from e
        except psycopg.Error as e:
            logger.error("User store query failed: %s", e)
            raise ExternalServiceError("User store unavailable") from e


async def run_migrations(pool: AsyncConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 AsyncConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            async with pool.connection() as conn:
                await conn.execute(sql_file.read_text())

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
