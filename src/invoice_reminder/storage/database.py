"""Database operations using psycopg (PostgreSQL)."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import psycopg
from psycopg.rows import dict_row

from ..errors import DataLayerError
from ..interfaces import AuthTokenStore, InvoiceStore, ScheduleStore, UserStore
from ..models import EmailAuthToken, Invoice, JobSchedule, ScanEmailDefinition, User

logger = logging.getLogger(__name__)

SCHEMA = "invoice_reminder"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DatabaseClient(UserStore, InvoiceStore, ScheduleStore, AuthTokenStore):
    """PostgreSQL database client using psycopg's async connection."""

    def __init__(self, database_url: str):
        """Initialize database client.

        Args:
            database_url: PostgreSQL connection string
        """
        self.database_url = database_url
        self._conn: Optional[psycopg.AsyncConnection] = None
        self._lock = asyncio.Lock()

    async def connect(self) -> psycopg.AsyncConnection:
        """Establish database connection."""
        if self._conn is None or self._conn.closed:
            try:
                self._conn = await psycopg.AsyncConnection.connect(
                    self.database_url,
                    row_factory=dict_row,
                    autocommit=False,  # We'll manage transactions explicitly
                )
            except psycopg.Error as e:
                logger.error(f"Database connection failed: {e}")
                raise DataLayerError(f"Could not connect to database: {e}") from e
            logger.info("Database connection established")
        return self._conn

    async def close(self):
        """Close database connection."""
        if self._conn and not self._conn.closed:
            await self._conn.close()
            logger.info("Database connection closed")

    @asynccontextmanager
    async def transaction(self):
        """Context manager for database transactions.

        Usage:
            async with db.transaction() as conn:
                await conn.execute("INSERT INTO ...")
                # Automatically commits on success, rolls back on exception

        Yields:
            psycopg.AsyncConnection: Database connection object

        Raises:
            DataLayerError: If a database error occurs inside the block
        """
        # Dispatch runs share this connection; one transaction at a time
        async with self._lock:
            conn = await self.connect()
            try:
                yield conn
                await conn.commit()
                logger.debug("Transaction committed")
            except psycopg.Error as e:
                await conn.rollback()
                logger.error(f"Transaction rolled back: {e}")
                raise DataLayerError(f"Database operation failed: {e}") from e
            except BaseException:
                await conn.rollback()
                raise

    async def _fetch_all(self, query: str, params: tuple) -> list[dict]:
        async with self.transaction() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()

    # ========================================================================
    # User Operations
    # ========================================================================

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        """Fetch a user with tokens, scan definitions and schedules.

        Args:
            user_id: User ID to fetch

        Returns:
            Optional[User]: User object if found, None otherwise
        """
        rows = await self._fetch_all(f"""
            SELECT id, name, email, telegram_chat_id, created_at, updated_at
            FROM {SCHEMA}."user"
            WHERE id = %s
        """, (user_id,))

        if not rows:
            return None

        return await self._with_nested_records(rows[0])

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Fetch a user by email address, ignoring case.

        Args:
            email: Email address to look up

        Returns:
            Optional[User]: User object if found, None otherwise
        """
        rows = await self._fetch_all(f"""
            SELECT id, name, email, telegram_chat_id, created_at, updated_at
            FROM {SCHEMA}."user"
            WHERE lower(email) = lower(%s)
        """, (email.strip(),))

        if not rows:
            return None

        return await self._with_nested_records(rows[0])

    async def _with_nested_records(self, row: dict) -> User:
        user_id = row["id"]

        tokens = await self._fetch_all(f"""
            SELECT id, user_id, access_token, refresh_token, nonce_value,
                   token_provider, access_token_expiry, created_at, updated_at
            FROM {SCHEMA}.email_auth_token
            WHERE user_id = %s
        """, (user_id,))

        definitions = await self._fetch_all(f"""
            SELECT id, user_id, invoice_type, beneficiary, description,
                   sender_email_address, attachment_file_name, created_at, updated_at
            FROM {SCHEMA}.scan_email_definition
            WHERE user_id = %s
            ORDER BY created_at
        """, (user_id,))

        schedules = await self.get_job_schedules_by_user_id(user_id)

        return User(
            **row,
            email_auth_tokens=[EmailAuthToken(**token) for token in tokens],
            scan_email_definitions=[ScanEmailDefinition(**definition) for definition in definitions],
            job_schedules=schedules,
        )

    async def update_telegram_chat_id(self, user_id: UUID, chat_id: int) -> None:
        async with self.transaction() as conn:
            await conn.execute(f"""
                UPDATE {SCHEMA}."user"
                SET telegram_chat_id = %s,
                    updated_at = %s
                WHERE id = %s
            """, (chat_id, _now(), user_id))

        logger.info(f"Linked telegram chat {chat_id} to user={user_id}")

    # ========================================================================
    # Email Auth Token Operations
    # ========================================================================

    async def update_email_auth_token(self, token: EmailAuthToken) -> EmailAuthToken:
        now = _now()
        async with self.transaction() as conn:
            await conn.execute(f"""
                UPDATE {SCHEMA}.email_auth_token
                SET access_token = %s,
                    refresh_token = %s,
                    nonce_value = %s,
                    access_token_expiry = %s,
                    updated_at = %s
                WHERE id = %s
            """, (
                token.access_token,
                token.refresh_token,
                token.nonce_value,
                token.access_token_expiry,
                now,
                token.id,
            ))

        logger.debug(f"Updated email_auth_token id={token.id}")
        return token.model_copy(update={"updated_at": now})

    async def delete_email_auth_token(self, token_id: UUID) -> None:
        async with self.transaction() as conn:
            await conn.execute(f"DELETE FROM {SCHEMA}.email_auth_token WHERE id = %s", (token_id,))

        logger.info(f"Deleted email_auth_token id={token_id}")

    # ========================================================================
    # Invoice Operations
    # ========================================================================

    async def bulk_insert(self, invoices: list[Invoice]) -> int:
        """Bulk insert invoices in a single transaction.

        Args:
            invoices: List of Invoice objects to insert

        Returns:
            int: Number of rows actually inserted; payment codes already
                stored are skipped and not counted
        """
        if not invoices:
            return 0

        values = [
            (
                inv.id,
                inv.user_id,
                inv.bank,
                inv.beneficiary,
                inv.amount,
                inv.barcode,
                inv.due_date,
                _now(),  # created_at
                _now(),  # updated_at
            )
            for inv in invoices
        ]

        async with self.transaction() as conn:
            async with conn.cursor() as cur:
                # ON CONFLICT DO NOTHING skips payment codes that were already stored
                await cur.executemany(f"""
                    INSERT INTO {SCHEMA}.invoice (
                        id, user_id, bank, beneficiary, amount, barcode, due_date,
                        created_at, updated_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (barcode) DO NOTHING
                """, values)
                inserted = cur.rowcount

        logger.info(f"Inserted {inserted} of {len(invoices)} invoices (duplicates skipped)")
        return inserted

    # ========================================================================
    # Job Schedule Operations
    # ========================================================================

    async def get_all_job_schedules(self) -> list[JobSchedule]:
        rows = await self._fetch_all(f"""
            SELECT id, user_id, cron_expression, created_at, updated_at
            FROM {SCHEMA}.job_schedule
            ORDER BY created_at
        """, ())
        return [JobSchedule(**row) for row in rows]

    async def get_job_schedule_by_id(self, schedule_id: UUID) -> Optional[JobSchedule]:
        rows = await self._fetch_all(f"""
            SELECT id, user_id, cron_expression, created_at, updated_at
            FROM {SCHEMA}.job_schedule
            WHERE id = %s
        """, (schedule_id,))
        return JobSchedule(**rows[0]) if rows else None

    async def get_job_schedules_by_user_id(self, user_id: UUID) -> list[JobSchedule]:
        rows = await self._fetch_all(f"""
            SELECT id, user_id, cron_expression, created_at, updated_at
            FROM {SCHEMA}.job_schedule
            WHERE user_id = %s
            ORDER BY created_at
        """, (user_id,))
        return [JobSchedule(**row) for row in rows]

    async def add_job_schedule(self, schedule: JobSchedule) -> JobSchedule:
        now = _now()
        async with self.transaction() as conn:
            await conn.execute(f"""
                INSERT INTO {SCHEMA}.job_schedule (id, user_id, cron_expression, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s)
            """, (schedule.id, schedule.user_id, schedule.cron_expression, now, now))

        logger.info(f"Created job_schedule id={schedule.id} for user={schedule.user_id}")
        return schedule.model_copy(update={"created_at": now, "updated_at": now})

    async def update_job_schedule(self, schedule: JobSchedule) -> JobSchedule:
        now = _now()
        async with self.transaction() as conn:
            await conn.execute(f"""
                UPDATE {SCHEMA}.job_schedule
                SET cron_expression = %s,
                    updated_at = %s
                WHERE id = %s
            """, (schedule.cron_expression, now, schedule.id))

        logger.debug(f"Updated job_schedule id={schedule.id}")
        return schedule.model_copy(update={"updated_at": now})

    async def delete_job_schedule(self, schedule_id: UUID) -> None:
        async with self.transaction() as conn:
            await conn.execute(f"DELETE FROM {SCHEMA}.job_schedule WHERE id = %s", (schedule_id,))

        logger.info(f"Deleted job_schedule id={schedule_id}")
