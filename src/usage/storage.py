"""
Usage accounting storage layer.

Provides access to user counters, usage limit settings and the activity
history in Postgres, with an in-memory fallback for local development and
tests when no DATABASE_URL is configured.

Counter increments are single statements so they are atomic at the storage
layer. The limit check that precedes them is a separate read and is not
part of the same transaction.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from src.config import get_settings
from src.db import execute as db_execute, fetch as db_fetch, fetchrow as db_fetchrow, fetchval as db_fetchval
from src.types.usage import (
    ActivityHistoryEntry,
    ActivityType,
    CounterField,
    UsageLimitSettings,
    UserType,
    UserUsage,
    utcnow,
)

logger = logging.getLogger(__name__)


class BaseUsageStorage(ABC):
    """Abstract base class for usage accounting storage implementations."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserUsage]:
        """Get the usage fields of a user, or None if the user does not exist."""

    @abstractmethod
    async def get_limits(self, user_type: UserType) -> Optional[UsageLimitSettings]:
        """Get the limit settings row for a user type."""

    @abstractmethod
    async def list_limits(self) -> List[UsageLimitSettings]:
        """Get all limit settings rows ordered by user type."""

    @abstractmethod
    async def upsert_limits(self, limits: UsageLimitSettings) -> UsageLimitSettings:
        """Create or replace the limit settings row for ``limits.user_type``."""

    @abstractmethod
    async def create_limits_if_missing(self, limits: UsageLimitSettings) -> bool:
        """Insert a limit settings row unless one exists. Returns True if inserted."""

    @abstractmethod
    async def increment_counter(self, user_id: str, field: CounterField) -> bool:
        """Add one to a counter. Returns False if the user does not exist."""

    @abstractmethod
    async def open_new_window(self, user_id: str, opened_at: datetime) -> None:
        """
        Zero activity_count and move monthly_reset_date to ``opened_at``.

        Generation counters are left alone; only the tracker and the
        scheduled sweep move them.
        """

    @abstractmethod
    async def count_activity_since(self, user_id: str, since: datetime) -> int:
        """Count history rows created at or after ``since``."""

    @abstractmethod
    async def add_activity(self, entry: ActivityHistoryEntry) -> str:
        """Append a history row and return its ID."""

    @abstractmethod
    async def mark_activity_deleted(
        self,
        user_id: str,
        activity_type: ActivityType,
        company_name: str,
        created_from: datetime,
        created_to: datetime,
    ) -> int:
        """Soft delete matching live history rows. Returns the number of rows marked."""

    @abstractmethod
    async def list_activity(
        self,
        user_id: str,
        search: str = "",
        activity_type: Optional[ActivityType] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[ActivityHistoryEntry], int]:
        """Get a page of history rows (newest first) and the total match count."""

    @abstractmethod
    async def reset_due_users(self, now: datetime, next_reset: datetime) -> int:
        """Zero counters of every user whose window ended by ``now``. Returns the user count."""


class InMemoryUsageStorage(BaseUsageStorage):
    """In-memory storage for local development and testing."""

    def __init__(self) -> None:
        self._users: Dict[str, UserUsage] = {}
        self._limits: Dict[UserType, UsageLimitSettings] = {}
        self._activity: List[ActivityHistoryEntry] = []
        logger.info("Initialized in-memory usage storage")

    def add_user(self, user: UserUsage) -> UserUsage:
        """Register a user row. Users are owned by the auth flow, not by this service."""
        self._users[user.id] = user.model_copy()
        return self._users[user.id]

    def set_limits(self, limits: UsageLimitSettings) -> UsageLimitSettings:
        self._limits[limits.user_type] = limits.model_copy()
        return self._limits[limits.user_type]

    async def get_user(self, user_id: str) -> Optional[UserUsage]:
        user = self._users.get(user_id)
        return user.model_copy() if user else None

    async def get_limits(self, user_type: UserType) -> Optional[UsageLimitSettings]:
        limits = self._limits.get(user_type)
        return limits.model_copy() if limits else None

    async def list_limits(self) -> List[UsageLimitSettings]:
        return [self._limits[key].model_copy() for key in sorted(self._limits, key=lambda t: t.value)]

    async def upsert_limits(self, limits: UsageLimitSettings) -> UsageLimitSettings:
        stored = limits.model_copy(update={"updated_at": utcnow()})
        self._limits[limits.user_type] = stored
        return stored.model_copy()

    async def create_limits_if_missing(self, limits: UsageLimitSettings) -> bool:
        if limits.user_type in self._limits:
            return False
        await self.upsert_limits(limits)
        return True

    async def increment_counter(self, user_id: str, field: CounterField) -> bool:
        user = self._users.get(user_id)
        if user is None:
            return False
        setattr(user, field.value, getattr(user, field.value) + 1)
        return True

    async def open_new_window(self, user_id: str, opened_at: datetime) -> None:
        user = self._users.get(user_id)
        if user is None:
            return
        user.activity_count = 0
        user.monthly_reset_date = opened_at

    async def count_activity_since(self, user_id: str, since: datetime) -> int:
        return sum(
            1 for entry in self._activity
            if entry.user_id == user_id and entry.created_at >= since
        )

    async def add_activity(self, entry: ActivityHistoryEntry) -> str:
        stored = entry.model_copy(update={"id": entry.id or str(uuid.uuid4())})
        self._activity.append(stored)
        return stored.id

    async def mark_activity_deleted(
        self,
        user_id: str,
        activity_type: ActivityType,
        company_name: str,
        created_from: datetime,
        created_to: datetime,
    ) -> int:
        marked = 0
        for entry in self._activity:
            if (
                entry.user_id == user_id
                and entry.activity_type == activity_type
                and entry.company_name == company_name
                and created_from <= entry.created_at <= created_to
                and not entry.is_deleted
            ):
                entry.is_deleted = True
                marked += 1
        return marked

    async def list_activity(
        self,
        user_id: str,
        search: str = "",
        activity_type: Optional[ActivityType] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[ActivityHistoryEntry], int]:
        needle = search.lower()

        def matches(entry: ActivityHistoryEntry) -> bool:
            if entry.user_id != user_id:
                return False
            if activity_type is not None and entry.activity_type != activity_type:
                return False
            if not needle:
                return True
            fields = (entry.company_name, entry.position_title, entry.recipient)
            return any(needle in value.lower() for value in fields if value)

        rows = sorted(
            (entry for entry in self._activity if matches(entry)),
            key=lambda entry: entry.created_at,
            reverse=True,
        )
        page = [entry.model_copy() for entry in rows[offset:offset + limit]]
        return page, len(rows)

    async def reset_due_users(self, now: datetime, next_reset: datetime) -> int:
        due = [user for user in self._users.values() if user.monthly_reset_date <= now]
        for user in due:
            user.generation_count = 0
            user.followup_generation_count = 0
            user.activity_count = 0
            user.monthly_reset_date = next_reset
        return len(due)


_USER_COLUMNS = """
    id, user_type, is_admin, generation_count, followup_generation_count,
    activity_count, monthly_reset_date
"""

_LIMIT_COLUMNS = """
    user_type, max_activities, max_generations, max_followup_generations,
    include_followups, updated_at
"""

_ACTIVITY_COLUMNS = """
    id, user_id, activity_type, company_name, position_title, recipient,
    llm_model, is_saved, is_followup, is_deleted, created_at
"""


def _affected_rows(status: Optional[str]) -> int:
    """Parse the row count out of an asyncpg status string such as 'UPDATE 3'."""
    if not status:
        return 0
    try:
        return int(status.rsplit(" ", 1)[-1])
    except ValueError:
        return 0


class PostgresUsageStorage(BaseUsageStorage):
    """Postgres-backed storage using the shared asyncpg pool."""

    def _user_from_row(self, row) -> UserUsage:
        return UserUsage(
            id=str(row["id"]),
            user_type=UserType(row["user_type"]),
            is_admin=bool(row["is_admin"]),
            generation_count=int(row["generation_count"] or 0),
            followup_generation_count=int(row["followup_generation_count"] or 0),
            activity_count=int(row["activity_count"] or 0),
            monthly_reset_date=row["monthly_reset_date"],
        )

    def _limits_from_row(self, row) -> UsageLimitSettings:
        return UsageLimitSettings(
            user_type=UserType(row["user_type"]),
            max_activities=int(row["max_activities"] or 0),
            max_generations=int(row["max_generations"] or 0),
            max_followup_generations=int(row["max_followup_generations"] or 0),
            include_followups=bool(row["include_followups"]),
            updated_at=row["updated_at"],
        )

    def _activity_from_row(self, row) -> ActivityHistoryEntry:
        return ActivityHistoryEntry(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            activity_type=ActivityType(row["activity_type"]),
            company_name=row["company_name"],
            position_title=row["position_title"],
            recipient=row["recipient"],
            llm_model=row["llm_model"],
            is_saved=bool(row["is_saved"]),
            is_followup=bool(row["is_followup"]),
            is_deleted=bool(row["is_deleted"]),
            created_at=row["created_at"],
        )

    async def get_user(self, user_id: str) -> Optional[UserUsage]:
        row = await db_fetchrow(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1",
            user_id,
        )
        return self._user_from_row(row) if row else None

    async def get_limits(self, user_type: UserType) -> Optional[UsageLimitSettings]:
        row = await db_fetchrow(
            f"SELECT {_LIMIT_COLUMNS} FROM usage_limit_settings WHERE user_type = $1",
            user_type.value,
        )
        return self._limits_from_row(row) if row else None

    async def list_limits(self) -> List[UsageLimitSettings]:
        rows = await db_fetch(
            f"SELECT {_LIMIT_COLUMNS} FROM usage_limit_settings ORDER BY user_type ASC"
        )
        return [self._limits_from_row(row) for row in rows or []]

    async def upsert_limits(self, limits: UsageLimitSettings) -> UsageLimitSettings:
        row = await db_fetchrow(
            f"""
            INSERT INTO usage_limit_settings (
                user_type, max_activities, max_generations, max_followup_generations,
                include_followups, created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, NOW(), NOW())
            ON CONFLICT (user_type) DO UPDATE SET
                max_activities = EXCLUDED.max_activities,
                max_generations = EXCLUDED.max_generations,
                max_followup_generations = EXCLUDED.max_followup_generations,
                include_followups = EXCLUDED.include_followups,
                updated_at = NOW()
            RETURNING {_LIMIT_COLUMNS}
            """,
            limits.user_type.value,
            limits.max_activities,
            limits.max_generations,
            limits.max_followup_generations,
            limits.include_followups,
        )
        return self._limits_from_row(row) if row else limits

    async def create_limits_if_missing(self, limits: UsageLimitSettings) -> bool:
        inserted = await db_fetchval(
            """
            INSERT INTO usage_limit_settings (
                user_type, max_activities, max_generations, max_followup_generations,
                include_followups, created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, NOW(), NOW())
            ON CONFLICT (user_type) DO NOTHING
            RETURNING user_type
            """,
            limits.user_type.value,
            limits.max_activities,
            limits.max_generations,
            limits.max_followup_generations,
            limits.include_followups,
        )
        return inserted is not None

    async def increment_counter(self, user_id: str, field: CounterField) -> bool:
        # Column name comes from the CounterField enum, never from input.
        column = CounterField(field).value
        status = await db_execute(
            f"UPDATE users SET {column} = {column} + 1 WHERE id = $1",
            user_id,
        )
        return _affected_rows(status) > 0

    async def open_new_window(self, user_id: str, opened_at: datetime) -> None:
        await db_execute(
            """
            UPDATE users
            SET activity_count = 0,
                monthly_reset_date = $2
            WHERE id = $1
            """,
            user_id,
            opened_at,
        )

    async def count_activity_since(self, user_id: str, since: datetime) -> int:
        count = await db_fetchval(
            """
            SELECT COUNT(*)::int
            FROM activity_history
            WHERE user_id = $1
              AND created_at >= $2
            """,
            user_id,
            since,
        )
        return int(count or 0)

    async def add_activity(self, entry: ActivityHistoryEntry) -> str:
        activity_id = entry.id or str(uuid.uuid4())
        await db_execute(
            """
            INSERT INTO activity_history (
                id, user_id, activity_type, company_name, position_title, recipient,
                llm_model, is_saved, is_followup, is_deleted, created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            """,
            activity_id,
            entry.user_id,
            entry.activity_type.value,
            entry.company_name,
            entry.position_title,
            entry.recipient,
            entry.llm_model,
            entry.is_saved,
            entry.is_followup,
            entry.is_deleted,
            entry.created_at,
        )
        return activity_id

    async def mark_activity_deleted(
        self,
        user_id: str,
        activity_type: ActivityType,
        company_name: str,
        created_from: datetime,
        created_to: datetime,
    ) -> int:
        status = await db_execute(
            """
            UPDATE activity_history
            SET is_deleted = TRUE
            WHERE user_id = $1
              AND activity_type = $2
              AND company_name = $3
              AND created_at >= $4
              AND created_at <= $5
              AND is_deleted = FALSE
            """,
            user_id,
            activity_type.value,
            company_name,
            created_from,
            created_to,
        )
        return _affected_rows(status)

    async def list_activity(
        self,
        user_id: str,
        search: str = "",
        activity_type: Optional[ActivityType] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[ActivityHistoryEntry], int]:
        clauses = ["user_id = $1"]
        args: list = [user_id]

        if search:
            args.append(f"%{search}%")
            idx = len(args)
            clauses.append(
                f"(company_name ILIKE ${idx} OR position_title ILIKE ${idx} OR recipient ILIKE ${idx})"
            )
        if activity_type is not None:
            args.append(activity_type.value)
            clauses.append(f"activity_type = ${len(args)}")

        where = " AND ".join(clauses)
        total = await db_fetchval(
            f"SELECT COUNT(*)::int FROM activity_history WHERE {where}",
            *args,
        )
        rows = await db_fetch(
            f"""
            SELECT {_ACTIVITY_COLUMNS}
            FROM activity_history
            WHERE {where}
            ORDER BY created_at DESC
            OFFSET ${len(args) + 1}
            LIMIT ${len(args) + 2}
            """,
            *args,
            offset,
            limit,
        )
        return [self._activity_from_row(row) for row in rows or []], int(total or 0)

    async def reset_due_users(self, now: datetime, next_reset: datetime) -> int:
        rows = await db_fetch(
            """
            UPDATE users
            SET generation_count = 0,
                activity_count = 0,
                followup_generation_count = 0,
                monthly_reset_date = $2
            WHERE monthly_reset_date <= $1
            RETURNING id
            """,
            now,
            next_reset,
        )
        return len(rows or [])


class UsageStorage:
    """
    Factory class for usage storage.

    Selects Postgres when a database URL is configured (or forced through
    USAGE_STORAGE_BACKEND), otherwise in-memory storage.
    """

    _instance: Optional[BaseUsageStorage] = None

    @classmethod
    def get_storage(cls) -> BaseUsageStorage:
        if cls._instance is not None:
            return cls._instance

        settings = get_settings()
        backend = settings.usage.usage_storage_backend

        if backend == "postgres" or (backend == "auto" and settings.is_database_configured):
            cls._instance = PostgresUsageStorage()
            logger.info("Using Postgres storage for usage accounting")
        else:
            logger.info(
                "DATABASE_URL not configured. Using in-memory storage for usage accounting."
            )
            cls._instance = InMemoryUsageStorage()

        return cls._instance

    @classmethod
    def set_storage(cls, storage: BaseUsageStorage) -> None:
        cls._instance = storage

    @classmethod
    def reset(cls) -> None:
        """Reset the storage instance. Useful for testing."""
        cls._instance = None


def get_usage_storage() -> BaseUsageStorage:
    """Get the usage storage instance."""
    return UsageStorage.get_storage()
