"""PostgreSQL-backed store for username spam filter configuration.

Records protected roles, allowlisted roles and allowlisted users per Discord
server. Every query is scoped by ``discord_server_id``; the tuple
``(object_type, discord_object_id, discord_server_id)`` is unique and
duplicate inserts are treated as already configured.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol

import asyncpg  # type: ignore[import-not-found,import-untyped]

from nameguard.logging import get_logger
from nameguard.spam_filter.models import ConfigObjectType, ConfigRecord, InsertSummary

log = get_logger("nameguard.spam_filter.config_store")

# ---------------------------------------------------------------------------
# SQL schema
# ---------------------------------------------------------------------------
# object_type is not constrained to the canonical values so rows written
# with the legacy HIGH_RANKING_ROLE name remain readable.
_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS spam_filter_config (
    id                   SERIAL       PRIMARY KEY,
    object_type          VARCHAR(32)  NOT NULL,
    discord_object_id    BIGINT       NOT NULL,
    discord_object_name  TEXT         NOT NULL DEFAULT '',
    discord_server_id    BIGINT       NOT NULL,
    discord_server_name  TEXT         NOT NULL DEFAULT '',
    created_at           TIMESTAMPTZ  NOT NULL DEFAULT now(),
    UNIQUE (object_type, discord_object_id, discord_server_id)
);

CREATE INDEX IF NOT EXISTS idx_spam_filter_config_server
    ON spam_filter_config (discord_server_id, object_type);
"""

_INSERT_SQL = """
    INSERT INTO spam_filter_config
        (object_type, discord_object_id, discord_object_name,
         discord_server_id, discord_server_name)
    SELECT $1, $2, $3, $4, $5
     WHERE NOT EXISTS (
        SELECT 1 FROM spam_filter_config
         WHERE object_type = ANY($6::text[])
           AND discord_object_id = $2
           AND discord_server_id = $4
     )
    ON CONFLICT (object_type, discord_object_id, discord_server_id) DO NOTHING
"""

_SELECT_COLUMNS = (
    "object_type, discord_object_id, discord_object_name, discord_server_id, discord_server_name"
)


class ConfigStore(Protocol):
    """Scoped configuration records consumed by the spam filter."""

    async def add_records(self, records: Iterable[ConfigRecord]) -> InsertSummary: ...

    async def remove_record(
        self,
        object_type: ConfigObjectType,
        discord_object_id: int,
        discord_server_id: int,
    ) -> bool: ...

    async def list_by_type_and_server(
        self,
        object_type: ConfigObjectType,
        discord_server_id: int,
    ) -> list[ConfigRecord]: ...

    async def list_by_server(self, discord_server_id: int) -> list[ConfigRecord]: ...

    async def is_allowlisted_user(self, user_id: int, discord_server_id: int) -> bool: ...


class PostgresConfigStore:
    """Spam filter configuration stored in a PostgreSQL table via asyncpg."""

    def __init__(self, dsn: str) -> None:
        """Initialise the store.

        Args:
            dsn: PostgreSQL connection string.
        """
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None  # type: ignore[type-arg]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create the connection pool and ensure the schema exists."""
        try:
            self._pool = await asyncpg.create_pool(dsn=self._dsn)
            log.info("postgres_pool_created", dsn=self._dsn.split("@")[-1])
        except (asyncpg.PostgresError, OSError) as exc:
            log.error("postgres_pool_creation_failed", error=str(exc))
            raise

        await self._ensure_schema()

    async def close(self) -> None:
        """Gracefully close the connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            log.info("postgres_pool_closed")

    # ------------------------------------------------------------------
    # Public API - mutations
    # ------------------------------------------------------------------

    async def add_records(self, records: Iterable[ConfigRecord]) -> InsertSummary:
        """Insert *records*, tolerating per-record failures.

        Each record is inserted independently: a duplicate key or a failed
        insert is logged and does not stop the remaining records.

        Args:
            records: Records to insert.

        Returns:
            How many records were inserted, already present, or failed.
        """
        inserted = duplicates = failed = 0
        for record in records:
            try:
                status = await self._execute(
                    _INSERT_SQL,
                    record.object_type.value,
                    record.discord_object_id,
                    record.discord_object_name,
                    record.discord_server_id,
                    record.discord_server_name,
                    list(record.object_type.persisted_aliases),
                )
            except asyncpg.UniqueViolationError:
                self._log_duplicate(record)
                duplicates += 1
                continue
            except asyncpg.PostgresError as exc:
                log.error(
                    "config_record_insert_failed",
                    object_type=record.object_type.value,
                    discord_object_id=record.discord_object_id,
                    discord_server_id=record.discord_server_id,
                    error=str(exc),
                )
                failed += 1
                continue

            if _affected_rows(status) == 0:
                self._log_duplicate(record)
                duplicates += 1
                continue

            inserted += 1
            log.info(
                "config_record_added",
                object_type=record.object_type.value,
                discord_object_id=record.discord_object_id,
                discord_server_id=record.discord_server_id,
            )
        return InsertSummary(inserted=inserted, duplicates=duplicates, failed=failed)

    async def remove_record(
        self,
        object_type: ConfigObjectType,
        discord_object_id: int,
        discord_server_id: int,
    ) -> bool:
        """Delete a record if it exists.

        Returns:
            ``True`` if a row was deleted, ``False`` if none matched.

        Raises:
            asyncpg.PostgresError: The delete failed.
        """
        try:
            status = await self._execute(
                """
                DELETE FROM spam_filter_config
                 WHERE object_type = ANY($1::text[])
                   AND discord_object_id = $2
                   AND discord_server_id = $3
                """,
                list(object_type.persisted_aliases),
                discord_object_id,
                discord_server_id,
            )
        except asyncpg.PostgresError as exc:
            log.error(
                "config_record_remove_failed",
                object_type=object_type.value,
                discord_object_id=discord_object_id,
                discord_server_id=discord_server_id,
                error=str(exc),
            )
            raise

        removed = _affected_rows(status) > 0
        log.info(
            "config_record_removed" if removed else "config_record_remove_noop",
            object_type=object_type.value,
            discord_object_id=discord_object_id,
            discord_server_id=discord_server_id,
        )
        return removed

    # ------------------------------------------------------------------
    # Public API - queries
    # ------------------------------------------------------------------

    async def list_by_type_and_server(
        self,
        object_type: ConfigObjectType,
        discord_server_id: int,
    ) -> list[ConfigRecord]:
        """Return every record of *object_type* for a server.

        An empty list means the type is not configured for the server.
        Database errors propagate.
        """
        rows = await self._fetch(
            f"""
            SELECT {_SELECT_COLUMNS}
              FROM spam_filter_config
             WHERE object_type = ANY($1::text[])
               AND discord_server_id = $2
             ORDER BY id
            """,  # nosec B608
            list(object_type.persisted_aliases),
            discord_server_id,
        )
        return _dedupe(_row_to_record(row) for row in rows)

    async def list_by_server(self, discord_server_id: int) -> list[ConfigRecord]:
        """Return every record configured for a server."""
        rows = await self._fetch(
            f"""
            SELECT {_SELECT_COLUMNS}
              FROM spam_filter_config
             WHERE discord_server_id = $1
             ORDER BY id
            """,  # nosec B608
            discord_server_id,
        )
        return _dedupe(_row_to_record(row) for row in rows)

    async def is_allowlisted_user(self, user_id: int, discord_server_id: int) -> bool:
        """Return ``True`` if *user_id* is on the server's user allowlist."""
        row = await self._fetchval(
            """
            SELECT 1 FROM spam_filter_config
             WHERE object_type = $1
               AND discord_object_id = $2
               AND discord_server_id = $3
            """,
            ConfigObjectType.ALLOWLIST_USER.value,
            user_id,
            discord_server_id,
        )
        return row is not None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_schema(self) -> None:
        """Create the table and index if absent.

        A concurrent ``CREATE TABLE IF NOT EXISTS`` from another process can
        surface as ``UniqueViolationError``; the schema exists either way.
        """
        try:
            async with self._pool.acquire() as conn:  # type: ignore[union-attr]
                await conn.execute(_SCHEMA_SQL)
            log.info("schema_ensured")
        except asyncpg.UniqueViolationError:
            log.info("schema_ensured", note="concurrent creation resolved")
        except asyncpg.PostgresError as exc:
            log.error("schema_creation_failed", error=str(exc))
            raise

    @staticmethod
    def _log_duplicate(record: ConfigRecord) -> None:
        log.warning(
            "duplicate_config_entry",
            object_type=record.object_type.value,
            discord_object_id=record.discord_object_id,
            discord_server_id=record.discord_server_id,
        )

    # ------------------------------------------------------------------
    # Pool convenience wrappers
    # ------------------------------------------------------------------

    async def _fetchval(self, query: str, *args: Any) -> Any:
        """Execute *query* and return the first column of the first row."""
        async with self._pool.acquire() as conn:  # type: ignore[union-attr]
            return await conn.fetchval(query, *args)

    async def _fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        """Execute *query* and return all result rows."""
        async with self._pool.acquire() as conn:  # type: ignore[union-attr]
            result: list[asyncpg.Record] = await conn.fetch(query, *args)
            return result

    async def _execute(self, query: str, *args: Any) -> str:
        """Execute *query* and return the status string."""
        async with self._pool.acquire() as conn:  # type: ignore[union-attr]
            result: str = await conn.execute(query, *args)
            return result


def _row_to_record(row: Any) -> ConfigRecord:
    return ConfigRecord(
        object_type=ConfigObjectType.parse(row["object_type"]),
        discord_object_id=int(row["discord_object_id"]),
        discord_object_name=row["discord_object_name"] or "",
        discord_server_id=int(row["discord_server_id"]),
        discord_server_name=row["discord_server_name"] or "",
    )


def _dedupe(records: Iterable[ConfigRecord]) -> list[ConfigRecord]:
    """Drop records sharing a key, which legacy aliases can produce."""
    seen: set[tuple[ConfigObjectType, int, int]] = set()
    unique: list[ConfigRecord] = []
    for record in records:
        if record.key in seen:
            continue
        seen.add(record.key)
        unique.append(record)
    return unique


def _affected_rows(status: str) -> int:
    """Parse the row count from an asyncpg status such as ``INSERT 0 1``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0
