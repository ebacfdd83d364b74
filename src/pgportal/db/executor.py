"""Transactional execution of SQL against a routed target.

Every call acquires one connection for the lifetime of one transaction and
releases it on every exit path. Statements are authorized before any
database contact.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, TypedDict

from pgportal.db.router import ConnectionRouter
from pgportal.db.targets import RoutingContext
from pgportal.errors import NotFoundError, SqlExecutionError
from pgportal.policy.sql_guard import authorize

logger = logging.getLogger(__name__)

_COLUMNS_SQL = """
    SELECT
      column_name,
      data_type,
      is_nullable,
      column_default,
      character_maximum_length,
      numeric_precision,
      numeric_scale
    FROM information_schema.columns
    WHERE table_name = $1 AND table_schema = $2
    ORDER BY ordinal_position
"""

_TABLES_SQL = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = $1
    ORDER BY table_name
"""

_RESOURCE_COLUMNS_SQL = """
    SELECT column_name, data_type
    FROM information_schema.columns
    WHERE table_name = $1 AND table_schema = $2
    ORDER BY ordinal_position
"""


class TableSchema(TypedDict):
    columns: list[dict[str, Any]]


class SchemaInfo(TypedDict, total=False):
    table: str
    columns: list[dict[str, Any]]
    tables: dict[str, TableSchema]


class ExecutionWrapper:
    def __init__(self, router: ConnectionRouter, *, schema_name: str = "public") -> None:
        self._router = router
        self._schema_name = schema_name

    @property
    def schema_name(self) -> str:
        return self._schema_name

    async def execute(self, context: RoutingContext, sql: str) -> list[dict[str, Any]]:
        """Authorize and run one statement, returning its rows.

        A grant of exactly ``{read}`` runs inside a read-only transaction; any
        other grant gets a read-write transaction.

        Raises:
            EmptyStatement: If the statement is empty.
            PermissionDenied: If the grant does not cover the statement.
            SqlExecutionError: If the statement or commit fails.
        """
        category = authorize(sql, context.grant)
        readonly = context.grant.is_read_only
        logger.debug(
            "Executing %s statement on %s (readonly=%s)", category.value, context.target, readonly
        )
        async with self._transaction(context, readonly=readonly) as conn:
            records = await conn.fetch(sql)
        return [dict(record) for record in records]

    async def describe_schema(
        self, context: RoutingContext, table_name: str | None = None
    ) -> SchemaInfo:
        """Describe one table, or every table in the namespace.

        Always read-only, whatever the grant.

        Raises:
            NotFoundError: If ``table_name`` does not exist in the namespace.
            SqlExecutionError: If introspection fails.
        """
        async with self._transaction(context, readonly=True) as conn:
            if table_name:
                columns = await conn.fetch(_COLUMNS_SQL, table_name, self._schema_name)
                if not columns:
                    raise NotFoundError(
                        f"Table '{table_name}' not found in {self._schema_name} schema"
                    )
                return {"table": table_name, "columns": [dict(c) for c in columns]}

            tables: dict[str, TableSchema] = {}
            for row in await conn.fetch(_TABLES_SQL, self._schema_name):
                name = row["table_name"]
                columns = await conn.fetch(_COLUMNS_SQL, name, self._schema_name)
                tables[name] = {"columns": [dict(c) for c in columns]}
            return {"tables": tables}

    async def list_tables(self, context: RoutingContext) -> list[str]:
        async with self._transaction(context, readonly=True) as conn:
            rows = await conn.fetch(_TABLES_SQL, self._schema_name)
        return [row["table_name"] for row in rows]

    async def table_columns(self, context: RoutingContext, table_name: str) -> list[dict[str, Any]]:
        async with self._transaction(context, readonly=True) as conn:
            rows = await conn.fetch(_RESOURCE_COLUMNS_SQL, table_name, self._schema_name)
        return [dict(row) for row in rows]

    @asynccontextmanager
    async def _transaction(self, context: RoutingContext, *, readonly: bool) -> AsyncIterator[Any]:
        """Acquire a connection and wrap the body in begin/commit/rollback.

        ``NotFoundError`` and ``SqlExecutionError`` raised by the body pass through
        unchanged after rollback; other failures surface as ``SqlExecutionError``.
        """
        pool = await self._router.ensure_target(context.target)
        async with pool.acquire() as conn:
            transaction = conn.transaction(readonly=readonly)
            try:
                await transaction.start()
            except Exception as exc:
                raise SqlExecutionError(str(exc)) from exc

            try:
                yield conn
                await transaction.commit()
            except (NotFoundError, SqlExecutionError):
                await self._rollback(transaction, context)
                raise
            except Exception as exc:
                await self._rollback(transaction, context)
                raise SqlExecutionError(str(exc)) from exc
            except BaseException:
                # Cancellation: roll back before the connection goes back to the pool.
                await self._rollback(transaction, context)
                raise

    async def _rollback(self, transaction: Any, context: RoutingContext) -> None:
        try:
            await transaction.rollback()
        except Exception as exc:
            logger.warning("Rollback failed on %s: %s", context.target, exc)
