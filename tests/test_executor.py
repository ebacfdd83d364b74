"""Tests for transactional statement execution."""

from __future__ import annotations

import asyncio

import pytest
from fakes import USERS_COLUMNS, FakeConnection, FakePoolFactory

from pgportal.db.executor import ExecutionWrapper
from pgportal.db.router import ConnectionRouter
from pgportal.db.targets import RoutingContext, TargetIdentity
from pgportal.errors import EmptyStatement, NotFoundError, PermissionDenied, SqlExecutionError
from pgportal.policy.permissions import Grant

TARGET = TargetIdentity.parse("postgres://u:p@localhost/app")


def _setup(
    conn: FakeConnection | None = None,
) -> tuple[ExecutionWrapper, FakePoolFactory]:
    factory = FakePoolFactory(conn)
    return ExecutionWrapper(ConnectionRouter(pool_factory=factory)), factory


def _context(permissions: str = "read") -> RoutingContext:
    return RoutingContext(TARGET, Grant.parse(permissions))


@pytest.mark.asyncio
async def test_read_grant_runs_in_read_only_transaction() -> None:
    executor, factory = _setup(FakeConnection(rows=[{"id": 1}, {"id": 2}]))

    rows = await executor.execute(_context("read"), "SELECT id FROM users")

    assert rows == [{"id": 1}, {"id": 2}]
    assert factory.conn.events == ["begin readonly=True", "commit"]
    pool = factory.pools[0]
    assert pool.acquired == pool.released == 1


@pytest.mark.asyncio
async def test_wider_grant_runs_in_read_write_transaction() -> None:
    executor, factory = _setup()

    await executor.execute(_context("read,dml"), "INSERT INTO users (email) VALUES ('a@b.c')")

    assert factory.conn.events == ["begin readonly=False", "commit"]
    assert factory.conn.statements == [("INSERT INTO users (email) VALUES ('a@b.c')", ())]


@pytest.mark.asyncio
async def test_select_under_wider_grant_is_also_read_write() -> None:
    executor, factory = _setup()

    await executor.execute(_context("read,ddl"), "SELECT 1")

    assert factory.conn.events[0] == "begin readonly=False"


@pytest.mark.asyncio
async def test_denied_statement_never_touches_the_database() -> None:
    executor, factory = _setup()

    with pytest.raises(PermissionDenied, match="DDL operations not permitted"):
        await executor.execute(_context("read"), "DROP TABLE users")

    assert factory.created == []
    assert factory.conn.events == []


@pytest.mark.asyncio
async def test_empty_statement_never_touches_the_database() -> None:
    executor, factory = _setup()

    with pytest.raises(EmptyStatement):
        await executor.execute(_context("read,ddl,dml"), "  /* */ ")

    assert factory.created == []


@pytest.mark.asyncio
async def test_statement_failure_rolls_back_and_releases() -> None:
    conn = FakeConnection()
    conn.fail_fetch = RuntimeError('relation "nope" does not exist')
    executor, factory = _setup(conn)

    with pytest.raises(SqlExecutionError, match='relation "nope" does not exist'):
        await executor.execute(_context(), "SELECT * FROM nope")

    assert conn.events == ["begin readonly=True", "rollback"]
    pool = factory.pools[0]
    assert pool.acquired == pool.released == 1


@pytest.mark.asyncio
async def test_commit_failure_rolls_back() -> None:
    conn = FakeConnection()
    conn.fail_commit = RuntimeError("could not serialize access")
    executor, factory = _setup(conn)

    with pytest.raises(SqlExecutionError, match="could not serialize access"):
        await executor.execute(_context("dml,read"), "UPDATE users SET email = NULL")

    assert conn.events == ["begin readonly=False", "commit", "rollback"]
    assert factory.pools[0].released == 1


@pytest.mark.asyncio
async def test_rollback_failure_does_not_mask_original_error() -> None:
    conn = FakeConnection()
    conn.fail_fetch = RuntimeError("syntax error at or near")
    conn.fail_rollback = RuntimeError("connection lost")
    executor, factory = _setup(conn)

    with pytest.raises(SqlExecutionError, match="syntax error"):
        await executor.execute(_context(), "SELEC 1")

    assert factory.pools[0].released == 1


@pytest.mark.asyncio
async def test_begin_failure_is_reported_and_releases() -> None:
    conn = FakeConnection()
    conn.fail_start = RuntimeError("cannot begin")
    executor, factory = _setup(conn)

    with pytest.raises(SqlExecutionError, match="cannot begin"):
        await executor.execute(_context(), "SELECT 1")

    assert factory.pools[0].released == 1


@pytest.mark.asyncio
async def test_cancellation_rolls_back_and_propagates() -> None:
    conn = FakeConnection()
    conn.fail_fetch = asyncio.CancelledError()
    executor, factory = _setup(conn)

    with pytest.raises(asyncio.CancelledError):
        await executor.execute(_context(), "SELECT pg_sleep(60)")

    assert conn.events == ["begin readonly=True", "rollback"]
    assert factory.pools[0].released == 1


@pytest.mark.asyncio
async def test_describe_single_table() -> None:
    conn = FakeConnection(tables={"users": USERS_COLUMNS})
    executor, _ = _setup(conn)

    info = await executor.describe_schema(_context("read,ddl,dml"), "users")

    assert info == {"table": "users", "columns": USERS_COLUMNS}
    # Introspection is read-only whatever the grant.
    assert conn.events == ["begin readonly=True", "commit"]
    sql, args = conn.statements[0]
    assert "ORDER BY ordinal_position" in sql
    assert args == ("users", "public")


@pytest.mark.asyncio
async def test_describe_unknown_table() -> None:
    conn = FakeConnection(tables={"users": USERS_COLUMNS})
    executor, _ = _setup(conn)

    with pytest.raises(NotFoundError, match="Table 'orders' not found in public schema"):
        await executor.describe_schema(_context(), "orders")

    assert conn.events == ["begin readonly=True", "rollback"]


@pytest.mark.asyncio
async def test_describe_all_tables() -> None:
    conn = FakeConnection(tables={"users": USERS_COLUMNS, "orders": []})
    executor, _ = _setup(conn)

    info = await executor.describe_schema(_context())

    assert info == {"tables": {"orders": {"columns": []}, "users": {"columns": USERS_COLUMNS}}}


@pytest.mark.asyncio
async def test_describe_under_dml_only_grant_is_allowed() -> None:
    conn = FakeConnection(tables={"users": USERS_COLUMNS})
    executor, _ = _setup(conn)

    info = await executor.describe_schema(_context("dml"), "users")

    assert info["table"] == "users"


@pytest.mark.asyncio
async def test_custom_schema_name() -> None:
    conn = FakeConnection(tables={"users": USERS_COLUMNS})
    factory = FakePoolFactory(conn)
    executor = ExecutionWrapper(ConnectionRouter(pool_factory=factory), schema_name="sales")

    await executor.list_tables(_context())

    assert conn.statements[0][1] == ("sales",)


@pytest.mark.asyncio
async def test_table_columns_for_resources() -> None:
    conn = FakeConnection(tables={"users": USERS_COLUMNS})
    executor, _ = _setup(conn)

    columns = await executor.table_columns(_context(), "users")

    assert columns == [
        {"column_name": "id", "data_type": "integer"},
        {"column_name": "email", "data_type": "text"},
    ]
