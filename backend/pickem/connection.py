"""Awaitable wrapper around a single SQLite connection.

SQLite access through the DBAPI driver is blocking, so every statement is
handed to one dedicated worker thread and the caller awaits the resulting
future. Because there is exactly one worker, statements issued on a
``Database`` are serialized in submission order.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from dataclasses import dataclass
import functools
from pathlib import Path
import sqlite3
from typing import Any, AsyncIterator, Callable, Mapping, Sequence, TypeVar

from sqlalchemy import Connection, Engine, create_engine, event
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

T = TypeVar("T")

Params = Sequence[Any] | Mapping[str, Any] | None


class DatabaseError(Exception):
    """A statement or lifecycle call failed in the database driver.

    ``cause`` holds the driver exception (for example
    ``sqlite3.IntegrityError``) and ``sql`` the statement that failed.
    """

    def __init__(self, message: str, *, sql: str | None = None, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.sql = sql
        self.cause = cause


@dataclass(frozen=True)
class RunResult:
    changes: int
    last_id: int | None


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, _connection_record) -> None:
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def sqlite_url(path: Path | str) -> str:
    return f"sqlite:///{path}"


def _driver_error(exc: BaseException) -> BaseException:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return exc.orig
    return exc


def _bind(params: Params) -> Any:
    if not params:
        return None
    if isinstance(params, Mapping):
        return dict(params)
    return tuple(params)


def split_script(sql: str) -> list[str]:
    """Split a multi-statement script into complete SQLite statements.

    Semicolons inside string literals, comments and trigger bodies do not end
    a statement; ``sqlite3.complete_statement`` decides where each one stops.
    """
    statements: list[str] = []
    buffer = ""
    for piece in sql.split(";"):
        buffer += piece
        if sqlite3.complete_statement(buffer + ";"):
            if buffer.strip():
                statements.append(buffer)
            buffer = ""
        else:
            buffer += ";"
    if buffer.strip(" \t\r\n;"):
        statements.append(buffer)
    return statements


class Database:
    def __init__(self, engine: Engine, path: Path) -> None:
        self._engine = engine
        self._path = path
        self._connection = engine.connect().execution_options(isolation_level="AUTOCOMMIT")
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pickem-db")
        self._closed = False
        self._transaction_lock = asyncio.Lock()
        self._transaction_owner: asyncio.Task | None = None

    @property
    def raw(self) -> Connection:
        return self._connection

    @property
    def file(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self._closed

    async def _submit(self, sql: str, fn: Callable[..., T], *args: Any) -> T:
        if self._closed:
            raise DatabaseError("Database connection is closed", sql=sql)

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, functools.partial(fn, *args))
        except (SQLAlchemyError, sqlite3.Error) as exc:
            cause = _driver_error(exc)
            raise DatabaseError(str(cause), sql=sql, cause=cause) from exc

    async def run(self, sql: str, params: Params = None) -> RunResult:
        def _run() -> RunResult:
            result = self._connection.exec_driver_sql(sql, _bind(params))
            rowcount = result.rowcount
            return RunResult(changes=max(rowcount or 0, 0), last_id=result.lastrowid)

        return await self._submit(sql, _run)

    async def get(self, sql: str, params: Params = None) -> dict[str, Any] | None:
        def _get() -> dict[str, Any] | None:
            result = self._connection.exec_driver_sql(sql, _bind(params))
            if not result.returns_rows:
                return None
            row = result.mappings().first()
            return dict(row) if row is not None else None

        return await self._submit(sql, _get)

    async def all(self, sql: str, params: Params = None) -> list[dict[str, Any]]:
        def _all() -> list[dict[str, Any]]:
            result = self._connection.exec_driver_sql(sql, _bind(params))
            if not result.returns_rows:
                return []
            return [dict(row) for row in result.mappings().all()]

        return await self._submit(sql, _all)

    async def exec(self, sql: str) -> None:
        def _exec() -> None:
            driver = self._connection.connection.driver_connection
            if not driver.in_transaction:
                driver.executescript(sql)
                return
            # executescript() would COMMIT the open transaction first.
            for statement in split_script(sql):
                self._connection.exec_driver_sql(statement)

        await self._submit(sql, _exec)

    async def run_sync(self, fn: Callable[..., T], *args: Any) -> T:
        """Run ``fn(raw_connection, *args)`` on the database worker thread."""
        label = getattr(fn, "__qualname__", repr(fn))
        return await self._submit(label, fn, self._connection, *args)

    def _rollback_if_open(self) -> None:
        driver = self._connection.connection.driver_connection
        if driver.in_transaction:
            driver.execute("ROLLBACK")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["Database"]:
        """Run the enclosed statements between ``BEGIN`` and ``COMMIT``.

        The block is rolled back when it raises or its task is cancelled.
        ``transaction()`` callers take turns behind a lock, but plain
        ``run``/``get``/``all``/``exec`` calls made by other coroutines while a
        block is open are not held back: they reach the same connection and
        become part of that transaction. Nesting on one task raises
        ``DatabaseError``.
        """
        task = asyncio.current_task()
        if task is not None and task is self._transaction_owner:
            raise DatabaseError("A transaction is already open on this task", sql="BEGIN")

        async with self._transaction_lock:
            self._transaction_owner = task
            try:
                await self.run("BEGIN")
                yield self
                await asyncio.shield(self.run("COMMIT"))
            finally:
                self._transaction_owner = None
                if not self._closed:
                    await asyncio.shield(self._submit("ROLLBACK", self._rollback_if_open))

    async def close(self) -> None:
        if self._closed:
            raise DatabaseError("Database connection is already closed", sql="close")

        def _close() -> None:
            self._connection.close()
            self._engine.dispose()

        try:
            await self._submit("close", _close)
        finally:
            self._closed = True
            self._executor.shutdown(wait=False)


def open_database(path: Path) -> Database:
    engine = create_engine(
        sqlite_url(path),
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    try:
        return Database(engine, path)
    except SQLAlchemyError as exc:
        engine.dispose()
        cause = _driver_error(exc)
        raise DatabaseError(str(cause), sql="open", cause=cause) from exc
