"""PostgreSQL implementation of the execution store."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg

from ..audit import entry
from ..contracts import (
    AuditEvent,
    Execution,
    ExecutionInput,
    ExecutionPatch,
    ExecutionStatus,
    Precondition,
)
from ..errors import NotFound, StatusConflict, StoreUnavailable
from .merge import apply_patch
from .store import ExecutionStore

_COLUMNS = (
    "execution_id, status, input, context, suspension, metrics, "
    "created_at, updated_at, version"
)

_CONNECTION_ERRORS = (
    OSError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.InterfaceError,
)

# server-side errors (bad credentials, missing database) also abort a connect
_CONNECT_ERRORS = _CONNECTION_ERRORS + (asyncpg.exceptions.PostgresError,)


class PostgresExecutionStore(ExecutionStore):
    """Persist execution state using PostgreSQL.

    Updates lock the row with ``SELECT ... FOR UPDATE`` inside a transaction
    and write back conditioned on the version that was read.
    """

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        try:
            conn = await asyncpg.connect(self._dsn)
        except _CONNECT_ERRORS as exc:
            raise StoreUnavailable(f"Cannot connect to PostgreSQL: {exc}") from exc
        try:
            await conn.set_type_codec(
                "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
            )
            if not self._initialized:
                await self._ensure_schema(conn)
                self._initialized = True
        except _CONNECT_ERRORS as exc:
            await conn.close()
            raise StoreUnavailable(f"Cannot prepare PostgreSQL connection: {exc}") from exc
        return conn

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        conn = await self._connect()
        try:
            yield conn
        except _CONNECTION_ERRORS as exc:
            raise StoreUnavailable(f"PostgreSQL connection lost: {exc}") from exc
        finally:
            await conn.close()

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                execution_id TEXT PRIMARY KEY,
                status TEXT NOT NULL,
                input JSONB NOT NULL,
                context JSONB NOT NULL,
                suspension JSONB,
                metrics JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL,
                version INTEGER NOT NULL
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS executions_status_idx ON executions (status)"
        )

    @staticmethod
    def _from_record(record: asyncpg.Record) -> Execution:
        return Execution.from_document(
            {
                "execution_id": record["execution_id"],
                "status": record["status"],
                "input": record["input"],
                "context": record["context"],
                "suspension": record["suspension"],
                "metrics": record["metrics"],
                "created_at": record["created_at"],
                "updated_at": record["updated_at"],
                "version": record["version"],
            }
        )

    # ------------------------------------------------------------------
    async def create(self, input: ExecutionInput) -> Execution:
        execution = Execution(input=input)
        execution.metrics.audit_log.append(
            entry(AuditEvent.WORKFLOW_CREATED, "start", {"url": input.url})
        )
        doc = execution.to_document()
        async with self._connection() as conn:
            await conn.execute(
                f"INSERT INTO executions ({_COLUMNS}) "
                "VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)",
                execution.execution_id,
                execution.status.value,
                doc["input"],
                doc["context"],
                doc["suspension"],
                doc["metrics"],
                execution.created_at,
                execution.updated_at,
                execution.version,
            )
        return execution

    async def get(self, execution_id: str) -> Execution:
        async with self._connection() as conn:
            record = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM executions WHERE execution_id = $1",
                execution_id,
            )
        if record is None:
            raise NotFound(execution_id)
        return self._from_record(record)

    async def update(
        self,
        execution_id: str,
        patch: ExecutionPatch,
        precondition: Optional[Precondition] = None,
    ) -> Execution:
        async with self._connection() as conn:
            async with conn.transaction():
                record = await conn.fetchrow(
                    f"SELECT {_COLUMNS} FROM executions WHERE execution_id = $1 FOR UPDATE",
                    execution_id,
                )
                if record is None:
                    raise NotFound(execution_id)
                current = self._from_record(record)
                updated = apply_patch(current, patch, precondition)
                doc = updated.to_document()
                status = await conn.execute(
                    """
                    UPDATE executions
                    SET status = $1, context = $2, suspension = $3, metrics = $4,
                        updated_at = $5, version = $6
                    WHERE execution_id = $7 AND version = $8
                    """,
                    updated.status.value,
                    doc["context"],
                    doc["suspension"],
                    doc["metrics"],
                    updated.updated_at,
                    updated.version,
                    execution_id,
                    current.version,
                )
                if status != "UPDATE 1":
                    raise StatusConflict(
                        execution_id, "version changed during update", actual=current.status
                    )
        return updated

    async def list_executions(
        self, status: Optional[ExecutionStatus] = None
    ) -> list[Execution]:
        async with self._connection() as conn:
            if status is None:
                records = await conn.fetch(
                    f"SELECT {_COLUMNS} FROM executions ORDER BY created_at"
                )
            else:
                records = await conn.fetch(
                    f"SELECT {_COLUMNS} FROM executions WHERE status = $1 ORDER BY created_at",
                    status.value,
                )
        return [self._from_record(r) for r in records]

    async def close(self) -> None:
        pass
