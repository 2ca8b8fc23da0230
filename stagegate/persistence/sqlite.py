"""SQLite implementation of the execution store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

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


class SQLiteExecutionStore(ExecutionStore):
    """Persist execution state using SQLite.

    Updates run inside ``BEGIN IMMEDIATE`` so the read-merge-write cycle holds
    the database write lock, and the final ``UPDATE`` is additionally guarded
    by the row version.
    """

    def __init__(self, db_path: str | Path, timeout: float = 5.0):
        self.db_path = str(db_path)
        self.timeout = timeout
        try:
            self._conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                isolation_level=None,
                timeout=timeout,
            )
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Cannot open SQLite database {self.db_path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        with self._lock:
            self._conn.execute(f"PRAGMA busy_timeout={int(self.timeout * 1000)}")
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS executions (
                    execution_id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    input TEXT NOT NULL,
                    context TEXT NOT NULL,
                    suspension TEXT,
                    metrics TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    version INTEGER NOT NULL
                )
                """
            )
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS executions_status_idx ON executions (status)"
            )

    # ------------------------------------------------------------------
    # Helper methods
    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"SQLite database unavailable: {exc}") from exc
            try:
                yield self._conn
            except sqlite3.Error as exc:
                self._conn.execute("ROLLBACK")
                raise StoreUnavailable(f"SQLite database unavailable: {exc}") from exc
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as exc:
                raise StoreUnavailable(f"SQLite database unavailable: {exc}") from exc

    @staticmethod
    def _to_row(execution: Execution) -> tuple[Any, ...]:
        doc = execution.to_document()
        return (
            doc["execution_id"],
            doc["status"],
            json.dumps(doc["input"]),
            json.dumps(doc["context"]),
            json.dumps(doc["suspension"]) if doc["suspension"] is not None else None,
            json.dumps(doc["metrics"]),
            doc["created_at"],
            doc["updated_at"],
            doc["version"],
        )

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Execution:
        return Execution.from_document(
            {
                "execution_id": row["execution_id"],
                "status": row["status"],
                "input": json.loads(row["input"]),
                "context": json.loads(row["context"]),
                "suspension": json.loads(row["suspension"]) if row["suspension"] else None,
                "metrics": json.loads(row["metrics"]),
                "created_at": row["created_at"],
                "updated_at": row["updated_at"],
                "version": row["version"],
            }
        )

    def _insert(self, execution: Execution) -> None:
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO executions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._to_row(execution),
            )

    def _fetch(self, execution_id: str) -> Execution:
        with self._reading() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM executions WHERE execution_id = ?",
                (execution_id,),
            ).fetchone()
        if row is None:
            raise NotFound(execution_id)
        return self._from_row(row)

    def _apply(
        self,
        execution_id: str,
        patch: ExecutionPatch,
        precondition: Optional[Precondition],
    ) -> Execution:
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM executions WHERE execution_id = ?",
                (execution_id,),
            ).fetchone()
            if row is None:
                raise NotFound(execution_id)
            current = self._from_row(row)
            updated = apply_patch(current, patch, precondition)
            values = self._to_row(updated)
            cur = conn.execute(
                """
                UPDATE executions
                SET status = ?, context = ?, suspension = ?, metrics = ?,
                    updated_at = ?, version = ?
                WHERE execution_id = ? AND version = ?
                """,
                (
                    values[1],
                    values[3],
                    values[4],
                    values[5],
                    values[7],
                    values[8],
                    execution_id,
                    current.version,
                ),
            )
            if cur.rowcount != 1:
                raise StatusConflict(
                    execution_id, "version changed during update", actual=current.status
                )
        return updated

    def _select(self, status: Optional[ExecutionStatus]) -> list[Execution]:
        with self._reading() as conn:
            if status is None:
                rows = conn.execute(
                    f"SELECT {_COLUMNS} FROM executions ORDER BY created_at"
                ).fetchall()
            else:
                rows = conn.execute(
                    f"SELECT {_COLUMNS} FROM executions WHERE status = ? ORDER BY created_at",
                    (status.value,),
                ).fetchall()
        return [self._from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Store API
    async def create(self, input: ExecutionInput) -> Execution:
        execution = Execution(input=input)
        execution.metrics.audit_log.append(
            entry(AuditEvent.WORKFLOW_CREATED, "start", {"url": input.url})
        )
        await asyncio.to_thread(self._insert, execution)
        return execution

    async def get(self, execution_id: str) -> Execution:
        return await asyncio.to_thread(self._fetch, execution_id)

    async def update(
        self,
        execution_id: str,
        patch: ExecutionPatch,
        precondition: Optional[Precondition] = None,
    ) -> Execution:
        return await asyncio.to_thread(self._apply, execution_id, patch, precondition)

    async def list_executions(
        self, status: Optional[ExecutionStatus] = None
    ) -> list[Execution]:
        return await asyncio.to_thread(self._select, status)

    async def close(self) -> None:
        with self._lock:
            self._conn.close()
