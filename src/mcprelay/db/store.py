"""Async SQLite persistence for managed connections and tool call logs."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from mcprelay.db.migrations import apply_migrations
from mcprelay.models.connection import ManagedConnection, ToolCallLogEntry


class SQLiteStore:
    """Data access layer for managed connections and the tool call audit log."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self._db_path)
        conn.row_factory = aiosqlite.Row
        try:
            await apply_migrations(conn)
            yield conn
        finally:
            await conn.close()

    async def upsert_connection(self, connection: ManagedConnection) -> None:
        async with self.connection() as conn:
            await conn.execute(
                """
                INSERT INTO managed_connections(
                    id,
                    user_id,
                    namespace,
                    connection_id,
                    mcp_url,
                    display_name,
                    status,
                    authorization_url,
                    created_at,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, connection_id) DO UPDATE SET
                    namespace=excluded.namespace,
                    mcp_url=excluded.mcp_url,
                    display_name=excluded.display_name,
                    status=excluded.status,
                    authorization_url=excluded.authorization_url,
                    updated_at=excluded.updated_at
                """,
                (
                    connection.id,
                    connection.user_id,
                    connection.namespace,
                    connection.connection_id,
                    connection.mcp_url,
                    connection.display_name,
                    connection.status,
                    connection.authorization_url,
                    connection.created_at.isoformat(),
                    connection.updated_at.isoformat(),
                ),
            )
            await conn.commit()

    async def list_connections(
        self,
        user_id: str,
        *,
        namespace: str | None = None,
        status: str | None = None,
    ) -> list[ManagedConnection]:
        query = "SELECT * FROM managed_connections WHERE user_id = ?"
        params: list[str] = [user_id]

        if namespace:
            query += " AND namespace = ?"
            params.append(namespace)

        if status:
            query += " AND status = ?"
            params.append(status)

        query += " ORDER BY created_at DESC, rowid DESC"

        async with self.connection() as conn:
            cursor = await conn.execute(query, tuple(params))
            rows = await cursor.fetchall()
        return [self._connection_from_row(row) for row in rows]

    async def get_connection(self, user_id: str, connection_id: str) -> ManagedConnection | None:
        async with self.connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM managed_connections WHERE user_id = ? AND connection_id = ?",
                (user_id, connection_id),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._connection_from_row(row)

    async def update_connection_status(
        self,
        user_id: str,
        connection_id: str,
        status: str,
        *,
        authorization_url: str | None = None,
    ) -> bool:
        async with self.connection() as conn:
            cursor = await conn.execute(
                """
                UPDATE managed_connections
                SET status = ?, authorization_url = ?, updated_at = ?
                WHERE user_id = ? AND connection_id = ?
                """,
                (
                    status,
                    authorization_url,
                    datetime.now(UTC).isoformat(),
                    user_id,
                    connection_id,
                ),
            )
            await conn.commit()
            return cursor.rowcount > 0

    async def delete_connection(self, user_id: str, connection_id: str) -> None:
        async with self.connection() as conn:
            await conn.execute(
                "DELETE FROM managed_connections WHERE user_id = ? AND connection_id = ?",
                (user_id, connection_id),
            )
            await conn.commit()

    async def append_tool_call_log(self, entry: ToolCallLogEntry) -> None:
        async with self.connection() as conn:
            await conn.execute(
                """
                INSERT INTO tool_call_logs(
                    id,
                    tool_name,
                    server_url,
                    server_config,
                    arguments,
                    status,
                    result,
                    duration_ms,
                    timestamp
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.tool_name,
                    entry.server_url,
                    json.dumps(entry.server_config) if entry.server_config is not None else None,
                    json.dumps(entry.arguments, default=str),
                    entry.status,
                    entry.result,
                    entry.duration_ms,
                    entry.timestamp.isoformat(),
                ),
            )
            await conn.commit()

    async def list_tool_call_logs(
        self,
        *,
        tool_name: str | None = None,
        status: str | None = None,
    ) -> list[ToolCallLogEntry]:
        query = "SELECT * FROM tool_call_logs WHERE 1 = 1"
        params: list[str] = []

        if tool_name:
            query += " AND tool_name = ?"
            params.append(tool_name)

        if status:
            query += " AND status = ?"
            params.append(status)

        query += " ORDER BY timestamp ASC"

        async with self.connection() as conn:
            cursor = await conn.execute(query, tuple(params))
            rows = await cursor.fetchall()
        return [self._log_from_row(row) for row in rows]

    @staticmethod
    def _connection_from_row(row: aiosqlite.Row) -> ManagedConnection:
        return ManagedConnection(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            namespace=str(row["namespace"]),
            connection_id=str(row["connection_id"]),
            mcp_url=str(row["mcp_url"]),
            display_name=str(row["display_name"]),
            status=str(row["status"]),
            authorization_url=str(row["authorization_url"]) if row["authorization_url"] else None,
            created_at=datetime.fromisoformat(str(row["created_at"])),
            updated_at=datetime.fromisoformat(str(row["updated_at"])),
        )

    @staticmethod
    def _log_from_row(row: aiosqlite.Row) -> ToolCallLogEntry:
        return ToolCallLogEntry(
            id=str(row["id"]),
            tool_name=str(row["tool_name"]),
            server_url=str(row["server_url"]),
            server_config=json.loads(str(row["server_config"])) if row["server_config"] else None,
            arguments=json.loads(str(row["arguments"])),
            status=str(row["status"]),
            result=str(row["result"]),
            duration_ms=int(row["duration_ms"]),
            timestamp=datetime.fromisoformat(str(row["timestamp"])),
        )
