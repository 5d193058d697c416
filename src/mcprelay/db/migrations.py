"""SQLite migrations for relay storage."""

from __future__ import annotations

import aiosqlite

SCHEMA_VERSION = 1


async def apply_migrations(conn: aiosqlite.Connection) -> None:
    """Create core schema if missing and set schema version."""
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY
        )
        """
    )

    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS managed_connections (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            namespace TEXT NOT NULL,
            connection_id TEXT NOT NULL,
            mcp_url TEXT NOT NULL,
            display_name TEXT NOT NULL,
            status TEXT NOT NULL,
            authorization_url TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE(user_id, connection_id)
        )
        """
    )

    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS tool_call_logs (
            id TEXT PRIMARY KEY,
            tool_name TEXT NOT NULL,
            server_url TEXT NOT NULL,
            server_config TEXT,
            arguments TEXT NOT NULL,
            status TEXT NOT NULL,
            result TEXT NOT NULL,
            duration_ms INTEGER NOT NULL,
            timestamp TEXT NOT NULL
        )
        """
    )

    await conn.execute("DELETE FROM schema_migrations")
    await conn.execute("INSERT INTO schema_migrations(version) VALUES (?)", (SCHEMA_VERSION,))
    await conn.commit()
