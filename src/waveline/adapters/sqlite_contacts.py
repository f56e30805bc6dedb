"""SQLite contact store adapter.

Implements the core ContactStorePort using a simple SQLite database.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any, Optional

from waveline.core.jids import normalize_jid

CONTACT_FIELDS = ("name", "notify", "verified_name")


class SQLiteContactStore:
    """Thin SQLite wrapper that satisfies the ContactStorePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create the contacts table if it does not exist."""

        with self._connect() as conn:
            # One row per normalized jid. Name columns are nullable because
            # the directory often only knows some of them.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS contacts (
                    jid TEXT PRIMARY KEY,
                    name TEXT,
                    notify TEXT,
                    verified_name TEXT,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )

    def get_contact(self, jid: str) -> Optional[dict[str, Any]]:
        """Return the stored contact for a jid, if any."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT name, notify, verified_name FROM contacts WHERE jid = ?",
                (normalize_jid(jid),),
            ).fetchone()
        if row is None:
            return None
        return {field: row[field] for field in CONTACT_FIELDS if row[field]}

    def upsert_contact(self, jid: str, fields: dict[str, Any]) -> None:
        """Insert or merge a contact; missing fields keep their stored value."""

        values = {field: fields.get(field) or None for field in CONTACT_FIELDS}
        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO contacts (jid, name, notify, verified_name, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(jid) DO UPDATE SET
                    name = COALESCE(excluded.name, contacts.name),
                    notify = COALESCE(excluded.notify, contacts.notify),
                    verified_name = COALESCE(excluded.verified_name, contacts.verified_name),
                    updated_at = excluded.updated_at
                """,
                (
                    normalize_jid(jid),
                    values["name"],
                    values["notify"],
                    values["verified_name"],
                    now.isoformat(),
                ),
            )

    def list_contacts(self) -> dict[str, dict[str, Any]]:
        """Return every stored contact keyed by jid."""

        with self._connect() as conn:
            rows = conn.execute("SELECT jid, name, notify, verified_name FROM contacts").fetchall()
        return {
            row["jid"]: {field: row[field] for field in CONTACT_FIELDS if row[field]}
            for row in rows
        }
