"""SQLite backed record store used by the email dispatcher."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiosqlite

# Columns that may appear in an ORDER BY clause
SORTABLE_COLUMNS = (
    "id",
    "owner_ref",
    "email_from",
    "email_to",
    "subject",
    "text",
    "sent_at",
    "status",
)

_SELECT_COLUMNS = "id, owner_ref, email_from, email_to, subject, text, sent_at, status"


class PersistenceError(RuntimeError):
    """Raised when a record could not be durably written."""


class Persistence:
    """Helper class responsible for reading and writing email records."""

    def __init__(self, db_path: str = "/data/email_dispatch.db"):
        """Persist data to the given database file.

        Every operation opens its own connection, so an in-memory database
        would not survive between calls and is rejected.
        """
        if not db_path or db_path == ":memory:" or str(db_path).startswith("file::memory:"):
            raise ValueError("Persistence requires a database file path")
        self.db_path = db_path

    async def init_db(self) -> None:
        """Create the database schema."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS emails (
                    id TEXT PRIMARY KEY,
                    owner_ref TEXT NOT NULL,
                    email_from TEXT NOT NULL,
                    email_to TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    text TEXT NOT NULL,
                    sent_at TEXT NOT NULL,
                    status TEXT NOT NULL
                )
                """
            )
            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_emails_owner ON emails(owner_ref)"
            )
            await db.commit()

    @staticmethod
    def _decode_rows(rows: Sequence[Tuple[Any, ...]], columns: Sequence[str]) -> List[Dict[str, Any]]:
        return [dict(zip(columns, row)) for row in rows]

    async def insert_email(self, row: Dict[str, Any]) -> None:
        """Write a single record in one transaction.

        Any database failure, a duplicate id included, is raised as
        :class:`PersistenceError`.
        """
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """
                    INSERT INTO emails (id, owner_ref, email_from, email_to, subject, text, sent_at, status)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        row["id"],
                        row["owner_ref"],
                        row["email_from"],
                        row["email_to"],
                        row["subject"],
                        row["text"],
                        row["sent_at"],
                        row["status"],
                    ),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise PersistenceError(f"Failed to store email {row.get('id')}: {exc}") from exc

    async def get_email(self, email_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored row for ``email_id`` or ``None``."""
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM emails WHERE id=?", (email_id,)
            ) as cur:
                row = await cur.fetchone()
                if not row:
                    return None
                cols = [c[0] for c in cur.description]
        return dict(zip(cols, row))

    async def list_emails(self) -> List[Dict[str, Any]]:
        """Return every stored row in insertion order."""
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(f"SELECT {_SELECT_COLUMNS} FROM emails ORDER BY rowid ASC") as cur:
                rows = await cur.fetchall()
                cols = [c[0] for c in cur.description]
        return self._decode_rows(rows, cols)

    async def list_emails_page(
        self,
        *,
        offset: int,
        limit: int,
        sort_column: str = "id",
        descending: bool = True,
    ) -> List[Dict[str, Any]]:
        """Return ``limit`` rows starting at ``offset`` ordered by ``sort_column``."""
        if sort_column not in SORTABLE_COLUMNS:
            raise ValueError(f"Unsupported sort column '{sort_column}'")
        order = "DESC" if descending else "ASC"
        order_by = f"{sort_column} {order}"
        if sort_column != "id":
            order_by += f", id {order}"
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM emails ORDER BY {order_by} LIMIT ? OFFSET ?",
                (limit, offset),
            ) as cur:
                rows = await cur.fetchall()
                cols = [c[0] for c in cur.description]
        return self._decode_rows(rows, cols)

    async def count_emails(self) -> int:
        """Return the number of stored records."""
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT COUNT(*) FROM emails") as cur:
                row = await cur.fetchone()
        return int(row[0]) if row else 0
