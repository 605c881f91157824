"""Async Data Access Layer for the GENERATION table.

Provides GenerationDAL with the CRUD operations used by the history routes,
built on `utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

import json
import time
from typing import List, Optional, Sequence

from models.generation_record import GenerationRecord
from utils.database_init import AsyncDatabaseInitializer


class GenerationDAL:
    """Data access layer for GENERATION records.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = (
        "id",
        "session_id",
        "mesh_url",
        "total_time",
        "step_times",
        "view_labels",
        "thumbnail",
        "created_at",
    )
    _COLUMN_LIST, _INSERT_COLUMNS = ", ".join(_COLUMNS), ", ".join(_COLUMNS[1:])

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_generation(self, record: GenerationRecord) -> int:
        """Insert a new GENERATION row and return the new id."""
        created_at = record.created_at or int(time.time())

        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"INSERT INTO GENERATION ({self._INSERT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    record.session_id,
                    record.mesh_url,
                    record.total_time,
                    json.dumps(record.step_times or {}),
                    json.dumps(record.view_labels or []),
                    record.thumbnail,
                    created_at,
                ),
            )
            await conn.commit()
            return cur.lastrowid

    async def get_generation_by_id(self, generation_id: int) -> Optional[GenerationRecord]:
        """Return the GenerationRecord for `generation_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM GENERATION WHERE id = ?",
                (generation_id,),
            )
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    async def list_generations(self, limit: int = 100, offset: int = 0) -> List[GenerationRecord]:
        """List GENERATION rows, newest first."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM GENERATION ORDER BY id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    async def delete_generation(self, generation_id: int) -> bool:
        """Delete a GENERATION row by id. Returns True if a row was deleted."""
        async with self._db.connection() as conn:
            await conn.execute("DELETE FROM GENERATION WHERE id = ?", (generation_id,))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> GenerationRecord:
        """Convert a DB row tuple into a GenerationRecord."""
        return GenerationRecord(
            id=row[0],
            session_id=row[1],
            mesh_url=row[2],
            total_time=row[3],
            step_times=json.loads(row[4]) if row[4] else {},
            view_labels=json.loads(row[5]) if row[5] else [],
            thumbnail=row[6],
            created_at=row[7],
        )
