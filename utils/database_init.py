import asyncio
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

GENERATION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS GENERATION (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    mesh_url TEXT NOT NULL,
    total_time REAL,
    step_times TEXT,
    view_labels TEXT,
    thumbnail BLOB,
    created_at INTEGER NOT NULL
)
"""


class AsyncDatabaseInitializer:
    """
    Manage the async SQLite history database.

    - The database file lives at ``<directory>/app.db`` where ``directory`` is
      the constructor argument or, when omitted, the DATABASE_DIR environment
      variable. A RuntimeError is raised if neither is usable.
    - The first `ensure_database()` call on an instance deletes any existing
      file and creates the GENERATION table; later calls are no-ops, so
      `connection()` can call it unconditionally.
    """

    def __init__(self, directory: Optional[Path | str] = None) -> None:
        env_dir = str(directory) if directory is not None else os.getenv("DATABASE_DIR")

        if env_dir is None or not env_dir.strip():
            raise RuntimeError(
                "DATABASE_DIR environment variable must be set to a writable "
                "directory path where the SQLite database file will be stored."
            )

        db_dir = Path(env_dir).expanduser()

        if db_dir.exists() and not db_dir.is_dir():
            raise RuntimeError(
                f"DATABASE_DIR={env_dir!r} points to a file, not a directory "
                f"({db_dir}). Please set DATABASE_DIR to a directory path."
            )

        try:
            db_dir.mkdir(parents=True, exist_ok=True)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to create or access database directory at {db_dir}"
            ) from exc

        self.db_dir = db_dir
        self.db_path = self.db_dir / "app.db"
        self._initialized = False

    async def ensure_database(self) -> None:
        """
        Ensure a fresh SQLite database with the GENERATION table exists.

        Subsequent calls on the same instance are no-ops.
        """
        if self._initialized:
            return

        # Start clean on every app startup.
        if self.db_path.exists():
            try:
                self.db_path.unlink()
            except Exception as exc:
                raise RuntimeError(
                    f"Failed to delete existing database at {self.db_path}"
                ) from exc

        max_attempts = 3
        for attempt in range(1, max_attempts + 1):
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute(GENERATION_TABLE_SQL)
                    await db.commit()
                break
            except FileNotFoundError:
                # Transient missing-file errors happen on some platforms; retry a few times.
                if attempt >= max_attempts:
                    raise
                await asyncio.sleep(0.1 * attempt)

        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding an `aiosqlite.Connection`.

        The database is created/reset on the first use via `ensure_database()`.
        """
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()
