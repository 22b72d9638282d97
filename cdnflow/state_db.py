from __future__ import annotations

from pathlib import Path

import aiosqlite

from cdnflow.models import LocalFile


FILE_STATE_COLUMNS = ("path", "hash", "size", "mtime_ns", "ctime_ns", "inode")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS file_state (
    path TEXT PRIMARY KEY,
    hash TEXT NOT NULL,
    size INTEGER NOT NULL,
    mtime_ns INTEGER NOT NULL,
    ctime_ns INTEGER NOT NULL,
    inode INTEGER NOT NULL
);
"""

META_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS deploy_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

LAST_DEPLOY_KEY = "last_deploy"


async def ensure_db(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(db_path) as db:
        cursor = await db.execute("PRAGMA table_info(file_state)")
        columns = tuple(row[1] for row in await cursor.fetchall())
        await cursor.close()
        # The table is only a cache; an older layout is rebuilt from the next scan.
        if columns and columns != FILE_STATE_COLUMNS:
            await db.execute("DROP TABLE file_state")
        await db.execute(SCHEMA_SQL)
        await db.execute(META_SCHEMA_SQL)
        await db.commit()


async def load_records(db_path: Path) -> dict[str, LocalFile]:
    if not db_path.exists():
        return {}
    await ensure_db(db_path)
    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(
            "SELECT path, hash, size, mtime_ns, ctime_ns, inode FROM file_state ORDER BY path"
        )
        rows = await cursor.fetchall()
        await cursor.close()

    return {
        str(row["path"]): LocalFile(
            path=str(row["path"]),
            filename=str(row["path"]),
            hash=str(row["hash"]),
            size=int(row["size"]),
            mtime_ns=int(row["mtime_ns"]),
            ctime_ns=int(row["ctime_ns"]),
            inode=int(row["inode"]),
        )
        for row in rows
    }


async def replace_snapshot(db_path: Path, records: list[LocalFile]) -> None:
    await ensure_db(db_path)
    async with aiosqlite.connect(db_path) as db:
        await db.execute("DELETE FROM file_state")
        if records:
            await db.executemany(
                """
                INSERT INTO file_state (path, hash, size, mtime_ns, ctime_ns, inode)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [(r.filename, r.hash, r.size, r.mtime_ns, r.ctime_ns, r.inode) for r in records],
            )
        await db.commit()


async def get_meta(db_path: Path, key: str) -> str | None:
    if not db_path.exists():
        return None
    await ensure_db(db_path)
    async with aiosqlite.connect(db_path) as db:
        cursor = await db.execute(
            "SELECT value FROM deploy_meta WHERE key = ?",
            (key,),
        )
        row = await cursor.fetchone()
        await cursor.close()
    if row is None:
        return None
    return str(row[0])


async def set_meta(db_path: Path, key: str, value: str) -> None:
    await ensure_db(db_path)
    async with aiosqlite.connect(db_path) as db:
        await db.execute(
            """
            INSERT OR REPLACE INTO deploy_meta (key, value) VALUES (?, ?)
            """,
            (key, value),
        )
        await db.commit()
