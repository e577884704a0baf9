import copy
import json
import logging
import sqlite3
import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import aiosqlite

from matchcache.models import CacheEntry
from matchcache.storage.base import (
    MAX_BATCH_SIZE,
    CacheStore,
    Filter,
    coerce_document,
    delete_path,
    set_path,
    split_path,
)
from matchcache.utils.errors import (
    EntryNotFoundError,
    StoreUnavailableError,
    StoreWriteError,
    VersionConflictError,
)

logger = logging.getLogger(__name__)


def _utc_now_text() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _json_path(path: str) -> str:
    return "$" + "".join(f'."{key}"' for key in split_path(path))


class SqliteCacheStore(CacheStore):
    """
    SQLite-backed document store for match analysis cache entries.

    Supports:
    - WAL mode for concurrent readers while a job writes
    - Simple schema migrations
    - Nested-field merge patches as read-modify-write inside one transaction
    - Job run status tracking
    """

    backend_name = "sqlite"

    def __init__(self, db_path: str = "matchcache.sqlite", batch_delete_chunk_size: int = MAX_BATCH_SIZE):
        super().__init__(batch_delete_chunk_size)
        self.db_path = db_path
        self.initialized = False

    async def initialize(self):
        """Initialize database, enable WAL, and run migrations."""
        if self.initialized:
            return

        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA journal_mode=WAL;")
                await db.execute("PRAGMA synchronous=NORMAL;")

                await db.execute("""
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INTEGER PRIMARY KEY,
                        applied_at TEXT NOT NULL
                    )
                """)

                await self._run_migrations(db)
        except (OSError, aiosqlite.Error) as e:
            raise StoreUnavailableError(self.backend_name, f"{self.db_path}: {e}") from e

        self.initialized = True
        logger.info(f"✅ Cache store initialized at {self.db_path}")

    def connect(self):
        """Get an aiosqlite connection context manager."""
        return aiosqlite.connect(self.db_path, timeout=30.0)

    async def _run_migrations(self, db: aiosqlite.Connection):
        """Run pending schema migrations."""
        async with db.execute("SELECT MAX(version) FROM schema_version") as cursor:
            row = await cursor.fetchone()
            current_version = row[0] if row and row[0] is not None else 0

        migrations = [
            # Version 1: Documents
            """
            CREATE TABLE IF NOT EXISTS cache_documents (
                id TEXT PRIMARY KEY,
                data_json TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                created_at_utc TEXT NOT NULL,
                updated_at_utc TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_cache_documents_sport
            ON cache_documents(json_extract(data_json, '$.sport'));
            """,
            # Version 2: Job run status
            """
            CREATE TABLE IF NOT EXISTS job_runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                job TEXT NOT NULL,
                summary_json TEXT NOT NULL,
                finished_at_utc TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_job_runs_job
            ON job_runs(job, finished_at_utc DESC);
            """,
        ]

        for i, sql in enumerate(migrations):
            version = i + 1
            if version > current_version:
                logger.info(f"Applying migration version {version}...")
                try:
                    await db.executescript(sql)
                    await db.execute(
                        "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                        (version, _utc_now_text())
                    )
                    await db.commit()
                    logger.info(f"✅ Applied migration version {version}")
                except aiosqlite.Error as e:
                    logger.error(f"❌ Failed to apply migration version {version}: {e}")
                    raise

    async def ping(self) -> None:
        try:
            async with self.connect() as db:
                async with db.execute("SELECT COUNT(*) FROM cache_documents") as cursor:
                    await cursor.fetchone()
        except (OSError, aiosqlite.Error) as e:
            raise StoreUnavailableError(self.backend_name, f"{self.db_path}: {e}") from e

    # ========================================================================
    # READS
    # ========================================================================

    async def query(self, filters: Sequence[Filter]) -> List[CacheEntry]:
        clauses = []
        params: List[Any] = []
        for path, value in filters:
            if value is None:
                clauses.append("json_extract(data_json, ?) IS NULL")
                params.append(_json_path(path))
            elif isinstance(value, bool):
                # json_extract turns true into 1; json_type keeps booleans apart from numbers
                clauses.append("json_type(data_json, ?) = ?")
                params.extend([_json_path(path), "true" if value else "false"])
            else:
                clauses.append("json_extract(data_json, ?) = ?")
                params.extend([_json_path(path), value])

        sql = "SELECT id, data_json, version FROM cache_documents"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)

        async with self.connect() as db:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()

        entries = []
        for doc_id, data_json, version in rows:
            try:
                data = json.loads(data_json)
            except json.JSONDecodeError as e:
                logger.warning(f"⚠️ Skipping unreadable document {doc_id}: {e}")
                continue
            entries.append(CacheEntry.from_document(doc_id, data, version))
        return entries

    async def get_document(self, entry_id: str) -> Tuple[Dict[str, Any], int]:
        async with self.connect() as db:
            row = await self._fetch_row(db, entry_id)
        if row is None:
            raise EntryNotFoundError(entry_id)
        return row

    async def _fetch_row(self, db: aiosqlite.Connection, entry_id: str) -> Optional[Tuple[Dict[str, Any], int]]:
        async with db.execute(
            "SELECT data_json, version FROM cache_documents WHERE id = ?", (entry_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return json.loads(row[0]), int(row[1])

    # ========================================================================
    # WRITES
    # ========================================================================

    async def put(self, entry: Union[CacheEntry, Tuple[str, Dict[str, Any]]]) -> int:
        doc_id, data = coerce_document(entry)
        now = _utc_now_text()
        try:
            async with self.connect() as db:
                await db.execute("""
                    INSERT INTO cache_documents (id, data_json, version, created_at_utc, updated_at_utc)
                    VALUES (?, ?, 1, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        data_json = excluded.data_json,
                        version = cache_documents.version + 1,
                        updated_at_utc = excluded.updated_at_utc
                """, (doc_id, json.dumps(data), now, now))
                async with db.execute("SELECT version FROM cache_documents WHERE id = ?", (doc_id,)) as cursor:
                    row = await cursor.fetchone()
                await db.commit()
        except (aiosqlite.Error, TypeError, ValueError) as e:
            raise StoreWriteError("put", str(e), [doc_id]) from e
        return int(row[0])

    async def update_nested_field(
        self,
        entry_id: str,
        path: str,
        value: Any,
        *,
        extra_fields: Optional[Dict[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> int:
        def _patch(doc: Dict[str, Any]) -> None:
            set_path(doc, path, copy.deepcopy(value))
            for key, field_value in (extra_fields or {}).items():
                doc[key] = copy.deepcopy(field_value)

        return await self._read_modify_write(entry_id, _patch, expected_version, f"update {path}")

    async def delete_nested_field(self, entry_id: str, path: str) -> int:
        return await self._read_modify_write(
            entry_id, lambda doc: delete_path(doc, path), None, f"delete {path}"
        )

    async def _read_modify_write(self, entry_id, patch_fn, expected_version: Optional[int], operation: str) -> int:
        try:
            async with self.connect() as db:
                # IMMEDIATE takes the write lock up front so the read and the write see the same row
                await db.execute("BEGIN IMMEDIATE")
                try:
                    row = await self._fetch_row(db, entry_id)
                    if row is None:
                        raise EntryNotFoundError(entry_id)
                    data, current_version = row
                    if expected_version is not None and expected_version != current_version:
                        raise VersionConflictError(entry_id, expected_version, current_version)

                    patch_fn(data)
                    new_version = current_version + 1
                    await db.execute(
                        "UPDATE cache_documents SET data_json = ?, version = ?, updated_at_utc = ? WHERE id = ?",
                        (json.dumps(data), new_version, _utc_now_text(), entry_id),
                    )
                    await db.commit()
                    return new_version
                except BaseException:
                    await db.rollback()
                    raise
        except (aiosqlite.Error, TypeError, ValueError) as e:
            raise StoreWriteError(operation, str(e), [entry_id]) from e

    async def _delete_chunk(self, entry_ids: List[str]) -> None:
        self._check_chunk_size(entry_ids)
        placeholders = ",".join("?" for _ in entry_ids)
        try:
            async with self.connect() as db:
                await db.execute(f"DELETE FROM cache_documents WHERE id IN ({placeholders})", entry_ids)
                await db.commit()
        except aiosqlite.Error as e:
            raise StoreWriteError("batch delete", str(e), entry_ids) from e

    # ========================================================================
    # STATUS / MAINTENANCE
    # ========================================================================

    async def record_job_run(self, job: str, summary: Dict[str, Any]) -> None:
        """Persist a job summary as a heartbeat for operators."""
        try:
            async with self.connect() as db:
                await db.execute(
                    "INSERT INTO job_runs (job, summary_json, finished_at_utc) VALUES (?, ?, ?)",
                    (job, json.dumps(summary, default=str), _utc_now_text()),
                )
                await db.commit()
        except aiosqlite.Error as e:
            logger.warning(f"⚠️ Failed to record job run for {job}: {e}")

    async def get_last_job_run(self, job: str) -> Optional[Dict[str, Any]]:
        async with self.connect() as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT summary_json, finished_at_utc FROM job_runs WHERE job = ? ORDER BY id DESC LIMIT 1",
                (job,),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        summary = json.loads(row["summary_json"])
        summary["finished_at_utc"] = row["finished_at_utc"]
        return summary

    async def backup(self, backup_dir: str = "backups") -> str:
        """
        Create a backup of the database using SQLite's backup API.

        Args:
            backup_dir: Directory where the backup will be stored.

        Returns:
            The path to the created backup file.
        """
        db_path = Path(self.db_path)
        if not db_path.exists():
            raise FileNotFoundError(f"Database file not found: {self.db_path}")

        backup_folder = Path(backup_dir)
        backup_folder.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        backup_path = backup_folder / f"{db_path.stem}_{timestamp}{db_path.suffix}"

        def _do_sqlite_backup():
            with sqlite3.connect(self.db_path) as src:
                with sqlite3.connect(backup_path) as dst:
                    src.backup(dst)

        # Run the synchronous backup in a thread to avoid blocking the event loop
        await asyncio.to_thread(_do_sqlite_backup)

        logger.info(f"✅ Database backup created: {backup_path}")
        return str(backup_path)
