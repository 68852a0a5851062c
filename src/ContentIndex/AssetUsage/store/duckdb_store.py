# === NAVMAP v1 ===
# {
#   "module": "ContentIndex.AssetUsage.store.duckdb_store",
#   "purpose": "Persistent DuckDB usage store with file-locked writers",
#   "sections": [
#     {"id": "init", "name": "Initialization & Bootstrap", "anchor": "INI", "kind": "api"},
#     {"id": "transactions", "name": "Transaction Boundaries", "anchor": "TXN", "kind": "api"},
#     {"id": "queries", "name": "Query Facades", "anchor": "QRY", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""DuckDB-backed usage store.

One writer at a time (advisory file lock next to the database file); readers
never take the lock.  Every DuckDB failure surfaces as
:class:`~ContentIndex.AssetUsage.errors.UsageStoreError` so callers only deal
with the package's own exception hierarchy.

Usage::

    store = DuckDBUsageStore(config)
    store.bootstrap()
    try:
        store.register(key, "A1", metadata)
    finally:
        store.close()
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import os
import threading
from pathlib import Path
from typing import Any, Generator, List, Optional, Sequence

import duckdb

from ..errors import UsageStoreError
from ..settings import DEFAULT_DB_PATH, DatabaseConfiguration
from .base import UsageMetadata, UsageRecord
from .migrations import MigrationResult, apply_migrations, get_schema_version

__all__ = ["DuckDBUsageStore"]

logger = logging.getLogger(__name__)

_SELECT_COLUMNS = (
    "usage_key, asset_id, node_identifier, workspace_name, dimensions_json, node_type_name"
)


def _row_to_record(row: Sequence[Any]) -> UsageRecord:
    return UsageRecord(
        usage_key=row[0],
        asset_id=row[1],
        metadata=UsageMetadata(
            node_identifier=row[2],
            workspace_name=row[3],
            dimensions_json=row[4] or "{}",
            node_type_name=row[5],
        ),
    )


# ============================================================================
# DuckDB Connection & Bootstrap
# ============================================================================


class DuckDBUsageStore:
    """Transactional usage store on a single DuckDB file."""

    def __init__(self, config: Optional[DatabaseConfiguration] = None):
        self.config = config or DatabaseConfiguration()
        self._db_path = self.config.db_path or DEFAULT_DB_PATH
        self._lock_path = Path(str(self._db_path) + ".lock")
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock_file: Optional[Any] = None
        self._mutex = threading.RLock()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextlib.contextmanager
    def _write_lock(self) -> Generator[None, None, None]:
        """Acquire an exclusive file lock for writes."""

        if not self.config.enable_locks or self.config.readonly:
            yield
            return

        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            logger.debug("Acquired write lock at %s", self._lock_path)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def bootstrap(self, apply_migrations: bool = True) -> None:
        """Open the database and, unless disabled, apply pending migrations."""

        if self._connection is not None:
            return
        db_path = self._db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Opening DuckDB at %s (read_only=%s)", db_path, self.config.readonly)

        config_dict = {}
        if self.config.threads is not None:
            config_dict["threads"] = self.config.threads
        elif os.cpu_count():
            config_dict["threads"] = os.cpu_count()
        if self.config.memory_limit is not None:
            config_dict["memory_limit"] = self.config.memory_limit

        try:
            self._connection = duckdb.connect(
                str(db_path),
                read_only=self.config.readonly,
                config=config_dict,
            )
        except duckdb.Error as exc:
            raise UsageStoreError(f"Cannot open usage store at {db_path}: {exc}", operation="bootstrap") from exc

        if apply_migrations and not self.config.readonly:
            self.migrate()

    def migrate(self, dry_run: bool = False) -> List[MigrationResult]:
        """Apply pending schema migrations under the write lock."""

        conn = self._conn()
        with self._mutex, self._write_lock():
            try:
                return apply_migrations(conn, dry_run=dry_run)
            except duckdb.Error as exc:
                raise UsageStoreError(f"Migration failed: {exc}", operation="migrate") from exc

    def schema_version(self) -> int:
        with self._mutex:
            return get_schema_version(self._conn())

    def close(self) -> None:
        """Close the database connection."""

        with self._mutex:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    def __enter__(self) -> "DuckDBUsageStore":
        self.bootstrap()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _conn(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            raise UsageStoreError("Usage store is not open; call bootstrap() first")
        return self._connection

    # ========================================================================
    # Transactions
    # ========================================================================

    @contextlib.contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """Transactional context for batch writes."""

        conn = self._conn()
        if self.config.readonly:
            raise UsageStoreError("Cannot write in read-only mode", operation="transaction")

        with self._mutex, self._write_lock():
            conn.execute("BEGIN TRANSACTION")
            try:
                yield conn
                conn.execute("COMMIT")
            except Exception as e:
                conn.execute("ROLLBACK")
                logger.error("Transaction rolled back: %s", e)
                raise

    def _write(self, operation: str, sql: str, params: Sequence[Any]) -> None:
        try:
            with self.transaction() as conn:
                conn.execute(sql, list(params))
        except duckdb.Error as exc:
            raise UsageStoreError(f"{operation} failed: {exc}", operation=operation) from exc

    def _read(self, operation: str, sql: str, params: Sequence[Any] = ()) -> List[Any]:
        conn = self._conn()
        try:
            with self._mutex:
                return conn.execute(sql, list(params)).fetchall()
        except duckdb.Error as exc:
            raise UsageStoreError(f"{operation} failed: {exc}", operation=operation) from exc

    # ========================================================================
    # Query Facades
    # ========================================================================

    def register(self, usage_key: str, asset_id: str, metadata: UsageMetadata) -> None:
        """Insert or overwrite the record for ``(usage_key, asset_id)``."""

        self._write(
            "register",
            f"""
            INSERT OR REPLACE INTO asset_usages ({_SELECT_COLUMNS}, registered_at)
            VALUES (?, ?, ?, ?, ?, ?, now())
            """,
            [
                usage_key,
                asset_id,
                metadata.node_identifier,
                metadata.workspace_name,
                metadata.dimensions_json,
                metadata.node_type_name,
            ],
        )

    def unregister(self, usage_key: str, asset_id: str) -> None:
        self._write(
            "unregister",
            "DELETE FROM asset_usages WHERE usage_key = ? AND asset_id = ?",
            [usage_key, asset_id],
        )

    def unregister_all_by_asset(self, asset_id: str) -> int:
        """Delete every record for ``asset_id`` and return how many were removed."""

        try:
            with self.transaction() as conn:
                row = conn.execute(
                    "SELECT COUNT(*) FROM asset_usages WHERE asset_id = ?", [asset_id]
                ).fetchone()
                conn.execute("DELETE FROM asset_usages WHERE asset_id = ?", [asset_id])
        except duckdb.Error as exc:
            raise UsageStoreError(
                f"unregister_all_by_asset failed: {exc}", operation="unregister_all_by_asset"
            ) from exc
        return int(row[0]) if row else 0

    def list_all(self) -> List[UsageRecord]:
        rows = self._read(
            "list_all",
            f"SELECT {_SELECT_COLUMNS} FROM asset_usages ORDER BY asset_id, usage_key",
        )
        return [_row_to_record(row) for row in rows]

    def list_by_asset(self, asset_id: str) -> List[UsageRecord]:
        rows = self._read(
            "list_by_asset",
            f"SELECT {_SELECT_COLUMNS} FROM asset_usages WHERE asset_id = ? ORDER BY usage_key",
            [asset_id],
        )
        return [_row_to_record(row) for row in rows]

    def exists(self, usage_key: str, asset_id: str) -> bool:
        rows = self._read(
            "exists",
            "SELECT 1 FROM asset_usages WHERE usage_key = ? AND asset_id = ? LIMIT 1",
            [usage_key, asset_id],
        )
        return bool(rows)

    def count(self, usage_key: Optional[str] = None, asset_id: Optional[str] = None) -> int:
        clauses: List[str] = []
        params: List[Any] = []
        if usage_key is not None:
            clauses.append("usage_key = ?")
            params.append(usage_key)
        if asset_id is not None:
            clauses.append("asset_id = ?")
            params.append(asset_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._read("count", f"SELECT COUNT(*) FROM asset_usages{where}", params)
        return int(rows[0][0]) if rows else 0

