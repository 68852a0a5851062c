# === NAVMAP v1 ===
# {
#   "module": "ContentIndex.AssetUsage.store.migrations",
#   "purpose": "Idempotent migration runner for the DuckDB usage store schema",
#   "sections": [
#     {"id": "types", "name": "Data Types", "anchor": "TYP", "kind": "models"},
#     {"id": "migrations", "name": "Migration Definitions", "anchor": "MIG", "kind": "data"},
#     {"id": "runner", "name": "Migration Runner", "anchor": "RUN", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Schema migrations for the DuckDB usage store.

Each migration records itself in ``schema_version``; re-running the runner
applies only what is missing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

import duckdb

logger = logging.getLogger(__name__)


# ============================================================================
# DATA TYPES (TYP)
# ============================================================================


@dataclass
class MigrationResult:
    """Result of applying a migration."""

    migration_name: str
    applied: bool
    error: Optional[str] = None


# ============================================================================
# MIGRATION DEFINITIONS (MIG)
# ============================================================================

MIGRATIONS: List[Tuple[str, str]] = [
    (
        "0001_schema_version",
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            migration_name TEXT PRIMARY KEY,
            applied_at TIMESTAMP NOT NULL DEFAULT now()
        );
        INSERT OR IGNORE INTO schema_version VALUES ('0001_schema_version', now());
        """,
    ),
    (
        "0002_asset_usages",
        """
        CREATE TABLE IF NOT EXISTS asset_usages (
            usage_key TEXT NOT NULL,
            asset_id TEXT NOT NULL,
            node_identifier TEXT,
            workspace_name TEXT,
            dimensions_json TEXT NOT NULL DEFAULT '{}',
            node_type_name TEXT,
            registered_at TIMESTAMP NOT NULL DEFAULT now(),
            PRIMARY KEY (usage_key, asset_id)
        );
        INSERT OR IGNORE INTO schema_version VALUES ('0002_asset_usages', now());
        """,
    ),
]


# ============================================================================
# MIGRATION RUNNER (RUN)
# ============================================================================


def get_applied_migrations(conn: duckdb.DuckDBPyConnection) -> Set[str]:
    """Return the names of migrations already recorded in ``schema_version``."""

    try:
        result = conn.execute("SELECT migration_name FROM schema_version").fetchall()
        return {row[0] for row in result}
    except duckdb.CatalogException:
        return set()


def apply_migrations(
    conn: duckdb.DuckDBPyConnection, dry_run: bool = False
) -> List[MigrationResult]:
    """Apply pending migrations in order inside one transaction.

    Args:
        conn: DuckDB connection (writer)
        dry_run: Roll back instead of committing

    Returns:
        One :class:`MigrationResult` per pending migration.

    Raises:
        duckdb.Error: If any migration fails; nothing is committed.
    """

    applied = get_applied_migrations(conn)
    pending = [name for name, _ in MIGRATIONS if name not in applied]
    if not pending:
        logger.debug("All usage store migrations already applied")
        return []

    logger.info("Applying %d pending migrations: %s", len(pending), pending)
    results: List[MigrationResult] = []
    conn.begin()
    try:
        for name, sql in MIGRATIONS:
            if name in applied:
                continue
            try:
                conn.execute(sql)
            except duckdb.Error as exc:
                logger.error("Migration %s failed: %s", name, exc)
                results.append(MigrationResult(name, False, error=str(exc)))
                raise
            results.append(MigrationResult(name, True))
            logger.info("Applied migration: %s", name)
        if dry_run:
            conn.rollback()
            logger.info("Dry run: rolled back all migrations")
        else:
            conn.commit()
    except duckdb.Error:
        conn.rollback()
        raise
    return results


def get_schema_version(conn: duckdb.DuckDBPyConnection) -> int:
    """Return the number of applied migrations (0 for a fresh database)."""

    try:
        result = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()
        return result[0] if result else 0
    except duckdb.CatalogException:
        return 0
