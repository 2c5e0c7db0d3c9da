"""
Migration runner for the backlog export database.

Applied versions are recorded in the schema_version table; pending
migrations run in file-name order.
"""

from __future__ import annotations

import logging
from importlib import import_module
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import duckdb

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent


def ensure_schema_version_table(conn: "duckdb.DuckDBPyConnection") -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_version (
            version VARCHAR PRIMARY KEY,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)


def get_current_version(conn: "duckdb.DuckDBPyConnection") -> str | None:
    """Highest applied migration version ("001", "002", ...) or None."""
    exists = conn.execute(
        "SELECT count(*) FROM information_schema.tables WHERE table_name = 'schema_version'"
    ).fetchone()[0]
    if not exists:
        return None
    row = conn.execute("SELECT max(version) FROM schema_version").fetchone()
    return row[0] if row else None


def list_migrations() -> list[Path]:
    """Migration files (NNN_description.py) in version order."""
    return sorted(MIGRATIONS_DIR.glob("[0-9][0-9][0-9]_*.py"))


def run_migrations(
    conn: "duckdb.DuckDBPyConnection",
    target_version: str | None = None,
) -> list[str]:
    """Apply pending migrations, optionally stopping at target_version.

    Returns:
        Versions applied by this call
    """
    ensure_schema_version_table(conn)
    current = get_current_version(conn)
    applied = []

    for mig_file in list_migrations():
        version = mig_file.stem.split("_")[0]
        if current and version <= current:
            continue
        if target_version and version > target_version:
            break

        logger.info("Applying migration %s", mig_file.name)
        module = import_module(f"sprintlog.backlog.migrations.{mig_file.stem}")
        module.up(conn)
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", [version])
        applied.append(version)

    return applied
