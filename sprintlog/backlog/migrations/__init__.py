"""
Versioned DuckDB schema for the backlog analytics export.

Files are named NNN_description.py and expose up(conn).
"""

from sprintlog.backlog.migrations.runner import get_current_version, run_migrations

__all__ = ["get_current_version", "run_migrations"]
