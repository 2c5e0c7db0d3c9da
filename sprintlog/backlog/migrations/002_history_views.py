"""
Views over backlog_items for the backlog and history screens.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import duckdb


def up(conn: "duckdb.DuckDBPyConnection") -> None:
    conn.execute("""
        CREATE OR REPLACE VIEW active_backlog AS
        SELECT *
        FROM backlog_items
        WHERE moved_to_sprint IS NULL AND history_status IS NULL
    """)

    conn.execute("""
        CREATE OR REPLACE VIEW backlog_history AS
        SELECT *
        FROM backlog_items
        WHERE history_status IS NOT NULL
    """)

    # One row per merge event: originals and the merged item
    conn.execute("""
        CREATE OR REPLACE VIEW merge_events AS
        SELECT
            project_id,
            merge_event_id,
            count(*) FILTER (WHERE history_status = 'Merge') AS original_count,
            list_sort(list(backlog_id) FILTER (WHERE history_status = 'Merge')) AS original_ids,
            max(backlog_id) FILTER (WHERE history_status IS DISTINCT FROM 'Merge') AS merged_id
        FROM backlog_items
        WHERE merge_event_id IS NOT NULL
        GROUP BY project_id, merge_event_id
    """)


def down(conn: "duckdb.DuckDBPyConnection") -> None:
    for view in ["merge_events", "backlog_history", "active_backlog"]:
        conn.execute(f"DROP VIEW IF EXISTS {view}")
