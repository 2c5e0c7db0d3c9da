"""
Initial export schema: projects, backlog items, sprints and sprint tasks.

Every row carries project_id so several projects can share one database.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import duckdb


def up(conn: "duckdb.DuckDBPyConnection") -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS projects (
            project_id VARCHAR PRIMARY KEY,
            name VARCHAR NOT NULL,
            schema_version VARCHAR,
            synced_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # Active and historical items alike; lineage columns drive history queries
    conn.execute("""
        CREATE TABLE IF NOT EXISTS backlog_items (
            project_id VARCHAR NOT NULL,
            item_id VARCHAR NOT NULL,
            backlog_id VARCHAR NOT NULL,
            ticket_number VARCHAR,
            title VARCHAR,
            description VARCHAR,
            acceptance_criteria VARCHAR,
            priority VARCHAR NOT NULL,
            priority_rank INTEGER NOT NULL,
            task_type VARCHAR NOT NULL,
            severity VARCHAR,
            story_points INTEGER,
            depends_on VARCHAR[],
            initiator VARCHAR,
            created_date VARCHAR,
            needs_grooming BOOLEAN DEFAULT FALSE,
            ready_for_sprint BOOLEAN DEFAULT FALSE,
            moved_to_sprint INTEGER,
            history_status VARCHAR,
            split_from_id VARCHAR,
            merge_event_id VARCHAR,
            PRIMARY KEY (project_id, item_id)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS sprints (
            project_id VARCHAR NOT NULL,
            sprint_number INTEGER NOT NULL,
            status VARCHAR NOT NULL,
            start_date VARCHAR,
            end_date VARCHAR,
            duration VARCHAR,
            goal VARCHAR,
            task_count INTEGER DEFAULT 0,
            PRIMARY KEY (project_id, sprint_number)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS sprint_tasks (
            project_id VARCHAR NOT NULL,
            sprint_number INTEGER NOT NULL,
            task_id VARCHAR NOT NULL,
            backlog_id VARCHAR,
            title VARCHAR,
            status VARCHAR NOT NULL,
            priority VARCHAR,
            task_type VARCHAR,
            story_points INTEGER,
            assignee VARCHAR,
            spillover BOOLEAN DEFAULT FALSE,
            PRIMARY KEY (project_id, sprint_number, task_id)
        )
    """)


def down(conn: "duckdb.DuckDBPyConnection") -> None:
    for table in ["sprint_tasks", "sprints", "backlog_items", "projects"]:
        conn.execute(f"DROP TABLE IF EXISTS {table}")
