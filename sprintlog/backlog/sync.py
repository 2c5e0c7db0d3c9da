"""
Export a project file to DuckDB for backlog history analytics.

Loads the YAML project, migrates the database schema, then replaces every
row of that project with the current state.

Usage:
    sprintlog sync -p project.yml -o backlog.duckdb
    sprintlog sync --migrate-only -o backlog.duckdb

Requires: pip install duckdb
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from sprintlog.backlog.migrations.runner import get_current_version, run_migrations
from sprintlog.backlog.schema import SCHEMA_VERSION, Project
from sprintlog.backlog.store import ProjectFileError, YamlProjectStore

if TYPE_CHECKING:
    import duckdb


# =============================================================================
# DATABASE POPULATION
# =============================================================================


def populate_tables(conn: "duckdb.DuckDBPyConnection", project: Project) -> None:
    """Replace all rows of one project with its current items and sprints."""
    project_id = project.id
    _clear_project_data(conn, project_id)

    conn.execute(
        "INSERT INTO projects (project_id, name, schema_version) VALUES (?, ?, ?)",
        [project_id, project.name, project.schema_version],
    )

    for item in project.backlog:
        conn.execute(
            """
            INSERT INTO backlog_items
            (project_id, item_id, backlog_id, ticket_number, title, description,
             acceptance_criteria, priority, priority_rank, task_type, severity,
             story_points, depends_on, initiator, created_date, needs_grooming,
             ready_for_sprint, moved_to_sprint, history_status, split_from_id, merge_event_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                project_id,
                item.id,
                item.backlog_id,
                item.ticket_number,
                item.title,
                item.description,
                item.acceptance_criteria,
                item.priority.value,
                item.priority.rank,
                item.task_type.value,
                item.severity.value if item.severity else None,
                item.story_points,
                list(item.depends_on),
                item.initiator,
                item.created_date,
                item.needs_grooming,
                item.ready_for_sprint,
                item.moved_to_sprint,
                item.history_status.value if item.history_status else None,
                item.split_from_id,
                item.merge_event_id,
            ],
        )

    for sprint in project.sprints:
        planning = sprint.planning
        conn.execute(
            """
            INSERT INTO sprints
            (project_id, sprint_number, status, start_date, end_date, duration, goal, task_count)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                project_id,
                sprint.sprint_number,
                sprint.status.value,
                sprint.start_date,
                sprint.end_date,
                sprint.duration,
                planning.goal,
                len(planning.all_tasks),
            ],
        )

        tasks = [(t, False) for t in planning.new_tasks] + [(t, True) for t in planning.spillover_tasks]
        for task, spillover in tasks:
            conn.execute(
                """
                INSERT INTO sprint_tasks
                (project_id, sprint_number, task_id, backlog_id, title, status,
                 priority, task_type, story_points, assignee, spillover)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    project_id,
                    sprint.sprint_number,
                    task.id,
                    task.backlog_id,
                    task.title,
                    task.status.value,
                    task.priority.value,
                    task.task_type.value,
                    task.story_points,
                    task.assignee,
                    spillover,
                ],
            )


def _clear_project_data(conn: "duckdb.DuckDBPyConnection", project_id: str) -> None:
    for table in ["sprint_tasks", "sprints", "backlog_items", "projects"]:
        conn.execute(f"DELETE FROM {table} WHERE project_id = ?", [project_id])


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def backlog_sync_command(
    project_file: Path | None = None,
    output_path: Path | None = None,
    migrate_only: bool = False,
) -> int:
    """Export a project file to DuckDB.

    Returns:
        Exit code (0 = success, 1 = error, 2 = project file not found)
    """
    try:
        import duckdb
    except ImportError:
        print("Error: duckdb is required for sync. Install with: pip install duckdb")
        return 1

    db_path = (output_path or Path("backlog.duckdb")).resolve()

    if migrate_only:
        print(f"Database:     {db_path}")
        conn = duckdb.connect(str(db_path))
        try:
            print(f"Current:      {get_current_version(conn) or 'none'}")
            applied = run_migrations(conn)
        finally:
            conn.close()
        print(f"Applied:      {', '.join(applied)}" if applied else "No pending migrations.")
        return 0

    project_file = (project_file or Path("project.yml")).resolve()
    if not project_file.exists():
        print(f"Error: Project file not found: {project_file}")
        return 2

    print(f"Project file: {project_file}")
    print(f"Schema:       v{SCHEMA_VERSION}")
    try:
        project = YamlProjectStore(project_file).load()
    except ProjectFileError as e:
        print(f"\nError: {e}")
        return 1

    print(f"  Project:    {project.name} ({project.id})")
    print(f"  Items:      {len(project.backlog)}")
    print(f"  Sprints:    {len(project.sprints)}")
    print(f"\nDatabase:     {db_path}")

    conn = duckdb.connect(str(db_path))
    try:
        applied = run_migrations(conn)
        if applied:
            print(f"Migrations:   {', '.join(applied)}")
        populate_tables(conn, project)
    finally:
        conn.close()

    print(f"\nDone! Database saved to: {db_path}")
    return 0
