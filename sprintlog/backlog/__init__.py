"""
Backlog lifecycle engine.

This package provides:
- Pure transitions over the item collection (move, revert, split, merge)
- Lineage-based undo for split and merge
- Projections and the display sort policy
- Collection validation, YAML persistence and DuckDB export

Usage:
    sprintlog next-id
    sprintlog move ITEM_ID SPRINT_NUMBER
    sprintlog split ITEM_ID children.yml
    sprintlog undo ITEM_ID
    sprintlog validate [--strict]
    sprintlog sync [-o backlog.duckdb]
"""

# Schema (v1.0.0)
from sprintlog.backlog.schema import (
    SCHEMA_VERSION,
    BacklogDraft,
    BacklogItem,
    HistoryStatus,
    Priority,
    Project,
    Severity,
    Sprint,
    SprintPlanning,
    SprintStatus,
    SprintTask,
    TaskStatus,
    TaskType,
)

# Errors
from sprintlog.backlog.errors import (
    BacklogError,
    InvalidTargetError,
    NotEligibleError,
    NotFoundError,
    PartialReconciliationWarning,
    ValidationError,
)

# Transitions
from sprintlog.backlog.ids import next_backlog_id
from sprintlog.backlog.transitions import (
    TransitionResult,
    add_items,
    build_merge_draft,
    delete_item,
    merge_items,
    move_many_to_sprint,
    move_to_sprint,
    revert_to_backlog,
    split_item,
    update_item,
)
from sprintlog.backlog.undo import UndoPlan, resolve_undo

# Persistence
from sprintlog.backlog.service import BacklogService
from sprintlog.backlog.store import MemoryProjectStore, ProjectStore, YamlProjectStore

__all__ = [
    # Schema
    "SCHEMA_VERSION",
    "BacklogDraft",
    "BacklogItem",
    "HistoryStatus",
    "Priority",
    "Project",
    "Severity",
    "Sprint",
    "SprintPlanning",
    "SprintStatus",
    "SprintTask",
    "TaskStatus",
    "TaskType",
    # Errors
    "BacklogError",
    "InvalidTargetError",
    "NotEligibleError",
    "NotFoundError",
    "PartialReconciliationWarning",
    "ValidationError",
    # Transitions
    "next_backlog_id",
    "TransitionResult",
    "add_items",
    "build_merge_draft",
    "delete_item",
    "merge_items",
    "move_many_to_sprint",
    "move_to_sprint",
    "revert_to_backlog",
    "split_item",
    "update_item",
    "UndoPlan",
    "resolve_undo",
    # Persistence
    "BacklogService",
    "MemoryProjectStore",
    "ProjectStore",
    "YamlProjectStore",
]
