"""
Pydantic schema models for the backlog lifecycle engine.

This is the SINGLE SOURCE OF TRUTH for the project file schema.
Used by:
- transitions.py / undo.py (state transitions)
- validate.py (invariant checks)
- store.py (YAML project file)
- sync.py (DuckDB export)

All models are frozen: transitions never mutate an item in place, they build
a new one with `model_copy(update=...)` and return a new collection. Sequence
fields are tuples so no mutable state is shared between collections.

Schema Version: 1.0.0
"""

from __future__ import annotations

from enum import Enum
from typing import Any

try:
    from pydantic import BaseModel, Field, model_validator
except ImportError:
    raise ImportError(
        "pydantic is required for sprintlog. "
        "Install with: pip install sprintlog"
    )


# =============================================================================
# SCHEMA VERSION
# =============================================================================

SCHEMA_VERSION = "1.0.0"


# =============================================================================
# ENUMS
# =============================================================================


class Priority(str, Enum):
    """Priority levels, declared from most to least urgent."""

    HIGHEST = "Highest"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    LOWEST = "Lowest"

    @property
    def rank(self) -> int:
        """Urgency rank, 0 is most urgent."""
        return list(Priority).index(self)


class TaskType(str, Enum):
    """Kind of work a backlog item represents."""

    NEW_FEATURE = "New Feature"
    IMPROVEMENT = "Improvement"
    BUG = "Bug"
    REFACTORING = "Refactoring"
    DOCUMENTATION = "Documentation"
    INFRASTRUCTURE = "Infrastructure"
    OTHER = "Other"


class Severity(str, Enum):
    """Bug severity. Only meaningful for TaskType.BUG."""

    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class HistoryStatus(str, Enum):
    """Why an item was retired from the active backlog."""

    MOVE = "Move"
    SPLIT = "Split"
    MERGE = "Merge"


class SprintStatus(str, Enum):
    PLANNED = "Planned"
    ACTIVE = "Active"
    COMPLETED = "Completed"


class TaskStatus(str, Enum):
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    IN_REVIEW = "In Review"
    QA = "QA"
    DONE = "Done"
    BLOCKED = "Blocked"


# Fields that only the engine may write. Field edits must not touch them.
LINEAGE_FIELDS = frozenset(
    {"moved_to_sprint", "history_status", "split_from_id", "merge_event_id"}
)


# =============================================================================
# BACKLOG ITEM MODELS
# =============================================================================


def _normalize_severity(data: Any) -> Any:
    """Bug items need a severity, every other type has none."""
    if not isinstance(data, dict):
        return data
    task_type = TaskType(data.get("task_type") or TaskType.NEW_FEATURE)
    if task_type is TaskType.BUG:
        if not data.get("severity"):
            raise ValueError("severity is required when task_type is Bug")
    elif data.get("severity") is not None:
        data = {**data, "severity": None}
    return data


def _dedupe(values: list[str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


class BacklogItem(BaseModel):
    """A single entry in the project backlog, active or historical.

    Example:
        id: item_3f9c2a1b7d40
        backlog_id: BL-240007
        title: "Export sprint report"
        priority: Medium
        task_type: New Feature
        depends_on: [BL-240003]
        needs_grooming: false
        ready_for_sprint: true
    """

    id: str = Field(..., description="Opaque stable identifier, never reused")
    backlog_id: str = Field(..., description="Human-facing id (BL-240007, BL-240007-a, BL-240007-m)")
    ticket_number: str | None = Field(default=None, description="External ticket reference")
    title: str = Field(default="", description="Short title")
    description: str = Field(default="", description="Free text description")
    acceptance_criteria: str = Field(default="", description="Free text acceptance criteria")
    priority: Priority = Field(default=Priority.MEDIUM, description="Urgency")
    task_type: TaskType = Field(default=TaskType.NEW_FEATURE, description="Kind of work")
    severity: Severity | None = Field(default=None, description="Required for bugs only")
    story_points: int | None = Field(default=None, ge=0, description="Estimate")
    depends_on: tuple[str, ...] = Field(default=(), description="Backlog ids this item depends on")
    initiator: str | None = Field(default=None, description="Who requested the item")
    created_date: str | None = Field(default=None, description="YYYY-MM-DD")
    dev_estimated_time: str | None = Field(default=None, description="e.g. 2d, 4h")
    qa_estimated_time: str | None = Field(default=None, description="e.g. 2d")
    buffer_time: str | None = Field(default=None, description="e.g. 1d")

    needs_grooming: bool = Field(default=False)
    ready_for_sprint: bool = Field(default=False)

    # Lineage
    moved_to_sprint: int | None = Field(default=None, description="Sprint number while moved")
    history_status: HistoryStatus | None = Field(default=None, description="Set once retired")
    split_from_id: str | None = Field(default=None, description="Parent id for split children")
    merge_event_id: str | None = Field(default=None, description="Shared id of one merge")

    model_config = {"extra": "allow", "frozen": True}

    @model_validator(mode="before")
    @classmethod
    def check_severity(cls, data: Any) -> Any:
        data = _normalize_severity(data)
        if isinstance(data, dict) and data.get("depends_on"):
            data = {**data, "depends_on": _dedupe(list(data["depends_on"]))}
        return data

    @property
    def is_active(self) -> bool:
        """Shown in the backlog: not moved and not retired."""
        return self.moved_to_sprint is None and self.history_status is None

    @property
    def is_historical(self) -> bool:
        return self.history_status is not None

    @property
    def is_split_child(self) -> bool:
        return self.split_from_id is not None

    @property
    def is_merge_result(self) -> bool:
        """The open result of a merge (not one of the retired originals)."""
        return self.merge_event_id is not None and self.history_status is None

    @property
    def label(self) -> str:
        """`BL-240007 (Title)` for messages."""
        return f"{self.backlog_id} ({self.title or 'No Title'})"


class BacklogDraft(BaseModel):
    """Caller-authored item content without an engine-assigned id.

    Used for new backlog entries, split children and merge results. Fields
    left unset are filled in by the operation consuming the draft.
    """

    backlog_id: str | None = None
    ticket_number: str | None = None
    title: str | None = None
    description: str | None = None
    acceptance_criteria: str | None = None
    priority: Priority | None = None
    task_type: TaskType | None = None
    severity: Severity | None = None
    story_points: int | None = Field(default=None, ge=0)
    depends_on: list[str] | None = None
    initiator: str | None = None
    created_date: str | None = None
    dev_estimated_time: str | None = None
    qa_estimated_time: str | None = None
    buffer_time: str | None = None
    needs_grooming: bool | None = None
    ready_for_sprint: bool | None = None

    model_config = {"extra": "allow", "frozen": True}

    def content(self) -> dict[str, Any]:
        """Fields the caller actually set."""
        return self.model_dump(exclude_unset=True)


# =============================================================================
# SPRINT MODELS
# =============================================================================


class SprintTask(BacklogItem):
    """A backlog item cloned into a sprint plan."""

    status: TaskStatus = Field(default=TaskStatus.TODO)
    start_date: str | None = Field(default=None, description="YYYY-MM-DD")
    completed_date: str | None = Field(default=None, description="YYYY-MM-DD")
    assignee: str | None = Field(default=None)


class SprintPlanning(BaseModel):
    """Planning section of a sprint."""

    goal: str = ""
    new_tasks: tuple[SprintTask, ...] = Field(default=())
    spillover_tasks: tuple[SprintTask, ...] = Field(default=())
    definition_of_done: str = ""
    testing_strategy: str = ""

    model_config = {"extra": "allow", "frozen": True}

    @property
    def all_tasks(self) -> list[SprintTask]:
        return [*self.new_tasks, *self.spillover_tasks]


class Sprint(BaseModel):
    """A sprint and its plan.

    Example:
        sprint_number: 5
        status: Planned
        start_date: "2024-03-04"
        duration: "2 Weeks"
    """

    sprint_number: int = Field(..., description="Sequential sprint number")
    status: SprintStatus = Field(default=SprintStatus.PLANNED)
    start_date: str | None = Field(default=None)
    end_date: str | None = Field(default=None)
    duration: str | None = Field(default=None, description="e.g. 1 Week, 2 Weeks")
    planning: SprintPlanning = Field(default_factory=SprintPlanning)

    model_config = {"extra": "allow", "frozen": True}


# =============================================================================
# PROJECT MODEL
# =============================================================================


class Project(BaseModel):
    """Complete project document: the item collection plus its sprints."""

    id: str = Field(..., description="Project identifier")
    name: str = Field(..., description="Human-readable project name")
    schema_version: str = Field(default=SCHEMA_VERSION)
    backlog: list[BacklogItem] = Field(default_factory=list)
    sprints: list[Sprint] = Field(default_factory=list)

    model_config = {"extra": "allow", "frozen": True}
