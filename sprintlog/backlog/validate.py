"""
Validate a backlog item collection against its lineage invariants.

Usage:
    sprintlog validate [-p project.yml] [--strict] [--verbose]

Checks performed:
- IDs: item ids unique, backlog ids unique among active items
- Move: history status and sprint number agree, sprint task exists
- Split: every child points at exactly one Split anchor
- Merge: every merge event has >= 2 originals and exactly one result
- Bugs carry a severity, other types do not
- Dependencies name backlog ids present in the collection

Exit codes:
- 0: All validations passed
- 1: Validation errors found
- 2: Project file not found
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from sprintlog.backlog.schema import SCHEMA_VERSION, BacklogItem, HistoryStatus, Sprint, TaskType
from sprintlog.backlog.views import find_sprint


# =============================================================================
# VALIDATION RESULT TYPES
# =============================================================================


@dataclass
class ValidationIssue:
    """A single validation error or warning."""

    item: str
    code: str
    message: str

    def __str__(self) -> str:
        return f"[{self.code}] {self.item}: {self.message}"


@dataclass
class ValidationResult:
    """Result of validating an item collection."""

    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    items_count: int = 0
    active_count: int = 0
    history_count: int = 0
    sprints_count: int = 0

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, item: str, code: str, message: str) -> None:
        self.errors.append(ValidationIssue(item, code, message))

    def add_warning(self, item: str, code: str, message: str) -> None:
        self.warnings.append(ValidationIssue(item, code, message))


# =============================================================================
# VALIDATION RULES
# =============================================================================


def _check_ids(items: Sequence[BacklogItem], result: ValidationResult) -> None:
    for item_id, count in Counter(i.id for i in items).items():
        if count > 1:
            result.add_error(item_id, "E001", f"Item id used {count} times")

    active = Counter(i.backlog_id for i in items if i.history_status is None)
    for backlog_id, count in active.items():
        if count > 1:
            result.add_error(backlog_id, "E002", f"Backlog id shared by {count} active items")


def _check_move(item: BacklogItem, sprints: Sequence[Sprint] | None, result: ValidationResult) -> None:
    if item.history_status is HistoryStatus.MOVE:
        if item.moved_to_sprint is None:
            result.add_error(item.backlog_id, "E010", "Marked as Move but has no sprint number")
            return
        if sprints is None:
            return
        sprint = find_sprint(sprints, item.moved_to_sprint)
        if sprint is None:
            result.add_warning(item.backlog_id, "W011", f"Sprint {item.moved_to_sprint} not found")
        elif not any(t.backlog_id == item.backlog_id for t in sprint.planning.all_tasks):
            result.add_warning(
                item.backlog_id,
                "W012",
                f"No task for this item in sprint {item.moved_to_sprint} planning",
            )
    elif item.moved_to_sprint is not None:
        if item.history_status is None:
            result.add_error(
                item.backlog_id, "E011", f"Moved to sprint {item.moved_to_sprint} but not marked as Move"
            )
        else:
            result.add_error(
                item.backlog_id,
                "E012",
                f"{item.history_status.value} item must not carry a sprint number",
            )


def _check_splits(items: Sequence[BacklogItem], result: ValidationResult) -> None:
    by_id = {i.id: i for i in items}
    for item in items:
        if not item.split_from_id:
            continue
        parent = by_id.get(item.split_from_id)
        if parent is None:
            result.add_error(item.backlog_id, "E020", f"Split parent '{item.split_from_id}' not found")
        elif parent.history_status is not HistoryStatus.SPLIT:
            result.add_error(item.backlog_id, "E021", f"Split parent {parent.backlog_id} is not marked as Split")


def _check_merges(items: Sequence[BacklogItem], result: ValidationResult) -> None:
    events: dict[str, list[BacklogItem]] = defaultdict(list)
    for item in items:
        if item.merge_event_id:
            events[item.merge_event_id].append(item)

    for event_id, group in events.items():
        originals = [i for i in group if i.history_status is HistoryStatus.MERGE]
        results = [i for i in group if i.history_status is not HistoryStatus.MERGE]
        if len(originals) < 2:
            result.add_error(event_id, "E030", f"Merge event has {len(originals)} original(s), expected at least 2")
        if len(results) != 1:
            result.add_error(event_id, "E031", f"Merge event has {len(results)} merged item(s), expected 1")


def _check_severity(item: BacklogItem, result: ValidationResult) -> None:
    if item.task_type is TaskType.BUG and item.severity is None:
        result.add_error(item.backlog_id, "E040", "Bug has no severity")
    elif item.task_type is not TaskType.BUG and item.severity is not None:
        result.add_error(item.backlog_id, "E041", f"{item.task_type.value} must not carry a severity")


def _check_dependencies(items: Sequence[BacklogItem], result: ValidationResult) -> None:
    known = {i.backlog_id for i in items}
    for item in items:
        for dep in item.depends_on:
            if dep == item.backlog_id:
                result.add_warning(item.backlog_id, "W050", "Item depends on itself")
            elif dep not in known:
                result.add_error(item.backlog_id, "E050", f"Dependency '{dep}' not found")


# =============================================================================
# MAIN VALIDATION
# =============================================================================


def validate_items(
    items: Sequence[BacklogItem],
    sprints: Sequence[Sprint] | None = None,
    strict: bool = False,
) -> ValidationResult:
    """Check a collection against the backlog invariants.

    Args:
        items: Full item collection, active and historical
        sprints: When given, Move items are checked against sprint plans
        strict: If True, treat warnings as errors

    Returns:
        ValidationResult with all errors and warnings
    """
    result = ValidationResult(
        items_count=len(items),
        active_count=sum(1 for i in items if i.is_active),
        history_count=sum(1 for i in items if i.is_historical),
        sprints_count=len(sprints) if sprints is not None else 0,
    )

    _check_ids(items, result)
    for item in items:
        _check_move(item, sprints, result)
        _check_severity(item, result)
    _check_splits(items, result)
    _check_merges(items, result)
    _check_dependencies(items, result)

    if strict:
        result.errors.extend(result.warnings)
        result.warnings = []

    return result


# =============================================================================
# OUTPUT FORMATTING
# =============================================================================


def print_result(result: ValidationResult, verbose: bool = False) -> None:
    """Print validation results."""
    if result.errors:
        print("\nErrors:")
        for error in result.errors:
            print(f"  {error}")

    if result.warnings and verbose:
        print("\nWarnings:")
        for warning in result.warnings:
            print(f"  {warning}")

    print("\n" + "=" * 60)
    print("BACKLOG VALIDATION SUMMARY")
    print("=" * 60)
    print(f"""
  Schema Version:   v{SCHEMA_VERSION}
  Items:            {result.items_count}
  Active:           {result.active_count}
  History:          {result.history_count}
  Sprints:          {result.sprints_count}

  Errors:           {len(result.errors)}
  Warnings:         {len(result.warnings)}
""")

    if result.is_valid:
        print("All validations passed!")
    else:
        print(f"Found {len(result.errors)} error(s)")

    print("=" * 60)


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def backlog_validate_command(
    project_file: Path,
    strict: bool = False,
    verbose: bool = False,
    quiet: bool = False,
) -> int:
    """Run validation on a project file.

    Returns:
        0 if valid, 1 if errors, 2 if not found
    """
    from sprintlog.backlog.store import ProjectFileError, YamlProjectStore

    if not project_file.exists():
        print(f"Error: Project file not found: {project_file}")
        return 2

    try:
        project = YamlProjectStore(project_file).load()
    except ProjectFileError as e:
        print(f"Error: {e}")
        return 1

    result = validate_items(project.backlog, project.sprints, strict=strict)

    if not quiet:
        print(f"Validating project: {project_file}")
        print_result(result, verbose)

    return 0 if result.is_valid else 1
