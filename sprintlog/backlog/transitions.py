"""
Backlog transitions: Move-to-Sprint, Revert-to-Backlog, Split, Merge, and
plain item maintenance (add, update, delete).

Every transition is a function of (collection, args) that returns a
TransitionResult holding a NEW collection. Inputs are never modified: items
are frozen models and lists are rebuilt. A hard error (BacklogError) is raised
before anything is returned, so a failed call has no effect at all.

Usage:
    from sprintlog.backlog.transitions import split_item

    result = split_item(items, "item_3f9c2a1b7d40", [BacklogDraft(title="API"), BacklogDraft(title="UI")])
    store.replace(project.model_copy(update={"backlog": result.items}))
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from sprintlog.backlog.errors import (
    InvalidTargetError,
    NotFoundError,
    PartialReconciliationWarning,
    ValidationError,
)
from sprintlog.backlog.ids import (
    find_collisions,
    merge_backlog_id,
    new_item_id,
    new_merge_event_id,
    next_backlog_id,
    split_child_backlog_id,
    split_suffix,
)
from sprintlog.backlog.schema import (
    LINEAGE_FIELDS,
    BacklogDraft,
    BacklogItem,
    HistoryStatus,
    Priority,
    Sprint,
    SprintTask,
    TaskStatus,
    TaskType,
)
from sprintlog.backlog.views import ELIGIBLE_SPRINT_STATUSES, find_item, find_sprint, sort_items

logger = logging.getLogger(__name__)

DEFAULT_QA_ESTIMATE = "2d"
DEFAULT_BUFFER = "1d"

MERGE_TEXT_SEPARATOR = "\n\n---\n\n"

# Fields a caller may never set through a draft or an edit
_ENGINE_FIELDS = LINEAGE_FIELDS | {"id"}


# =============================================================================
# RESULT TYPE
# =============================================================================


@dataclass
class TransitionResult:
    """New collection produced by a transition, plus non-fatal warnings."""

    items: list[BacklogItem]
    sprints: list[Sprint] | None = None
    warnings: list[PartialReconciliationWarning] = field(default_factory=list)
    created_ids: list[str] = field(default_factory=list)
    changed_ids: list[str] = field(default_factory=list)
    removed_ids: list[str] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def warn(self, code: str, message: str, item_id: str | None = None) -> None:
        logger.warning("%s: %s", code, message)
        self.warnings.append(PartialReconciliationWarning(code, message, item_id))


# =============================================================================
# HELPERS
# =============================================================================


def _build_item(data: Mapping[str, Any], model: type[BacklogItem] = BacklogItem) -> BacklogItem:
    """Validate a full field mapping into an item, as one of our errors."""
    try:
        return model.model_validate(dict(data))
    except PydanticValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(x) for x in err['loc']) or 'item'}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid item: {details}", data.get("id")) from e


def _draft_content(draft: BacklogDraft) -> dict[str, Any]:
    """Caller-set draft fields, minus anything only the engine may write.

    A field set to None counts as unset, so inherited and derived values apply.
    """
    return {
        k: v for k, v in draft.content().items() if k not in _ENGINE_FIELDS and v is not None
    }


def _check_dependencies(depends_on: Iterable[str], known_backlog_ids: set[str], item_id: str | None = None) -> None:
    unknown = [dep for dep in depends_on if dep not in known_backlog_ids]
    if unknown:
        raise ValidationError(f"Unknown dependencies: {', '.join(unknown)}", item_id)


def _require_item(items: Sequence[BacklogItem], item_id: str) -> BacklogItem:
    item = find_item(items, item_id)
    if item is None:
        raise NotFoundError(f"Backlog item not found: {item_id}", item_id)
    return item


def _require_active(item: BacklogItem, action: str) -> None:
    if not item.is_active:
        state = item.history_status.value if item.history_status else f"moved to sprint {item.moved_to_sprint}"
        raise ValidationError(f"Cannot {action} {item.label}: item is historical ({state})", item.id)


def _replace_items(items: Sequence[BacklogItem], updated: Mapping[str, BacklogItem]) -> list[BacklogItem]:
    return [updated.get(item.id, item) for item in items]


def _replace_sprint(sprints: Sequence[Sprint], sprint: Sprint) -> list[Sprint]:
    return [sprint if s.sprint_number == sprint.sprint_number else s for s in sprints]


def highest_priority(items: Iterable[BacklogItem]) -> Priority:
    """Most urgent priority among items; Medium when there are none."""
    ranked = sorted((item.priority for item in items), key=lambda p: p.rank)
    return ranked[0] if ranked else Priority.MEDIUM


# =============================================================================
# ITEM MAINTENANCE
# =============================================================================


def add_items(
    items: Sequence[BacklogItem],
    drafts: Sequence[BacklogDraft],
    today: date | None = None,
) -> TransitionResult:
    """Create new active items from drafts.

    Each draft without an explicit backlog id gets the next id, regenerated
    against the collection as it grows, so one batch never reuses an id.
    """
    today = today or date.today()
    working = list(items)
    result = TransitionResult(items=working)

    for draft in drafts:
        content = _draft_content(draft)
        backlog_id = content.pop("backlog_id", None) or next_backlog_id(working, today)
        if find_collisions([backlog_id], working):
            raise ValidationError(f"Backlog id already in use: {backlog_id}")
        _check_dependencies(content.get("depends_on") or [], {i.backlog_id for i in working})

        item = _build_item({
            "created_date": today.isoformat(),
            **content,
            "id": new_item_id(),
            "backlog_id": backlog_id,
        })
        working.append(item)
        result.created_ids.append(item.id)
        logger.info("Backlog item created %s", item.label)

    result.items = sort_items(working)
    return result


def update_item(
    items: Sequence[BacklogItem],
    item_id: str,
    changes: Mapping[str, Any],
) -> TransitionResult:
    """Apply field edits to one item. Identity and lineage fields are read-only."""
    item = _require_item(items, item_id)
    forbidden = sorted(set(changes) & (_ENGINE_FIELDS | {"backlog_id"}))
    if forbidden:
        raise ValidationError(f"Fields cannot be edited: {', '.join(forbidden)}", item_id)
    if "depends_on" in changes:
        known = {i.backlog_id for i in items if i.id != item_id}
        _check_dependencies(changes["depends_on"] or [], known, item_id)

    updated = _build_item({**item.model_dump(), **changes}, type(item))
    logger.info("Backlog item updated %s fields=%s", item.backlog_id, sorted(changes))
    return TransitionResult(
        items=sort_items(_replace_items(items, {item_id: updated})),
        changed_ids=[item_id],
    )


def delete_item(items: Sequence[BacklogItem], item_id: str) -> TransitionResult:
    """Remove an active item. Historical items stay for audit and undo."""
    item = _require_item(items, item_id)
    if not item.is_active:
        raise ValidationError(
            f"Cannot delete {item.label}: historical or moved items are kept for audit",
            item_id,
        )

    result = TransitionResult(
        items=sort_items(i for i in items if i.id != item_id),
        removed_ids=[item_id],
    )
    dependents = [i.backlog_id for i in items if item.backlog_id in i.depends_on and i.id != item_id]
    if dependents:
        result.warn(
            "W104",
            f"{item.backlog_id} deleted but still listed as a dependency of: {', '.join(dependents)}",
            item_id,
        )
    logger.info("Backlog item deleted %s", item.label)
    return result


# =============================================================================
# MOVE TO SPRINT / REVERT TO BACKLOG
# =============================================================================


def _eligible_sprint(sprints: Sequence[Sprint], sprint_number: int) -> Sprint:
    sprint = find_sprint(sprints, sprint_number)
    if sprint is None:
        raise NotFoundError(f"Sprint not found: {sprint_number}")
    if sprint.status not in ELIGIBLE_SPRINT_STATUSES:
        raise InvalidTargetError(sprint_number, sprint.status.value)
    return sprint


def clone_to_sprint_task(item: BacklogItem) -> SprintTask:
    """Fresh sprint task carrying the item's content but none of its lineage."""
    data = item.model_dump()
    data.update(
        id=new_item_id("sprint_task"),
        status=TaskStatus.TODO,
        start_date=None,
        completed_date=None,
        dev_estimated_time=item.dev_estimated_time or "",
        qa_estimated_time=item.qa_estimated_time or DEFAULT_QA_ESTIMATE,
        buffer_time=item.buffer_time or DEFAULT_BUFFER,
        moved_to_sprint=None,
        history_status=None,
        split_from_id=None,
        merge_event_id=None,
        needs_grooming=False,
        ready_for_sprint=True,
    )
    return _build_item(data, SprintTask)


def _move_one(item: BacklogItem, sprint: Sprint) -> tuple[BacklogItem, Sprint, SprintTask]:
    task = clone_to_sprint_task(item)
    planning = sprint.planning.model_copy(update={"new_tasks": (*sprint.planning.new_tasks, task)})
    moved = item.model_copy(update={
        "moved_to_sprint": sprint.sprint_number,
        "history_status": HistoryStatus.MOVE,
    })
    return moved, sprint.model_copy(update={"planning": planning}), task


def move_to_sprint(
    items: Sequence[BacklogItem],
    item_id: str,
    sprint_number: int,
    sprints: Sequence[Sprint],
) -> TransitionResult:
    """Clone an active item into a sprint plan and retire the original as Move."""
    item = _require_item(items, item_id)
    _require_active(item, "move")
    sprint = _eligible_sprint(sprints, sprint_number)

    moved, sprint, task = _move_one(item, sprint)
    logger.info("Moved %s to sprint %s as task %s", item.label, sprint_number, task.id)
    return TransitionResult(
        items=sort_items(_replace_items(items, {item_id: moved})),
        sprints=_replace_sprint(sprints, sprint),
        created_ids=[task.id],
        changed_ids=[item_id],
    )


def move_many_to_sprint(
    items: Sequence[BacklogItem],
    item_ids: Sequence[str],
    sprint_number: int,
    sprints: Sequence[Sprint],
) -> TransitionResult:
    """Move several items at once, skipping ones that are missing or retired."""
    sprint = _eligible_sprint(sprints, sprint_number)
    result = TransitionResult(items=list(items))
    updated: dict[str, BacklogItem] = {}

    for item_id in dict.fromkeys(item_ids):
        item = find_item(items, item_id)
        if item is None:
            result.warn("W102", f"Backlog item {item_id} not found, skipped", item_id)
            continue
        if not item.is_active:
            result.warn("W103", f"{item.label} already moved or historical, skipped", item_id)
            continue
        moved, sprint, task = _move_one(item, sprint)
        updated[item_id] = moved
        result.created_ids.append(task.id)
        result.changed_ids.append(item_id)

    if not updated:
        raise ValidationError(f"No active items to move to sprint {sprint_number}")

    logger.info("Moved %d item(s) to sprint %s", len(updated), sprint_number)
    result.items = sort_items(_replace_items(items, updated))
    result.sprints = _replace_sprint(sprints, sprint)
    return result


def revert_to_backlog(
    items: Sequence[BacklogItem],
    sprints: Sequence[Sprint],
    sprint_number: int,
    sprint_task_id: str,
    original_backlog_id: str | None = None,
) -> TransitionResult:
    """Remove a task from a sprint plan and restore its backlog item.

    The sprint-side removal always applies. When the original item cannot be
    found the result carries a warning instead of failing.
    """
    sprint = find_sprint(sprints, sprint_number)
    if sprint is None:
        raise NotFoundError(f"Sprint not found: {sprint_number}")

    planning = sprint.planning
    task = find_item(planning.all_tasks, sprint_task_id)
    if task is None:
        raise NotFoundError(
            f"Task {sprint_task_id} not found in sprint {sprint_number} planning",
            sprint_task_id,
        )
    planning = planning.model_copy(update={
        "new_tasks": tuple(t for t in planning.new_tasks if t.id != sprint_task_id),
        "spillover_tasks": tuple(t for t in planning.spillover_tasks if t.id != sprint_task_id),
    })
    result = TransitionResult(
        items=list(items),
        sprints=_replace_sprint(sprints, sprint.model_copy(update={"planning": planning})),
        removed_ids=[sprint_task_id],
    )

    moved = [
        i for i in items
        if i.moved_to_sprint == sprint_number and i.history_status is HistoryStatus.MOVE
    ]
    backlog_id = original_backlog_id or task.backlog_id
    original = next((i for i in moved if backlog_id and i.backlog_id == backlog_id), None)
    if original is None and task.ticket_number:
        original = next((i for i in moved if i.ticket_number == task.ticket_number), None)

    if original is None:
        result.warn(
            "W101",
            f"Task {task.label} removed from sprint {sprint_number}; "
            f"no backlog item marked as moved there matches {backlog_id or task.ticket_number}",
            sprint_task_id,
        )
        return result

    restored = original.model_copy(update={"moved_to_sprint": None, "history_status": None})
    result.items = sort_items(_replace_items(items, {original.id: restored}))
    result.changed_ids.append(original.id)
    logger.info("Reverted %s from sprint %s to backlog", original.label, sprint_number)
    return result


# =============================================================================
# SPLIT
# =============================================================================


def split_item(
    items: Sequence[BacklogItem],
    original_item_id: str,
    children: Sequence[BacklogDraft],
    today: date | None = None,
) -> TransitionResult:
    """Split an active item into children `<id>-a`, `<id>-b`, ...

    The original stays in the collection as the historical Split anchor.
    """
    if not children:
        raise ValidationError("At least one split item is required", original_item_id)
    original = _require_item(items, original_item_id)
    _require_active(original, "split")

    child_ids = [split_child_backlog_id(original.backlog_id, i) for i in range(len(children))]
    collisions = find_collisions(child_ids, items)
    if collisions:
        raise ValidationError(
            f"Split ids already in use: {', '.join(collisions)}", original_item_id
        )

    today = today or date.today()
    # Children may depend on siblings created in the same split.
    known = {i.backlog_id for i in items} | set(child_ids)
    new_children = []
    for index, (draft, backlog_id) in enumerate(zip(children, child_ids)):
        content = _draft_content(draft)
        content.pop("backlog_id", None)
        _check_dependencies(content.get("depends_on") or [], known, original_item_id)
        inherited = {
            "title": f"{original.title} ({split_suffix(index).upper()})",
            "description": original.description,
            "priority": original.priority,
            "task_type": original.task_type,
            "severity": original.severity,
            "initiator": original.initiator,
            "depends_on": list(original.depends_on),
            "created_date": today.isoformat(),
        }
        new_children.append(_build_item({
            **inherited,
            **content,
            "id": new_item_id("split"),
            "backlog_id": backlog_id,
            "ticket_number": content.get("ticket_number") or backlog_id,
            "split_from_id": original.id,
            "needs_grooming": True,
            "ready_for_sprint": False,
        }))

    anchor = original.model_copy(update={
        "history_status": HistoryStatus.SPLIT,
        "moved_to_sprint": None,
    })
    logger.info(
        "Split %s into %s", original.label, ", ".join(c.backlog_id for c in new_children)
    )
    return TransitionResult(
        items=sort_items([*_replace_items(items, {original.id: anchor}), *new_children]),
        created_ids=[c.id for c in new_children],
        changed_ids=[original.id],
    )


# =============================================================================
# MERGE
# =============================================================================


def build_merge_draft(sources: Sequence[BacklogItem]) -> BacklogDraft:
    """Pre-populated draft for merging sources, in selection order."""
    merged_ids = {s.backlog_id for s in sources}
    first = sources[0] if sources else None
    depends_on = [
        dep for s in sources for dep in s.depends_on if dep not in merged_ids
    ]
    draft: dict[str, Any] = {
        "title": "Merged: " + " + ".join(s.title or f"Item {s.backlog_id}" for s in sources),
        "description": MERGE_TEXT_SEPARATOR.join(s.description for s in sources if s.description),
        "acceptance_criteria": MERGE_TEXT_SEPARATOR.join(
            s.acceptance_criteria for s in sources if s.acceptance_criteria
        ),
        "priority": highest_priority(sources),
        "task_type": first.task_type if first else TaskType.NEW_FEATURE,
        "depends_on": list(dict.fromkeys(depends_on)),
        "story_points": None,
    }
    if first and first.initiator:
        draft["initiator"] = first.initiator
    if first and first.task_type is TaskType.BUG:
        draft["severity"] = first.severity
    return BacklogDraft(**draft)


def merge_items(
    items: Sequence[BacklogItem],
    item_ids: Sequence[str],
    merged_draft: BacklogDraft | None = None,
    today: date | None = None,
) -> TransitionResult:
    """Merge two or more active items into one new item `<first id>-m`.

    Sources are retired as Merge and share one merge_event_id with the result.
    Draft fields left unset come from build_merge_draft().
    """
    unique_ids = list(dict.fromkeys(item_ids))
    if len(unique_ids) < 2:
        raise ValidationError("At least two items must be selected for merging")

    sources = [_require_item(items, item_id) for item_id in unique_ids]
    for source in sources:
        _require_active(source, "merge")
        if source.merge_event_id:
            raise ValidationError(
                f"Cannot merge {source.label}: it is the open result of merge "
                f"{source.merge_event_id}; undo that merge first",
                source.id,
            )

    backlog_id = merge_backlog_id(sources[0].backlog_id)
    if find_collisions([backlog_id], items):
        raise ValidationError(f"Merge id already in use: {backlog_id}", sources[0].id)

    content = _draft_content(merged_draft) if merged_draft else {}
    content.pop("backlog_id", None)
    merged_ids = {s.backlog_id for s in sources}
    if content.get("depends_on"):
        content["depends_on"] = [d for d in content["depends_on"] if d not in merged_ids]
    _check_dependencies(content.get("depends_on") or [], {i.backlog_id for i in items})

    today = today or date.today()
    event_id = new_merge_event_id()
    merged = _build_item({
        **_draft_content(build_merge_draft(sources)),
        "created_date": today.isoformat(),
        **content,
        "id": new_item_id("merged"),
        "backlog_id": backlog_id,
        "ticket_number": content.get("ticket_number") or backlog_id,
        "merge_event_id": event_id,
        "needs_grooming": True,
        "ready_for_sprint": False,
    })

    retired = {
        s.id: s.model_copy(update={
            "history_status": HistoryStatus.MERGE,
            "merge_event_id": event_id,
            "moved_to_sprint": None,
        })
        for s in sources
    }
    logger.info(
        "Merged %s into %s (event %s)",
        ", ".join(s.backlog_id for s in sources), merged.backlog_id, event_id,
    )
    return TransitionResult(
        items=sort_items([*_replace_items(items, retired), merged]),
        created_ids=[merged.id],
        changed_ids=list(retired),
    )
