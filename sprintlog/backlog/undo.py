"""
Undo resolver for Split and Merge.

Undo is rebuilt from the lineage fields stored on the items themselves
(history_status, split_from_id, merge_event_id); there is no event log.
Any item of a Split or Merge can trigger the undo: the anchor, one of the
merge originals, or one of the byproducts.

Resolution order:
    1. Split anchor       history_status == Split
    2. Merge original     history_status == Merge
    3. Split child        split_from_id set, still active
    4. Merge result       merge_event_id set, history_status unset
    5. anything else      NotEligibleError

Undo is best-effort: a missing byproduct or original is reported as a
PartialReconciliationWarning and everything that can be restored is.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from sprintlog.backlog.errors import NotEligibleError, NotFoundError, PartialReconciliationWarning
from sprintlog.backlog.schema import BacklogItem, HistoryStatus
from sprintlog.backlog.transitions import TransitionResult
from sprintlog.backlog.views import find_item, sort_items

logger = logging.getLogger(__name__)


@dataclass
class UndoPlan:
    """What an undo will restore and remove, resolved from one trigger item."""

    kind: HistoryStatus
    trigger_id: str
    anchors: list[BacklogItem] = field(default_factory=list)
    byproducts: list[BacklogItem] = field(default_factory=list)
    merge_event_id: str | None = None
    warnings: list[PartialReconciliationWarning] = field(default_factory=list)

    def restored(self) -> list[BacklogItem]:
        """Anchors with the lineage written by the undone transition cleared."""
        update: dict = {"history_status": None, "moved_to_sprint": None}
        if self.kind is HistoryStatus.MERGE:
            update["merge_event_id"] = None
        return [anchor.model_copy(update=update) for anchor in self.anchors]


def _check_byproducts(byproducts: Sequence[BacklogItem], trigger_id: str) -> None:
    retired = [b for b in byproducts if not b.is_active]
    if retired:
        labels = ", ".join(
            f"{b.label} [{b.history_status.value}]" for b in retired
        )
        raise NotEligibleError(
            f"Cannot undo: {labels} has since been retired; undo that change first",
            trigger_id,
        )


def _split_plan(items: Sequence[BacklogItem], anchor: BacklogItem, trigger_id: str) -> UndoPlan:
    children = [i for i in items if i.split_from_id == anchor.id]
    _check_byproducts(children, trigger_id)
    plan = UndoPlan(HistoryStatus.SPLIT, trigger_id, anchors=[anchor], byproducts=children)
    if not children:
        plan.warnings.append(PartialReconciliationWarning(
            "W201", f"No split items of {anchor.label} found; restoring the original only", anchor.id,
        ))
    return plan


def _orphan_split_plan(items: Sequence[BacklogItem], child: BacklogItem) -> UndoPlan:
    siblings = [i for i in items if i.split_from_id == child.split_from_id]
    _check_byproducts(siblings, child.id)
    plan = UndoPlan(HistoryStatus.SPLIT, child.id, byproducts=siblings)
    plan.warnings.append(PartialReconciliationWarning(
        "W202",
        f"Original item {child.split_from_id} of {child.label} not found; removing split items only",
        child.id,
    ))
    return plan


def _merge_plan(items: Sequence[BacklogItem], event_id: str, trigger_id: str) -> UndoPlan:
    group = [i for i in items if i.merge_event_id == event_id]
    originals = [i for i in group if i.history_status is HistoryStatus.MERGE]
    byproducts = [i for i in group if i.history_status is not HistoryStatus.MERGE]
    if not originals:
        raise NotEligibleError(f"Merge {event_id} has no original items left to restore", trigger_id)
    _check_byproducts(byproducts, trigger_id)

    plan = UndoPlan(
        HistoryStatus.MERGE, trigger_id,
        anchors=originals, byproducts=byproducts, merge_event_id=event_id,
    )
    if not byproducts:
        plan.warnings.append(PartialReconciliationWarning(
            "W201", f"Merged item of {event_id} not found; restoring originals only", trigger_id,
        ))
    if len(originals) < 2:
        plan.warnings.append(PartialReconciliationWarning(
            "W202", f"Only one original item of {event_id} found", trigger_id,
        ))
    return plan


def resolve_undo(items: Sequence[BacklogItem], trigger_item_id: str) -> UndoPlan:
    """Work out which transition the trigger belongs to and how to invert it.

    Raises:
        NotFoundError: trigger item does not exist
        NotEligibleError: trigger has no undoable lineage, or a byproduct was
            retired by a later transition
    """
    trigger = find_item(items, trigger_item_id)
    if trigger is None:
        raise NotFoundError(f"Backlog item not found: {trigger_item_id}", trigger_item_id)

    if trigger.history_status is HistoryStatus.SPLIT:
        return _split_plan(items, trigger, trigger.id)

    if trigger.history_status is HistoryStatus.MERGE and trigger.merge_event_id:
        return _merge_plan(items, trigger.merge_event_id, trigger.id)

    if trigger.split_from_id and not trigger.is_historical:
        parent = find_item(items, trigger.split_from_id)
        if parent is None:
            return _orphan_split_plan(items, trigger)
        if parent.history_status is not HistoryStatus.SPLIT:
            raise NotEligibleError(
                f"Original item {parent.label} of {trigger.label} is not marked as split",
                trigger.id,
            )
        return _split_plan(items, parent, trigger.id)

    if trigger.merge_event_id and trigger.history_status is None:
        return _merge_plan(items, trigger.merge_event_id, trigger.id)

    raise NotEligibleError(f"{trigger.label} has no split or merge to undo", trigger.id)


def undo(items: Sequence[BacklogItem], trigger_item_id: str) -> TransitionResult:
    """Invert the Split or Merge the trigger item belongs to."""
    plan = resolve_undo(items, trigger_item_id)

    removed = {b.id for b in plan.byproducts}
    restored = {a.id: a for a in plan.restored()}
    result = TransitionResult(
        items=sort_items(restored.get(i.id, i) for i in items if i.id not in removed),
        changed_ids=list(restored),
        removed_ids=[b.id for b in plan.byproducts],
    )
    for warning in plan.warnings:
        result.warn(warning.code, warning.message, warning.item_id)

    logger.info(
        "Undid %s: restored %s, removed %s",
        plan.kind.value,
        ", ".join(a.backlog_id for a in plan.anchors) or "nothing",
        ", ".join(b.backlog_id for b in plan.byproducts) or "nothing",
    )
    return result
