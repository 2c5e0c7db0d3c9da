"""
Projections of the item collection and the display sort policy.

Every projection is a plain filter over field predicates, recomputed on each
call. Nothing here is cached, so the backlog, grooming, history and sprint
planning views can never disagree about the same collection.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TypeVar

from sprintlog.backlog.schema import BacklogItem, Sprint, SprintStatus

ItemT = TypeVar("ItemT", bound=BacklogItem)

ELIGIBLE_SPRINT_STATUSES = frozenset({SprintStatus.ACTIVE, SprintStatus.PLANNED})


# =============================================================================
# PROJECTIONS
# =============================================================================


def active_items(items: Iterable[BacklogItem]) -> list[BacklogItem]:
    """Items shown in the backlog: not moved to a sprint, not retired."""
    return [item for item in items if item.is_active]


def groomable_items(items: Iterable[BacklogItem]) -> list[BacklogItem]:
    return [item for item in items if item.is_active and item.needs_grooming]


def merge_candidates(items: Iterable[BacklogItem]) -> list[BacklogItem]:
    """Items that may be selected for a merge. Historical items never are."""
    return active_items(items)


def sprint_eligible_items(items: Iterable[BacklogItem], ready_only: bool = False) -> list[BacklogItem]:
    """Items that may be pulled into a sprint plan."""
    return [
        item for item in items
        if item.is_active and (item.ready_for_sprint or not ready_only)
    ]


def history_items(items: Iterable[BacklogItem]) -> list[BacklogItem]:
    return [item for item in items if item.is_historical]


def eligible_sprints(sprints: Iterable[Sprint]) -> list[Sprint]:
    """Sprints that accept new items, lowest sprint number first."""
    return sorted(
        (s for s in sprints if s.status in ELIGIBLE_SPRINT_STATUSES),
        key=lambda s: s.sprint_number,
    )


# =============================================================================
# LOOKUPS
# =============================================================================


def find_item(items: Iterable[ItemT], item_id: str) -> ItemT | None:
    return next((item for item in items if item.id == item_id), None)


def find_by_backlog_id(items: Iterable[BacklogItem], backlog_id: str) -> list[BacklogItem]:
    """All items carrying a backlog id. Active ids are unique, retired ones may repeat."""
    return [item for item in items if item.backlog_id == backlog_id]


def find_sprint(sprints: Iterable[Sprint], sprint_number: int) -> Sprint | None:
    return next((s for s in sprints if s.sprint_number == sprint_number), None)


# =============================================================================
# SORT POLICY
# =============================================================================


def _priority_key(item: BacklogItem) -> tuple[int, str]:
    return item.priority.rank, item.backlog_id or ""


def sort_items(items: Iterable[ItemT]) -> list[ItemT]:
    """Most urgent first, then backlog id ascending."""
    return sorted(items, key=_priority_key)


def sort_history(items: Sequence[BacklogItem]) -> list[BacklogItem]:
    """History view order: status name, sprint moved to (unmoved last), priority."""

    def key(item: BacklogItem) -> tuple:
        status = item.history_status.value if item.history_status else "~"
        moved = item.moved_to_sprint
        return (
            status,
            moved is None,
            moved if moved is not None else 0,
            *_priority_key(item),
        )

    return sorted(items, key=key)
