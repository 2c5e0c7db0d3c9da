"""Tests for item projections and the sort policy."""

from conftest import TODAY, make_item
from sprintlog.backlog.schema import BacklogDraft, HistoryStatus, Priority
from sprintlog.backlog.transitions import merge_items, move_to_sprint, split_item
from sprintlog.backlog.views import (
    active_items,
    eligible_sprints,
    find_by_backlog_id,
    find_item,
    find_sprint,
    groomable_items,
    history_items,
    merge_candidates,
    sort_history,
    sort_items,
    sprint_eligible_items,
)


def ids(items):
    return [item.backlog_id for item in items]


class TestProjections:
    """Tests for active, groomable, history and sprint-eligible views."""

    def test_active_excludes_moved_and_retired(self) -> None:
        items = [
            make_item("BL-240001"),
            make_item("BL-240002", moved_to_sprint=5, history_status=HistoryStatus.MOVE),
            make_item("BL-240003", history_status=HistoryStatus.SPLIT),
            make_item("BL-240004", moved_to_sprint=5),
        ]
        assert ids(active_items(items)) == ["BL-240001"]

    def test_groomable_needs_grooming_and_active(self) -> None:
        items = [
            make_item("BL-240001", needs_grooming=True),
            make_item("BL-240002"),
            make_item("BL-240003", needs_grooming=True, history_status=HistoryStatus.MERGE, merge_event_id="e"),
        ]
        assert ids(groomable_items(items)) == ["BL-240001"]

    def test_merge_candidates_are_active_only(self) -> None:
        items = [make_item("BL-240001"), make_item("BL-240002", history_status=HistoryStatus.SPLIT)]
        assert ids(merge_candidates(items)) == ["BL-240001"]

    def test_sprint_eligible_ready_only(self, items) -> None:
        assert len(sprint_eligible_items(items)) == len(items)
        assert ids(sprint_eligible_items(items, ready_only=True)) == ["BL-240003"]

    def test_history(self) -> None:
        items = [make_item("BL-240001"), make_item("BL-240002", history_status=HistoryStatus.SPLIT)]
        assert ids(history_items(items)) == ["BL-240002"]

    def test_eligible_sprints_sorted(self, sprints) -> None:
        assert [s.sprint_number for s in eligible_sprints(sprints)] == [5, 6]

    def test_active_view_never_shows_history_after_transitions(self, items, sprints) -> None:
        result = split_item(items, "item_7", [BacklogDraft(), BacklogDraft()], TODAY)
        result = merge_items(result.items, ["item_1", "item_2"], today=TODAY)
        result = move_to_sprint(result.items, "item_3", 5, sprints)
        active = active_items(result.items)
        assert all(item.history_status is None for item in active)
        assert set(ids(active)) == {"BL-240007-a", "BL-240007-b", "BL-240001-m", "BL-240009"}


class TestLookups:
    """Tests for id lookups."""

    def test_find_item(self, items) -> None:
        assert find_item(items, "item_3").backlog_id == "BL-240003"
        assert find_item(items, "nope") is None

    def test_find_by_backlog_id_returns_all(self) -> None:
        items = [
            make_item("BL-240001", id="a", history_status=HistoryStatus.MERGE, merge_event_id="e"),
            make_item("BL-240001", id="b"),
        ]
        assert [i.id for i in find_by_backlog_id(items, "BL-240001")] == ["a", "b"]

    def test_find_sprint(self, sprints) -> None:
        assert find_sprint(sprints, 6).sprint_number == 6
        assert find_sprint(sprints, 99) is None


class TestSortPolicy:
    """Tests for display ordering."""

    def test_priority_then_backlog_id(self) -> None:
        items = [
            make_item("BL-240005", priority=Priority.LOW),
            make_item("BL-240002", priority=Priority.MEDIUM),
            make_item("BL-240001", priority=Priority.MEDIUM),
            make_item("BL-240009", priority=Priority.HIGHEST),
            make_item("BL-240003", priority=Priority.LOWEST),
        ]
        assert ids(sort_items(items)) == [
            "BL-240009", "BL-240001", "BL-240002", "BL-240005", "BL-240003",
        ]

    def test_sort_does_not_modify_input(self, items) -> None:
        before = list(items)
        sort_items(items)
        assert items == before

    def test_history_order(self) -> None:
        items = [
            make_item("BL-240001", history_status=HistoryStatus.SPLIT),
            make_item("BL-240002", history_status=HistoryStatus.MOVE, moved_to_sprint=5),
            make_item("BL-240003", history_status=HistoryStatus.MOVE, moved_to_sprint=3, priority=Priority.LOW),
            make_item("BL-240004", history_status=HistoryStatus.MOVE, moved_to_sprint=3, priority=Priority.HIGH),
            make_item("BL-240005", history_status=HistoryStatus.MERGE, merge_event_id="e"),
        ]
        assert ids(sort_history(items)) == [
            "BL-240005", "BL-240004", "BL-240003", "BL-240002", "BL-240001",
        ]
