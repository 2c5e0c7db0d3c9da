"""Tests for backlog transitions: move, revert, split, merge and item maintenance."""

import logging

import pytest

from conftest import TODAY, make_item
from sprintlog.backlog.errors import (
    InvalidTargetError,
    NotFoundError,
    ValidationError,
)
from sprintlog.backlog.schema import (
    BacklogDraft,
    HistoryStatus,
    Priority,
    Severity,
    Sprint,
    SprintPlanning,
    SprintStatus,
    SprintTask,
    TaskStatus,
    TaskType,
)
from sprintlog.backlog.transitions import (
    DEFAULT_BUFFER,
    DEFAULT_QA_ESTIMATE,
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
from sprintlog.backlog.validate import validate_items
from sprintlog.backlog.views import active_items, find_item, find_sprint


def by_backlog_id(items, backlog_id):
    matches = [i for i in items if i.backlog_id == backlog_id]
    assert len(matches) == 1, f"expected one item with {backlog_id}"
    return matches[0]


# =============================================================================
# MOVE TO SPRINT
# =============================================================================


class TestMoveToSprint:
    """Tests for cloning an item into a sprint plan."""

    def test_move_to_planned_sprint(self, items, sprints) -> None:
        result = move_to_sprint(items, "item_3", 5, sprints)

        moved = find_item(result.items, "item_3")
        assert moved.moved_to_sprint == 5
        assert moved.history_status is HistoryStatus.MOVE
        assert moved.backlog_id == "BL-240003"

        tasks = find_sprint(result.sprints, 5).planning.new_tasks
        assert len(tasks) == 1
        task = tasks[0]
        assert isinstance(task, SprintTask)
        assert task.id != "item_3"
        assert task.backlog_id == "BL-240003"
        assert task.ticket_number == "JIRA-12"
        assert task.title == "Export report"
        assert task.status is TaskStatus.TODO
        assert task.start_date is None
        assert task.dev_estimated_time == "3d"
        assert task.qa_estimated_time == DEFAULT_QA_ESTIMATE
        assert task.buffer_time == DEFAULT_BUFFER
        assert task.history_status is None
        assert task.moved_to_sprint is None
        assert task.ready_for_sprint is True
        assert task.needs_grooming is False
        assert result.created_ids == [task.id]

    def test_other_sprints_untouched(self, items, sprints) -> None:
        result = move_to_sprint(items, "item_3", 6, sprints)
        assert find_sprint(result.sprints, 5) == find_sprint(sprints, 5)
        assert len(find_sprint(result.sprints, 6).planning.new_tasks) == 1

    def test_inherits_estimates(self, sprints) -> None:
        items = [make_item("BL-240001", qa_estimated_time="4h", buffer_time="2h")]
        result = move_to_sprint(items, "item_bl_240001", 5, sprints)
        task = find_sprint(result.sprints, 5).planning.new_tasks[0]
        assert task.qa_estimated_time == "4h"
        assert task.buffer_time == "2h"
        assert task.dev_estimated_time == ""

    def test_inputs_not_modified(self, items, sprints) -> None:
        items_before, sprints_before = list(items), list(sprints)
        move_to_sprint(items, "item_3", 5, sprints)
        assert items == items_before
        assert sprints == sprints_before
        assert find_item(items, "item_3").is_active

    def test_result_shares_no_mutable_state_with_input(self, items, sprints) -> None:
        result = move_to_sprint(items, "item_7", 5, sprints)

        moved = find_item(result.items, "item_7")
        task = find_sprint(result.sprints, 5).planning.new_tasks[0]
        for value in (moved.depends_on, task.depends_on, find_sprint(result.sprints, 5).planning.new_tasks):
            with pytest.raises(AttributeError):
                value.append("BL-249999")
        assert find_item(items, "item_7").depends_on == ("BL-240001",)
        assert find_sprint(sprints, 5).planning.new_tasks == ()

    def test_completed_sprint_rejected(self, items, sprints) -> None:
        with pytest.raises(InvalidTargetError) as exc:
            move_to_sprint(items, "item_3", 4, sprints)
        assert exc.value.sprint_number == 4
        assert exc.value.status == "Completed"

    def test_unknown_sprint(self, items, sprints) -> None:
        with pytest.raises(NotFoundError):
            move_to_sprint(items, "item_3", 42, sprints)

    def test_unknown_item(self, items, sprints) -> None:
        with pytest.raises(NotFoundError) as exc:
            move_to_sprint(items, "missing", 5, sprints)
        assert exc.value.item_id == "missing"

    def test_already_moved_item_rejected(self, items, sprints) -> None:
        result = move_to_sprint(items, "item_3", 5, sprints)
        with pytest.raises(ValidationError):
            move_to_sprint(result.items, "item_3", 6, result.sprints)

    def test_logs_transition(self, items, sprints, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="sprintlog.backlog.transitions"):
            move_to_sprint(items, "item_3", 5, sprints)
        assert "Moved BL-240003" in caplog.text


class TestMoveManyToSprint:
    """Tests for moving a selection of items."""

    def test_moves_active_and_skips_the_rest(self, items, sprints) -> None:
        first = move_to_sprint(items, "item_2", 6, sprints)
        result = move_many_to_sprint(first.items, ["item_1", "missing", "item_2", "item_3"], 5, first.sprints)

        assert [w.code for w in result.warnings] == ["W102", "W103"]
        assert find_item(result.items, "item_1").moved_to_sprint == 5
        assert find_item(result.items, "item_3").moved_to_sprint == 5
        assert find_item(result.items, "item_2").moved_to_sprint == 6
        tasks = find_sprint(result.sprints, 5).planning.new_tasks
        assert [t.backlog_id for t in tasks] == ["BL-240001", "BL-240003"]

    def test_nothing_to_move(self, items, sprints) -> None:
        with pytest.raises(ValidationError):
            move_many_to_sprint(items, ["missing"], 5, sprints)

    def test_target_checked_first(self, items, sprints) -> None:
        with pytest.raises(InvalidTargetError):
            move_many_to_sprint(items, ["item_1"], 4, sprints)


# =============================================================================
# REVERT TO BACKLOG
# =============================================================================


class TestRevertToBacklog:
    """Tests for taking a task back out of a sprint."""

    def test_move_then_revert_restores_item(self, items, sprints) -> None:
        moved = move_to_sprint(items, "item_3", 5, sprints)
        task = find_sprint(moved.sprints, 5).planning.new_tasks[0]

        result = revert_to_backlog(moved.items, moved.sprints, 5, task.id, "BL-240003")

        assert find_item(result.items, "item_3") == find_item(items, "item_3")
        assert find_sprint(result.sprints, 5).planning.new_tasks == ()
        assert result.warnings == []
        assert result.removed_ids == [task.id]
        assert result.changed_ids == ["item_3"]

    def test_defaults_to_task_backlog_id(self, items, sprints) -> None:
        moved = move_to_sprint(items, "item_1", 6, sprints)
        task = find_sprint(moved.sprints, 6).planning.new_tasks[0]
        result = revert_to_backlog(moved.items, moved.sprints, 6, task.id)
        assert find_item(result.items, "item_1").is_active

    def test_spillover_task(self) -> None:
        items = [make_item("BL-240003", history_status=HistoryStatus.MOVE, moved_to_sprint=6)]
        task = SprintTask(id="task_1", backlog_id="BL-240003")
        sprints = [Sprint(sprint_number=6, status=SprintStatus.ACTIVE,
                          planning=SprintPlanning(spillover_tasks=[task]))]

        result = revert_to_backlog(items, sprints, 6, "task_1", "BL-240003")

        assert result.items[0].is_active
        assert result.sprints[0].planning.spillover_tasks == ()

    def test_ticket_number_fallback(self) -> None:
        items = [make_item("BL-240003", ticket_number="JIRA-12",
                           history_status=HistoryStatus.MOVE, moved_to_sprint=5)]
        task = SprintTask(id="task_1", backlog_id="BL-OTHER", ticket_number="JIRA-12")
        sprints = [Sprint(sprint_number=5, planning=SprintPlanning(new_tasks=[task]))]

        result = revert_to_backlog(items, sprints, 5, "task_1")

        assert result.items[0].is_active
        assert result.warnings == []

    def test_only_items_moved_to_that_sprint_match(self) -> None:
        items = [make_item("BL-240003", history_status=HistoryStatus.MOVE, moved_to_sprint=6)]
        task = SprintTask(id="task_1", backlog_id="BL-240003")
        sprints = [Sprint(sprint_number=5, planning=SprintPlanning(new_tasks=[task]))]

        result = revert_to_backlog(items, sprints, 5, "task_1", "BL-240003")

        assert result.items[0].moved_to_sprint == 6
        assert [w.code for w in result.warnings] == ["W101"]

    def test_missing_original_still_removes_task(self, sprints) -> None:
        task = SprintTask(id="task_1", backlog_id="BL-240003")
        sprints = [Sprint(sprint_number=5, planning=SprintPlanning(new_tasks=[task]))]

        result = revert_to_backlog([], sprints, 5, "task_1", "BL-240003")

        assert result.sprints[0].planning.new_tasks == ()
        assert len(result.warnings) == 1
        assert result.warnings[0].item_id == "task_1"
        assert "BL-240003" in str(result.warnings[0])

    def test_unknown_task(self, items, sprints) -> None:
        with pytest.raises(NotFoundError):
            revert_to_backlog(items, sprints, 5, "task_missing")

    def test_unknown_sprint(self, items, sprints) -> None:
        with pytest.raises(NotFoundError):
            revert_to_backlog(items, sprints, 42, "task_1")


# =============================================================================
# SPLIT
# =============================================================================


class TestSplitItem:
    """Tests for splitting an item into children."""

    def test_split_into_two(self, items) -> None:
        result = split_item(
            items, "item_7",
            [BacklogDraft(title="Dashboard API"), BacklogDraft(title="Dashboard UI")],
            TODAY,
        )

        anchor = find_item(result.items, "item_7")
        assert anchor.backlog_id == "BL-240007"
        assert anchor.history_status is HistoryStatus.SPLIT
        assert anchor.moved_to_sprint is None

        child_a = by_backlog_id(result.items, "BL-240007-a")
        child_b = by_backlog_id(result.items, "BL-240007-b")
        assert child_a.title == "Dashboard API"
        assert child_b.title == "Dashboard UI"
        for child in (child_a, child_b):
            assert child.needs_grooming is True
            assert child.ready_for_sprint is False
            assert child.split_from_id == "item_7"
            assert child.ticket_number == child.backlog_id
            assert child.priority is Priority.MEDIUM
            assert child.created_date == "2024-03-01"
        assert result.created_ids == [child_a.id, child_b.id]
        assert len(result.items) == len(items) + 2

    def test_children_inherit_unset_fields(self, items) -> None:
        result = split_item(items, "item_7", [BacklogDraft(), BacklogDraft(priority=Priority.HIGHEST)], TODAY)
        child_a = by_backlog_id(result.items, "BL-240007-a")
        child_b = by_backlog_id(result.items, "BL-240007-b")
        assert child_a.title == "Sprint dashboard (A)"
        assert child_b.title == "Sprint dashboard (B)"
        assert child_a.depends_on == ("BL-240001",)
        assert child_a.initiator == "pm"
        assert child_b.priority is Priority.HIGHEST

    def test_none_fields_fall_back_to_inherited(self, items) -> None:
        result = split_item(items, "item_7", [BacklogDraft(title=None, priority=None), BacklogDraft()], TODAY)
        child_a = by_backlog_id(result.items, "BL-240007-a")
        assert child_a.title == "Sprint dashboard (A)"
        assert child_a.priority is Priority.MEDIUM
        assert child_a.depends_on == ("BL-240001",)

    def test_child_may_depend_on_sibling(self, items) -> None:
        children = [BacklogDraft(title="API"), BacklogDraft(title="UI", depends_on=["BL-240007-a"])]
        result = split_item(items, "item_7", children, TODAY)
        assert by_backlog_id(result.items, "BL-240007-b").depends_on == ("BL-240007-a",)
        assert validate_items(result.items).is_valid

    def test_split_bug_into_improvement_drops_severity(self, items) -> None:
        result = split_item(items, "item_9", [BacklogDraft(task_type=TaskType.IMPROVEMENT), BacklogDraft()], TODAY)
        assert by_backlog_id(result.items, "BL-240009-a").severity is None
        assert by_backlog_id(result.items, "BL-240009-b").severity is Severity.CRITICAL

    def test_child_bug_needs_severity(self, items) -> None:
        with pytest.raises(ValidationError):
            split_item(items, "item_7", [BacklogDraft(task_type=TaskType.BUG)], TODAY)

    def test_draft_cannot_set_lineage(self, items) -> None:
        draft = BacklogDraft(title="x", backlog_id="BL-999999", history_status="Merge")
        result = split_item(items, "item_7", [draft], TODAY)
        child = by_backlog_id(result.items, "BL-240007-a")
        assert child.history_status is None
        assert child.is_active

    def test_no_children(self, items) -> None:
        with pytest.raises(ValidationError):
            split_item(items, "item_7", [], TODAY)

    def test_unknown_item(self, items) -> None:
        with pytest.raises(NotFoundError):
            split_item(items, "missing", [BacklogDraft()], TODAY)

    def test_historical_item_rejected(self, items) -> None:
        result = split_item(items, "item_7", [BacklogDraft()], TODAY)
        with pytest.raises(ValidationError):
            split_item(result.items, "item_7", [BacklogDraft()], TODAY)

    def test_collision_with_existing_id(self, items) -> None:
        items = items + [make_item("BL-240007-b", title="Left over")]
        before = list(items)
        with pytest.raises(ValidationError) as exc:
            split_item(items, "item_7", [BacklogDraft(), BacklogDraft()], TODAY)
        assert "BL-240007-b" in exc.value.message
        assert items == before

    def test_split_child_can_be_split_again(self, items) -> None:
        result = split_item(items, "item_7", [BacklogDraft(), BacklogDraft()], TODAY)
        child = by_backlog_id(result.items, "BL-240007-a")
        result = split_item(result.items, child.id, [BacklogDraft(), BacklogDraft()], TODAY)
        assert {i.backlog_id for i in active_items(result.items)} >= {"BL-240007-a-a", "BL-240007-a-b", "BL-240007-b"}
        assert validate_items(result.items).is_valid


# =============================================================================
# MERGE
# =============================================================================


class TestMergeItems:
    """Tests for merging items into one."""

    def test_merge_inherits_most_urgent_priority(self, items) -> None:
        result = merge_items(items, ["item_1", "item_2"], BacklogDraft(title="Auth pages"), TODAY)

        merged = by_backlog_id(result.items, "BL-240001-m")
        assert merged.title == "Auth pages"
        assert merged.priority is Priority.HIGH
        assert merged.needs_grooming is True
        assert merged.ready_for_sprint is False
        assert merged.merge_event_id
        assert merged.history_status is None

        for source_id in ("item_1", "item_2"):
            source = find_item(result.items, source_id)
            assert source.history_status is HistoryStatus.MERGE
            assert source.merge_event_id == merged.merge_event_id
            assert source.moved_to_sprint is None
        assert result.created_ids == [merged.id]
        assert result.changed_ids == ["item_1", "item_2"]

    def test_explicit_priority_wins(self, items) -> None:
        result = merge_items(items, ["item_1", "item_2"], BacklogDraft(priority=Priority.LOWEST), TODAY)
        assert by_backlog_id(result.items, "BL-240001-m").priority is Priority.LOWEST

    def test_none_priority_uses_most_urgent_source(self, items) -> None:
        result = merge_items(items, ["item_1", "item_2"], BacklogDraft(title="x", priority=None), TODAY)
        merged = by_backlog_id(result.items, "BL-240001-m")
        assert merged.title == "x"
        assert merged.priority is Priority.HIGH

    def test_default_draft(self, items) -> None:
        result = merge_items(items, ["item_2", "item_1"], today=TODAY)
        merged = by_backlog_id(result.items, "BL-240002-m")
        assert merged.title == "Merged: Signup page + Login page"
        assert merged.description == "Self-service signup\n\n---\n\nEmail and password login"
        assert merged.initiator == "sales"
        assert merged.story_points is None

    def test_dependencies_on_merged_items_dropped(self, items) -> None:
        result = merge_items(items, ["item_7", "item_1"], today=TODAY)
        assert by_backlog_id(result.items, "BL-240007-m").depends_on == ()

    def test_fewer_than_two_items(self, items) -> None:
        with pytest.raises(ValidationError):
            merge_items(items, ["item_1"], today=TODAY)
        with pytest.raises(ValidationError):
            merge_items(items, ["item_1", "item_1"], today=TODAY)

    def test_unknown_item(self, items) -> None:
        with pytest.raises(NotFoundError):
            merge_items(items, ["item_1", "missing"], today=TODAY)

    def test_historical_item_rejected(self, items, sprints) -> None:
        moved = move_to_sprint(items, "item_2", 5, sprints)
        before = list(moved.items)
        with pytest.raises(ValidationError):
            merge_items(moved.items, ["item_1", "item_2"], today=TODAY)
        assert moved.items == before

    def test_open_merge_result_cannot_be_merged_again(self, items) -> None:
        result = merge_items(items, ["item_1", "item_2"], today=TODAY)
        merged = by_backlog_id(result.items, "BL-240001-m")
        with pytest.raises(ValidationError):
            merge_items(result.items, [merged.id, "item_3"], today=TODAY)

    def test_bug_draft_keeps_severity(self, items) -> None:
        result = merge_items(items, ["item_9", "item_3"], today=TODAY)
        merged = by_backlog_id(result.items, "BL-240009-m")
        assert merged.task_type is TaskType.BUG
        assert merged.severity is Severity.CRITICAL

    def test_merged_collection_is_valid(self, items) -> None:
        result = merge_items(items, ["item_1", "item_2", "item_3"], today=TODAY)
        assert validate_items(result.items).is_valid


class TestBuildMergeDraft:
    """Tests for merge draft pre-population."""

    def test_prepopulates_from_sources(self, items) -> None:
        sources = [find_item(items, "item_1"), find_item(items, "item_7")]
        draft = build_merge_draft(sources)
        assert draft.title == "Merged: Login page + Sprint dashboard"
        assert draft.priority is Priority.HIGH
        assert draft.acceptance_criteria == "User can log in"
        assert draft.depends_on == []
        assert draft.task_type is TaskType.NEW_FEATURE

    def test_untitled_source(self) -> None:
        draft = build_merge_draft([make_item("BL-240001"), make_item("BL-240002", title="B")])
        assert draft.title == "Merged: Item BL-240001 + B"


# =============================================================================
# ITEM MAINTENANCE
# =============================================================================


class TestAddItems:
    """Tests for creating new backlog items."""

    def test_ids_regenerated_per_draft(self, items) -> None:
        result = add_items(items, [BacklogDraft(title="One"), BacklogDraft(title="Two")], TODAY)
        assert by_backlog_id(result.items, "BL-240010").title == "One"
        assert by_backlog_id(result.items, "BL-240011").title == "Two"
        assert len(result.created_ids) == 2
        assert by_backlog_id(result.items, "BL-240010").created_date == "2024-03-01"

    def test_explicit_backlog_id(self, items) -> None:
        result = add_items(items, [BacklogDraft(backlog_id="BL-240050")], TODAY)
        assert by_backlog_id(result.items, "BL-240050").is_active

    def test_colliding_backlog_id(self, items) -> None:
        with pytest.raises(ValidationError):
            add_items(items, [BacklogDraft(backlog_id="BL-240003")], TODAY)

    def test_unknown_dependency(self, items) -> None:
        with pytest.raises(ValidationError):
            add_items(items, [BacklogDraft(depends_on=["BL-249999"])], TODAY)

    def test_dependency_on_earlier_draft_in_batch(self, items) -> None:
        result = add_items(items, [BacklogDraft(), BacklogDraft(depends_on=["BL-240010"])], TODAY)
        assert by_backlog_id(result.items, "BL-240011").depends_on == ("BL-240010",)

    def test_bug_requires_severity(self, items) -> None:
        with pytest.raises(ValidationError):
            add_items(items, [BacklogDraft(task_type=TaskType.BUG)], TODAY)

    def test_lineage_fields_ignored(self, items) -> None:
        result = add_items(items, [BacklogDraft(history_status="Split", moved_to_sprint=3)], TODAY)
        assert by_backlog_id(result.items, "BL-240010").is_active


class TestUpdateItem:
    """Tests for field edits."""

    def test_updates_fields(self, items) -> None:
        result = update_item(items, "item_1", {"title": "Login", "story_points": 3})
        item = find_item(result.items, "item_1")
        assert item.title == "Login"
        assert item.story_points == 3
        assert item.priority is Priority.HIGH

    def test_type_change_clears_severity(self, items) -> None:
        result = update_item(items, "item_9", {"task_type": "Improvement"})
        assert find_item(result.items, "item_9").severity is None

    @pytest.mark.parametrize("field", ["id", "backlog_id", "history_status", "moved_to_sprint",
                                       "split_from_id", "merge_event_id"])
    def test_read_only_fields(self, items, field) -> None:
        with pytest.raises(ValidationError):
            update_item(items, "item_1", {field: "x"})

    def test_invalid_value(self, items) -> None:
        with pytest.raises(ValidationError):
            update_item(items, "item_1", {"story_points": -1})

    def test_unknown_dependency(self, items) -> None:
        with pytest.raises(ValidationError):
            update_item(items, "item_1", {"depends_on": ["BL-249999"]})

    def test_unknown_item(self, items) -> None:
        with pytest.raises(NotFoundError):
            update_item(items, "missing", {"title": "x"})


class TestDeleteItem:
    """Tests for deleting active items."""

    def test_deletes_active_item(self, items) -> None:
        result = delete_item(items, "item_2")
        assert find_item(result.items, "item_2") is None
        assert result.removed_ids == ["item_2"]
        assert result.warnings == []

    def test_historical_item_kept(self, items) -> None:
        result = split_item(items, "item_7", [BacklogDraft()], TODAY)
        with pytest.raises(ValidationError):
            delete_item(result.items, "item_7")

    def test_warns_about_dependents(self, items) -> None:
        result = delete_item(items, "item_1")
        assert [w.code for w in result.warnings] == ["W104"]
        assert "BL-240007" in result.warnings[0].message

    def test_unknown_item(self, items) -> None:
        with pytest.raises(NotFoundError):
            delete_item(items, "missing")
