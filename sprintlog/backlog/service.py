"""
Caller-facing backlog operations.

Each call loads the current project, applies one pure transition, hands the
complete new project to the store, and returns the TransitionResult. Nothing
is saved when the transition raises.

Usage:
    from sprintlog.backlog import BacklogService, YamlProjectStore

    service = BacklogService(YamlProjectStore("project.yml"))
    result = service.move_to_sprint("item_3f9c2a1b7d40", 5)
    for warning in result.warnings:
        print(warning)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any, Callable

from sprintlog.backlog import transitions
from sprintlog.backlog.schema import BacklogDraft, Project
from sprintlog.backlog.store import ProjectStore
from sprintlog.backlog.transitions import TransitionResult
from sprintlog.backlog.undo import undo as undo_transition


class BacklogService:
    """Backlog transitions bound to a project store."""

    def __init__(self, store: ProjectStore, today: Callable[[], date] = date.today):
        self.store = store
        self.today = today

    def _apply(self, transition: Callable[[Project], TransitionResult]) -> TransitionResult:
        project = self.store.load()
        result = transition(project)
        update: dict[str, Any] = {"backlog": result.items}
        if result.sprints is not None:
            update["sprints"] = result.sprints
        self.store.replace(project.model_copy(update=update))
        return result

    def move_to_sprint(self, item_id: str, sprint_number: int) -> TransitionResult:
        return self._apply(
            lambda p: transitions.move_to_sprint(p.backlog, item_id, sprint_number, p.sprints)
        )

    def move_many_to_sprint(self, item_ids: Sequence[str], sprint_number: int) -> TransitionResult:
        return self._apply(
            lambda p: transitions.move_many_to_sprint(p.backlog, item_ids, sprint_number, p.sprints)
        )

    def revert_to_backlog(
        self, sprint_number: int, task_id: str, backlog_id: str | None = None
    ) -> TransitionResult:
        return self._apply(
            lambda p: transitions.revert_to_backlog(p.backlog, p.sprints, sprint_number, task_id, backlog_id)
        )

    def split(self, item_id: str, children: Sequence[BacklogDraft]) -> TransitionResult:
        return self._apply(
            lambda p: transitions.split_item(p.backlog, item_id, children, self.today())
        )

    def merge(self, item_ids: Sequence[str], merged_draft: BacklogDraft | None = None) -> TransitionResult:
        return self._apply(
            lambda p: transitions.merge_items(p.backlog, item_ids, merged_draft, self.today())
        )

    def undo(self, trigger_item_id: str) -> TransitionResult:
        return self._apply(lambda p: undo_transition(p.backlog, trigger_item_id))

    def add_items(self, drafts: Sequence[BacklogDraft]) -> TransitionResult:
        return self._apply(lambda p: transitions.add_items(p.backlog, drafts, self.today()))

    def update_item(self, item_id: str, changes: Mapping[str, Any]) -> TransitionResult:
        return self._apply(lambda p: transitions.update_item(p.backlog, item_id, changes))

    def delete_item(self, item_id: str) -> TransitionResult:
        return self._apply(lambda p: transitions.delete_item(p.backlog, item_id))
