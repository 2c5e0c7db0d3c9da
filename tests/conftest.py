"""Shared fixtures: a small backlog and a set of sprints in every status."""

from __future__ import annotations

from datetime import date

import pytest

from sprintlog.backlog.schema import (
    BacklogItem,
    Priority,
    Project,
    Severity,
    Sprint,
    SprintStatus,
    TaskType,
)

TODAY = date(2024, 3, 1)


def make_item(backlog_id: str, **fields) -> BacklogItem:
    """Item whose id is derived from its backlog id unless given."""
    item_id = fields.pop("id", "item_" + backlog_id.lower().replace("-", "_"))
    return BacklogItem(id=item_id, backlog_id=backlog_id, **fields)


@pytest.fixture
def items() -> list[BacklogItem]:
    return [
        make_item("BL-240001", id="item_1", title="Login page", priority=Priority.HIGH,
                  description="Email and password login", acceptance_criteria="User can log in"),
        make_item("BL-240002", id="item_2", title="Signup page", priority=Priority.LOW,
                  description="Self-service signup", initiator="sales"),
        make_item("BL-240003", id="item_3", title="Export report", ready_for_sprint=True,
                  dev_estimated_time="3d", ticket_number="JIRA-12"),
        make_item("BL-240007", id="item_7", title="Sprint dashboard", depends_on=["BL-240001"],
                  initiator="pm"),
        make_item("BL-240009", id="item_9", title="Crash on save", task_type=TaskType.BUG,
                  severity=Severity.CRITICAL, priority=Priority.HIGH, needs_grooming=True),
    ]


@pytest.fixture
def sprints() -> list[Sprint]:
    return [
        Sprint(sprint_number=4, status=SprintStatus.COMPLETED),
        Sprint(sprint_number=6, status=SprintStatus.ACTIVE),
        Sprint(sprint_number=5, status=SprintStatus.PLANNED),
    ]


@pytest.fixture
def project(items: list[BacklogItem], sprints: list[Sprint]) -> Project:
    return Project(id="acme", name="Acme Portal", backlog=items, sprints=sprints)
