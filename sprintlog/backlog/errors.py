"""
Errors and warnings raised by backlog transitions.

Hard errors abort a transition before anything is returned, so the caller's
collection is left untouched. Reconciliation warnings never abort: they ride
along on a TransitionResult whose changes were applied.
"""

from __future__ import annotations

from dataclasses import dataclass


class BacklogError(Exception):
    """Base class for transition failures."""

    def __init__(self, message: str, item_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.item_id = item_id


class NotFoundError(BacklogError):
    """A referenced item, sprint or sprint task does not exist."""


class ValidationError(BacklogError):
    """A precondition of the transition does not hold."""


class InvalidTargetError(BacklogError):
    """The target sprint is not Planned or Active."""

    def __init__(self, sprint_number: int, status: str):
        super().__init__(
            f"Sprint {sprint_number} is {status}; only Planned or Active sprints accept items"
        )
        self.sprint_number = sprint_number
        self.status = status


class NotEligibleError(BacklogError):
    """Undo was requested on an item without resolvable lineage."""


@dataclass(frozen=True)
class PartialReconciliationWarning:
    """A linked record was missing; the rest of the transition was applied."""

    code: str
    message: str
    item_id: str | None = None

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"
