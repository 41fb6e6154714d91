"""
Rollup calculations for stories.

Story status and cost are never stored; they are derived from the story's
tasks on every read. All call sites (sprint rows, backlog rows, the backlog
tree and the dashboard) go through this module so story-level and
summary-level figures always agree.
"""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional

ZERO = Decimal("0")

_DONE_STATUSES = frozenset({"done", "completed"})
_IN_PROGRESS_STATUSES = frozenset({"in_progress"})


class StoryStatus(str, Enum):
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    DONE = "Done"
    PLANNED = "Planned"


class TaskProgress(str, Enum):
    DONE = "done"
    IN_PROGRESS = "in_progress"
    OTHER = "other"


def normalize_status(status: Optional[str]) -> str:
    """Lower-case a task status and fold space/hyphen separators into '_'."""
    if not status:
        return ""
    return "_".join(status.strip().lower().replace("-", " ").replace("_", " ").split())


def classify_task_status(status: Optional[str]) -> TaskProgress:
    normalized = normalize_status(status)
    if normalized in _DONE_STATUSES:
        return TaskProgress.DONE
    if normalized in _IN_PROGRESS_STATUSES:
        return TaskProgress.IN_PROGRESS
    return TaskProgress.OTHER


def is_task_done(task: Any) -> bool:
    return classify_task_status(getattr(task, "status", None)) is TaskProgress.DONE


def derive_story_status(tasks: Iterable[Any], story_points: Optional[int] = None) -> StoryStatus:
    """
    Derive a story's status from its tasks.

    With no tasks the story is Planned when it carries a positive estimate,
    otherwise To Do. With tasks: all done is Done, any in progress is
    In Progress, anything else is To Do.
    """
    progress = [classify_task_status(getattr(task, "status", None)) for task in tasks]

    if not progress:
        return StoryStatus.PLANNED if (story_points or 0) > 0 else StoryStatus.TODO

    if all(p is TaskProgress.DONE for p in progress):
        return StoryStatus.DONE
    if any(p is TaskProgress.IN_PROGRESS for p in progress):
        return StoryStatus.IN_PROGRESS
    return StoryStatus.TODO


def _as_decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def task_total_cost(task: Any) -> Decimal:
    """Explicit total when present, otherwise dev cost plus test cost."""
    explicit = getattr(task, "total_cost", None)
    if explicit is not None:
        return _as_decimal(explicit)
    return _as_decimal(getattr(task, "cost_dev", None)) + _as_decimal(getattr(task, "cost_test", None))


def total_cost(tasks: Iterable[Any]) -> Decimal:
    return sum((task_total_cost(task) for task in tasks), ZERO)


def sum_decimals(values: Iterable[Any]) -> Decimal:
    """Sum optional numeric values, treating None as zero."""
    return sum((_as_decimal(value) for value in values), ZERO)
