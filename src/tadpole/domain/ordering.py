"""Position rules for the task list.

Positions are plain integers. They are not required to be contiguous, only
comparable: new tasks append to the end of the open list, completed tasks sink
below every non-archived task, and a manual reorder rewrites the positions of
the tasks in the dragged view to ``1..N``.
"""

from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence, TypeVar

from ..errors import ValidationError


class Positioned(Protocol):
    id: str
    position: int
    completed: bool
    archived: bool
    created_at: str


T = TypeVar("T", bound=Positioned)


def _next_after(positions: Iterable[int]) -> int:
    top: Optional[int] = None
    for value in positions:
        if top is None or value > top:
            top = value
    return 1 if top is None else top + 1


def position_for_new_task(tasks: Iterable[Positioned]) -> int:
    """Append after the last open (not archived, not completed) task."""
    return _next_after(t.position for t in tasks if not t.archived and not t.completed)


def position_for_completion(tasks: Iterable[Positioned]) -> int:
    """Move past every non-archived task, completed ones included."""
    return _next_after(t.position for t in tasks if not t.archived)


def reorder_positions(task_ids: Sequence[str]) -> dict[str, int]:
    """Map each id of the dragged view to its one-based index.

    Only the supplied ids receive a position; hidden tasks keep theirs.
    """
    seen: set[str] = set()
    for task_id in task_ids:
        if task_id in seen:
            raise ValidationError(f"Task {task_id} appears more than once in the reorder sequence")
        seen.add(task_id)
    return {task_id: index for index, task_id in enumerate(task_ids, start=1)}


def move_item(sequence: Sequence[T], active_id: str, over_id: Optional[str]) -> list[T]:
    """Return *sequence* with ``active_id`` moved to the slot held by ``over_id``."""
    items = list(sequence)
    if over_id is None or active_id == over_id:
        return items
    ids = [item.id for item in items]
    try:
        old_index = ids.index(active_id)
        new_index = ids.index(over_id)
    except ValueError:
        return items
    moved = items.pop(old_index)
    items.insert(new_index, moved)
    return items


def sort_key(task: Positioned) -> tuple[int, str, str]:
    return (task.position, task.created_at, task.id)


def sort_tasks(tasks: Iterable[T]) -> list[T]:
    return sorted(tasks, key=sort_key)
