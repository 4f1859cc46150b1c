"""Replace a task's tag set inside an open store transaction."""

from __future__ import annotations

from typing import Iterable

from loguru import logger

from ..errors import NotFoundError, ValidationError
from .store import StoreTx


def reconcile_tags(tx: StoreTx, task_id: str, tag_ids: Iterable[str]) -> list[str]:
    """Make the associations of *task_id* exactly ``set(tag_ids)``.

    Every id is checked before any link changes, and the caller's transaction
    only writes back on a clean exit, so removal of stale links and insertion
    of new ones land together or not at all. Returns the de-duplicated ids.
    """
    wanted = list(dict.fromkeys(str(tag_id) for tag_id in tag_ids))
    if tx.get_task(task_id) is None:
        raise NotFoundError(f"Task {task_id} not found")
    missing = [tag_id for tag_id in wanted if tx.get_tag(tag_id) is None]
    if missing:
        raise ValidationError(f"Unknown tag id(s): {', '.join(missing)}")

    current = tx.tag_ids_for(task_id)
    stale = [tag_id for tag_id in current if tag_id not in wanted]
    added = [tag_id for tag_id in wanted if tag_id not in current]
    tx.unlink(task_id, stale)
    tx.link(task_id, added)
    if stale or added:
        logger.debug("Reconciled tags for {}: +{} -{}", task_id, added, stale)
    return wanted
