from __future__ import annotations

from typing import Any, Optional, Sequence

from loguru import logger

from ..domain.colors import is_valid_color
from ..domain.models import Tag, Task, clean_text, now_iso
from ..domain.ordering import position_for_completion, position_for_new_task
from ..errors import ConflictError, NotFoundError, ValidationError
from .associations import reconcile_tags
from .interfaces import TagRepository, TaskRepository
from .store import YamlStore

UPDATABLE_FIELDS = frozenset({"title", "description", "completed", "archived", "position", "tag_ids"})


def _require_title(title: Any) -> str:
    cleaned = clean_text(title) if isinstance(title, str) else None
    if not cleaned:
        raise ValidationError("Title is required")
    return cleaned


def _normalize_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Validate a partial update and trim its text fields.

    Keys that are absent stay absent: ``tag_ids`` missing means "leave the
    associations alone", while ``tag_ids=[]`` clears them.
    """
    unknown = sorted(set(changes) - UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")

    patch: dict[str, Any] = {}
    if "title" in changes:
        patch["title"] = _require_title(changes["title"])
    if "description" in changes:
        value = changes["description"]
        if value is not None and not isinstance(value, str):
            raise ValidationError("'description' must be a string or null")
        patch["description"] = clean_text(value)
    for flag in ("completed", "archived"):
        if flag in changes:
            if not isinstance(changes[flag], bool):
                raise ValidationError(f"'{flag}' must be a boolean")
            patch[flag] = changes[flag]
    if "position" in changes:
        value = changes["position"]
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError("'position' must be an integer")
        patch["position"] = value
    if "tag_ids" in changes:
        value = changes["tag_ids"]
        if value is None or isinstance(value, str) or not isinstance(value, (list, tuple)):
            raise ValidationError("'tag_ids' must be a list of tag ids")
        patch["tag_ids"] = [str(v) for v in value]
    return patch


class FileTaskRepository(TaskRepository):
    def __init__(self, store: YamlStore) -> None:
        self._store = store

    def list(self) -> list[Task]:
        with self._store.transaction() as tx:
            return tx.resolved_tasks()

    def get(self, task_id: str) -> Optional[Task]:
        with self._store.transaction() as tx:
            task = tx.get_task(task_id)
            return tx.resolve(task) if task is not None else None

    def create(
        self,
        title: str,
        description: Optional[str] = None,
        tag_ids: Optional[Sequence[str]] = None,
    ) -> Task:
        """Create a task at the end of the open list, optionally tagged."""
        cleaned_title = _require_title(title)
        with self._store.transaction() as tx:
            task = Task(
                title=cleaned_title,
                description=clean_text(description),
                position=position_for_new_task(tx.tasks),
            )
            task.updated_at = task.created_at
            tx.add_task(task)
            if tag_ids:
                reconcile_tags(tx, task.id, tag_ids)
            created = tx.resolve(task)
        logger.info("Created task {} at position {}: {}", created.id, created.position, created.title)
        return created

    def update(self, task_id: str, changes: dict[str, Any]) -> Task:
        """Apply a partial update as one unit.

        Order: trimmed text and plain fields, then the completion rule (which
        overrides an explicit position on a false->true transition), then the
        tag set when ``tag_ids`` is present. Nothing is written if any step
        raises.
        """
        patch = _normalize_changes(changes)
        with self._store.transaction() as tx:
            task = tx.get_task(task_id)
            if task is None:
                raise NotFoundError(f"Task {task_id} not found")
            when = now_iso()
            completed = patch.pop("completed", None)
            has_tags = "tag_ids" in patch
            tag_ids = patch.pop("tag_ids", None)

            for key, value in patch.items():
                setattr(task, key, value)
            if completed is not None and task.set_completed(completed, when):
                task.position = position_for_completion(tx.tasks)
            if has_tags:
                reconcile_tags(tx, task.id, tag_ids or [])

            task.touch(when)
            tx.dirty = True
            updated = tx.resolve(task)
        logger.info("Updated task {} fields={}", task_id, sorted(changes))
        return updated

    def delete(self, task_id: str) -> None:
        with self._store.transaction() as tx:
            if not tx.remove_task(task_id):
                raise NotFoundError(f"Task {task_id} not found")
        logger.info("Deleted task {}", task_id)


class FileTagRepository(TagRepository):
    def __init__(self, store: YamlStore) -> None:
        self._store = store

    def list(self) -> list[Tag]:
        with self._store.transaction() as tx:
            return sorted(tx.tags, key=lambda t: (t.name.casefold(), t.name, t.id))

    def get(self, tag_id: str) -> Optional[Tag]:
        with self._store.transaction() as tx:
            return tx.get_tag(tag_id)

    def find_by_name(self, name: str) -> Optional[Tag]:
        with self._store.transaction() as tx:
            return tx.find_tag_by_name(name or "")

    def create(self, name: str, color: str) -> Tag:
        cleaned = clean_text(name) if isinstance(name, str) else None
        if not cleaned:
            raise ValidationError("Name is required")
        if not is_valid_color(color):
            raise ValidationError("Valid hex color is required")
        with self._store.transaction() as tx:
            existing = tx.find_tag_by_name(cleaned)
            if existing is not None:
                raise ConflictError("Tag with this name already exists", existing=existing)
            tag = tx.add_tag(Tag(name=cleaned, color=color))
        logger.info("Created tag {}: {}", tag.id, tag.name)
        return tag

    def delete(self, tag_id: str) -> None:
        with self._store.transaction() as tx:
            if not tx.remove_tag(tag_id):
                raise NotFoundError(f"Tag {tag_id} not found")
        logger.info("Deleted tag {}", tag_id)
