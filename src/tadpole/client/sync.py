"""Optimistic synchronization of the task and tag collections.

Every mutation follows the same two steps:

1. apply the change to the local :class:`ClientCache` immediately, so readers
   see it before the store answers;
2. send it through the :class:`StoreGateway`. On success the server record
   replaces the speculative one. On failure the speculative state is thrown
   away, the collection is fetched again, and the store error is re-raised.

Local validation (empty title, malformed color, unknown ids) happens before
step 1 so a rejected call never touches the cache.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, Sequence, TypeVar

from loguru import logger

from ..config import Settings
from ..constants import PENDING_ID_PREFIX
from ..domain.colors import DEFAULT_COLOR, is_valid_color
from ..domain.models import Tag, Task, _id, clean_text, now_iso
from ..domain.ordering import (
    move_item,
    position_for_completion,
    position_for_new_task,
    reorder_positions,
    sort_tasks,
)
from ..errors import (
    ConflictError,
    ConnectivityError,
    NotFoundError,
    ReorderError,
    TadpoleError,
    ValidationError,
)
from .cache import CacheState, ClientCache
from .gateway import HttpStoreGateway, StoreGateway

R = TypeVar("R")
T = TypeVar("T", Task, Tag)


@dataclass(frozen=True)
class Outcome(Generic[R]):
    """Result of one store call: either a value or the error it raised."""

    value: Optional[R] = None
    error: Optional[TadpoleError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> R:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass(frozen=True)
class SyncSettings:
    request_timeout: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncSettings":
        return cls(request_timeout=settings.request_timeout or None)


class _CollectionSync(Generic[T]):
    label = "items"

    def __init__(self, gateway: StoreGateway, settings: Optional[SyncSettings] = None) -> None:
        self.gateway = gateway
        self.settings = settings or SyncSettings()
        self.cache: ClientCache[T] = ClientCache(self.label)

    @property
    def state(self) -> CacheState:
        return self.cache.state

    @property
    def items(self) -> tuple[T, ...]:
        return self.cache.items

    def _fetch(self) -> Awaitable[list[T]]:
        raise NotImplementedError

    async def _call(self, awaitable: Awaitable[R]) -> Outcome[R]:
        timeout = self.settings.request_timeout
        try:
            if timeout:
                value = await asyncio.wait_for(awaitable, timeout)
            else:
                value = await awaitable
        except asyncio.TimeoutError:
            return Outcome(error=ConnectivityError(f"Store did not answer within {timeout:g}s"))
        except TadpoleError as exc:
            return Outcome(error=exc)
        except Exception as exc:
            logger.exception("Unexpected store failure")
            error = ConnectivityError(f"Unexpected store failure: {exc}")
            error.__cause__ = exc
            return Outcome(error=error)
        return Outcome(value=value)

    def _settle(self, pending_id: str, record: T) -> None:
        """Swap a placeholder for the server record.

        A refetch may have dropped the placeholder before the store committed
        the create; the record is then added unless the refetch already has it.
        """
        if self.cache.replace_item(pending_id, record):
            return
        if self.cache.get(record.id) is None:
            self.cache.append(record)
            self._resort()

    def _resort(self) -> None:
        raise NotImplementedError

    async def _refetch(self) -> Outcome[list[T]]:
        self.cache.begin_fetch()
        outcome = await self._call(self._fetch())
        if outcome.error is None:
            self.cache.fill(outcome.value or [])
        else:
            self.cache.fail(outcome.error.message)
            logger.error("Loading {} failed: {}", self.label, outcome.error.message)
        return outcome

    async def load(self) -> list[T]:
        """Fetch the collection from the store and replace the cache."""
        return list((await self._refetch()).unwrap())

    async def _rollback(self, action: str, error: TadpoleError) -> None:
        logger.warning("{} failed ({}); refetching {}", action, error.message, self.label)
        await self._refetch()


class TaskSync(_CollectionSync[Task]):
    label = "tasks"

    def __init__(
        self,
        gateway: StoreGateway,
        settings: Optional[SyncSettings] = None,
        tag_lookup: Optional[Callable[[str], Optional[Tag]]] = None,
    ) -> None:
        super().__init__(gateway, settings)
        self._tag_lookup = tag_lookup

    def _fetch(self) -> Awaitable[list[Task]]:
        return self.gateway.list_tasks()

    def _resort(self) -> None:
        self.cache.replace_all(sort_tasks(self.cache.items))

    def _resolve_tags(self, tag_ids: Iterable[str]) -> list[Tag]:
        if self._tag_lookup is None:
            return []
        resolved = (self._tag_lookup(tag_id) for tag_id in dict.fromkeys(tag_ids))
        return [tag for tag in resolved if tag is not None]

    def _require_task(self, task_id: str) -> Task:
        task = self.cache.get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def active_tasks(self, include_archived: bool = False) -> list[Task]:
        return sort_tasks(
            t for t in self.cache.items if not t.completed and (include_archived or not t.archived)
        )

    def completed_tasks(self, include_archived: bool = False) -> list[Task]:
        return sort_tasks(
            t for t in self.cache.items if t.completed and (include_archived or not t.archived)
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(
        self,
        title: str,
        description: Optional[str] = None,
        tag_ids: Optional[Sequence[str]] = None,
    ) -> Task:
        self.cache.require_ready("create task")
        cleaned = clean_text(title)
        if not cleaned:
            raise ValidationError("Title is required")

        pending = Task(
            id=_id(PENDING_ID_PREFIX),
            title=cleaned,
            description=clean_text(description),
            position=position_for_new_task(self.cache.items),
            tags=self._resolve_tags(tag_ids or []),
        )
        self.cache.append(pending)

        outcome = await self._call(self.gateway.create_task(cleaned, clean_text(description), tag_ids))
        if outcome.error is not None:
            await self._rollback("create task", outcome.error)
            raise outcome.error
        created = outcome.unwrap()
        self._settle(pending.id, created)
        return created

    def _apply(self, task: Task, changes: dict[str, Any]) -> Task:
        draft = replace(task, tags=list(task.tags))
        when = now_iso()
        if "title" in changes:
            draft.title = clean_text(changes["title"]) or ""
        if "description" in changes:
            draft.description = clean_text(changes["description"])
        if "archived" in changes:
            draft.archived = bool(changes["archived"])
        if "position" in changes:
            draft.position = int(changes["position"])
        if "completed" in changes and draft.set_completed(bool(changes["completed"]), when):
            others = [t for t in self.cache.items if t.id != task.id]
            draft.position = position_for_completion([*others, draft])
        if "tag_ids" in changes:
            draft.tags = self._resolve_tags(changes["tag_ids"] or [])
        draft.touch(when)
        return draft

    async def update(self, task_id: str, changes: dict[str, Any]) -> Task:
        """Apply a partial update (keys as in ``TaskRepository.update``)."""
        self.cache.require_ready("update task")
        task = self._require_task(task_id)
        if "title" in changes and not clean_text(changes["title"]):
            raise ValidationError("Title is required")

        self.cache.replace_item(task_id, self._apply(task, changes))

        outcome = await self._call(self.gateway.update_task(task_id, dict(changes)))
        if outcome.error is not None:
            await self._rollback(f"update task {task_id}", outcome.error)
            raise outcome.error
        updated = outcome.unwrap()
        self.cache.replace_item(task_id, updated)
        return updated

    async def delete(self, task_id: str) -> None:
        self.cache.require_ready("delete task")
        self._require_task(task_id)
        self.cache.remove(task_id)

        outcome = await self._call(self.gateway.delete_task(task_id))
        if outcome.error is not None:
            await self._rollback(f"delete task {task_id}", outcome.error)
            raise outcome.error

    async def reorder(self, ordered_ids: Sequence[str]) -> None:
        """Give the tasks in *ordered_ids* positions ``1..N`` in that order.

        One position update is sent per task, concurrently, and the returned
        records replace the cached ones. If any fails the whole collection is
        refetched and a single :class:`ReorderError` carrying every failure is
        raised.
        """
        self.cache.require_ready("reorder tasks")
        positions = reorder_positions(ordered_ids)
        for task_id in positions:
            self._require_task(task_id)
        if not positions:
            return

        self.cache.replace_all(
            sort_tasks(
                replace(t, position=positions[t.id]) if t.id in positions else t
                for t in self.cache.items
            )
        )

        outcomes = await asyncio.gather(
            *(self._call(self.gateway.update_task(task_id, {"position": position}))
              for task_id, position in positions.items())
        )
        failures = [o.error for o in outcomes if o.error is not None]
        if failures:
            error = ReorderError(
                f"{len(failures)} of {len(positions)} position updates failed: {failures[0].message}",
                failures,
            )
            await self._rollback("reorder", error)
            raise error
        for outcome in outcomes:
            updated = outcome.unwrap()
            self.cache.replace_item(updated.id, updated)
        self._resort()
        logger.debug("Reordered {} tasks", len(positions))

    async def move(self, active_id: str, over_id: Optional[str], include_archived: bool = False) -> None:
        """Handle a drag of *active_id* onto *over_id* within its own list."""
        self.cache.require_ready("move task")
        task = self._require_task(active_id)
        view = (
            self.completed_tasks(include_archived)
            if task.completed
            else self.active_tasks(include_archived)
        )
        moved = move_item(view, active_id, over_id)
        if [t.id for t in moved] == [t.id for t in view]:
            return
        await self.reorder([t.id for t in moved])

    async def toggle_complete(self, task_id: str) -> Task:
        self.cache.require_ready("update task")
        task = self._require_task(task_id)
        return await self.update(task_id, {"completed": not task.completed})

    async def archive(self, task_id: str) -> Task:
        return await self.update(task_id, {"archived": True})

    async def unarchive(self, task_id: str) -> Task:
        return await self.update(task_id, {"archived": False})

    def drop_tag(self, tag_id: str) -> None:
        """Remove a deleted tag from every cached task."""
        for task in self.cache.items:
            if any(tag.id == tag_id for tag in task.tags):
                self.cache.replace_item(
                    task.id, replace(task, tags=[tag for tag in task.tags if tag.id != tag_id])
                )


class TagSync(_CollectionSync[Tag]):
    label = "tags"

    def _fetch(self) -> Awaitable[list[Tag]]:
        return self.gateway.list_tags()

    def _resort(self) -> None:
        self.cache.replace_all(sorted(self.cache.items, key=lambda t: (t.name.casefold(), t.name, t.id)))

    def find(self, name: str) -> Optional[Tag]:
        key = (clean_text(name) or "").casefold()
        if not key:
            return None
        for tag in self.cache.items:
            if tag.name.casefold() == key:
                return tag
        return None

    def search(self, term: str, exclude_ids: Iterable[str] = ()) -> list[Tag]:
        """Tags whose name contains *term* (case-insensitive), minus *exclude_ids*."""
        needle = (term or "").strip().casefold()
        excluded = set(exclude_ids)
        matches = [
            tag for tag in self.cache.items
            if tag.id not in excluded and needle in tag.name.casefold()
        ]
        return sorted(matches, key=lambda t: t.name.casefold())

    async def create(self, name: str, color: str = DEFAULT_COLOR) -> Tag:
        self.cache.require_ready("create tag")
        cleaned = clean_text(name)
        if not cleaned:
            raise ValidationError("Name is required")
        if not is_valid_color(color):
            raise ValidationError("Valid hex color is required")
        existing = self.find(cleaned)
        if existing is not None:
            raise ConflictError("Tag with this name already exists", existing=existing)

        pending = Tag(id=_id(PENDING_ID_PREFIX), name=cleaned, color=color)
        self.cache.append(pending)

        outcome = await self._call(self.gateway.create_tag(cleaned, color))
        if outcome.error is not None:
            await self._rollback(f"create tag {cleaned!r}", outcome.error)
            raise outcome.error
        created = outcome.unwrap()
        self._settle(pending.id, created)
        return created

    async def find_or_create(self, name: str, color: str = DEFAULT_COLOR) -> Tag:
        """Return the tag called *name*, creating it if nobody has yet."""
        existing = self.find(name)
        if existing is not None:
            return existing
        try:
            return await self.create(name, color)
        except ConflictError as exc:
            # The refetch after the failed create normally brings the tag in.
            existing = self.find(name) or exc.existing
            if existing is None:
                raise
            logger.info("Using existing tag {} for {!r}", existing.id, name)
            return existing

    async def delete(self, tag_id: str) -> None:
        self.cache.require_ready("delete tag")
        if self.cache.get(tag_id) is None:
            raise NotFoundError(f"Tag {tag_id} not found")
        self.cache.remove(tag_id)

        outcome = await self._call(self.gateway.delete_tag(tag_id))
        if outcome.error is not None:
            await self._rollback(f"delete tag {tag_id}", outcome.error)
            raise outcome.error


class SyncEngine:
    """Task and tag synchronization over one gateway."""

    def __init__(self, gateway: StoreGateway, settings: Optional[SyncSettings] = None) -> None:
        self.gateway = gateway
        self.tags = TagSync(gateway, settings)
        self.tasks = TaskSync(gateway, settings, tag_lookup=self.tags.cache.get)

    @classmethod
    def over_http(cls, settings: Settings, **gateway_kwargs: Any) -> "SyncEngine":
        gateway = HttpStoreGateway(settings.api_url, timeout=settings.request_timeout, **gateway_kwargs)
        return cls(gateway, SyncSettings.from_settings(settings))

    async def aclose(self) -> None:
        close = getattr(self.gateway, "aclose", None)
        if close is not None:
            await close()

    async def load(self) -> None:
        """Load tags, then tasks; raise the first failure after both ran."""
        errors: list[TadpoleError] = []
        for collection in (self.tags, self.tasks):
            try:
                await collection.load()
            except TadpoleError as exc:
                errors.append(exc)
        if errors:
            raise errors[0]

    async def delete_tag(self, tag_id: str) -> None:
        await self.tags.delete(tag_id)
        self.tasks.drop_tag(tag_id)
