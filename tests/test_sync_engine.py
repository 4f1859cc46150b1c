"""Tests for the optimistic sync client."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Sequence

import pytest

from tadpole.client.cache import CacheState
from tadpole.client.gateway import LocalStoreGateway
from tadpole.client.sync import Outcome, SyncEngine, SyncSettings, TagSync, TaskSync
from tadpole.domain.models import Tag, Task
from tadpole.errors import (
    ConflictError,
    ConnectivityError,
    NotFoundError,
    ReorderError,
    SyncStateError,
    ValidationError,
)
from tadpole.storage.container import Container

FailRule = Callable[[str, tuple], Optional[Exception]]


class RecordingGateway:
    """LocalStoreGateway wrapper that records calls and can inject failures."""

    def __init__(self, container: Container, fail_when: Optional[FailRule] = None) -> None:
        self.inner = LocalStoreGateway(container)
        self.calls: list[tuple[Any, ...]] = []
        self.fail_when = fail_when
        self.gate: Optional[asyncio.Event] = None
        self.gate_only: Optional[str] = None
        self.delay = 0.0

    async def _dispatch(self, name: str, *args: Any) -> Any:
        self.calls.append((name, *args))
        if self.gate is not None and name not in ("list_tasks", "list_tags") and self.gate_only in (None, name):
            await self.gate.wait()
        if self.delay and name != "list_tasks":
            await asyncio.sleep(self.delay)
        if self.fail_when is not None:
            error = self.fail_when(name, args)
            if error is not None:
                raise error
        return await getattr(self.inner, name)(*args)

    def calls_to(self, name: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]

    async def list_tasks(self) -> list[Task]:
        return await self._dispatch("list_tasks")

    async def create_task(
        self,
        title: str,
        description: Optional[str] = None,
        tag_ids: Optional[Sequence[str]] = None,
    ) -> Task:
        return await self._dispatch("create_task", title, description, tag_ids)

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        return await self._dispatch("update_task", task_id, changes)

    async def delete_task(self, task_id: str) -> None:
        return await self._dispatch("delete_task", task_id)

    async def list_tags(self) -> list[Tag]:
        return await self._dispatch("list_tags")

    async def create_tag(self, name: str, color: str) -> Tag:
        return await self._dispatch("create_tag", name, color)

    async def delete_tag(self, tag_id: str) -> None:
        return await self._dispatch("delete_tag", tag_id)


@pytest.fixture
def gateway(container: Container) -> RecordingGateway:
    return RecordingGateway(container)


@pytest.fixture
def engine(gateway: RecordingGateway) -> SyncEngine:
    return SyncEngine(gateway)


def _titles(tasks) -> list[str]:
    return [t.title for t in tasks]


def test_outcome_unwrap() -> None:
    assert Outcome(value=3).unwrap() == 3
    failed = Outcome(error=NotFoundError("gone"))
    assert not failed.ok
    with pytest.raises(NotFoundError):
        failed.unwrap()


@pytest.mark.anyio
class TestLoad:
    async def test_load_fills_cache(self, engine: SyncEngine, container: Container) -> None:
        container.tasks.create("A")
        container.tasks.create("B")
        assert engine.tasks.state is CacheState.IDLE
        await engine.load()
        assert engine.tasks.state is CacheState.READY
        assert engine.tags.state is CacheState.READY
        assert _titles(engine.tasks.items) == ["A", "B"]

    async def test_load_failure_sets_error_state(self, container: Container) -> None:
        gateway = RecordingGateway(
            container,
            fail_when=lambda name, args: ConnectivityError("store down") if name == "list_tasks" else None,
        )
        sync = TaskSync(gateway)
        with pytest.raises(ConnectivityError):
            await sync.load()
        assert sync.state is CacheState.ERROR
        assert sync.cache.error == "store down"
        assert sync.items == ()

    async def test_mutation_before_load(self, engine: SyncEngine) -> None:
        with pytest.raises(SyncStateError):
            await engine.tasks.create("Too early")
        with pytest.raises(SyncStateError):
            await engine.tags.create("Too early", "#3b82f6")


@pytest.mark.anyio
class TestOptimisticCreate:
    async def test_placeholder_visible_then_replaced(self, engine: SyncEngine, gateway: RecordingGateway) -> None:
        await engine.load()
        gateway.gate = asyncio.Event()

        pending = asyncio.create_task(engine.tasks.create("  Write tests  "))
        await asyncio.sleep(0)
        [placeholder] = engine.tasks.items
        assert placeholder.id.startswith("pending-")
        assert placeholder.title == "Write tests"
        assert placeholder.position == 1

        gateway.gate.set()
        created = await pending
        assert created.id.startswith("task-")
        assert [t.id for t in engine.tasks.items] == [created.id]

    async def test_empty_title_rejected_locally(self, engine: SyncEngine, gateway: RecordingGateway) -> None:
        await engine.load()
        with pytest.raises(ValidationError):
            await engine.tasks.create("   ")
        assert engine.tasks.items == ()
        assert gateway.calls_to("create_task") == []

    async def test_failed_create_resyncs(self, container: Container) -> None:
        container.tasks.create("Existing")
        gateway = RecordingGateway(
            container,
            fail_when=lambda name, args: ConnectivityError("down") if name == "create_task" else None,
        )
        engine = SyncEngine(gateway)
        await engine.load()
        with pytest.raises(ConnectivityError):
            await engine.tasks.create("Lost")
        assert list(engine.tasks.items) == container.tasks.list()
        assert engine.tasks.state is CacheState.READY

    async def test_placeholder_resolves_cached_tags(self, engine: SyncEngine, gateway: RecordingGateway) -> None:
        await engine.load()
        work = await engine.tags.create("Work", "#3b82f6")
        gateway.gate = asyncio.Event()
        pending = asyncio.create_task(engine.tasks.create("Report", tag_ids=[work.id]))
        await asyncio.sleep(0)
        assert [t.name for t in engine.tasks.items[0].tags] == ["Work"]
        gateway.gate.set()
        created = await pending
        assert created.tag_ids == [work.id]

    async def test_create_kept_after_concurrent_rollback(self, container: Container) -> None:
        a = container.tasks.create("A")
        gateway = RecordingGateway(
            container,
            fail_when=lambda name, args: ConnectivityError("down") if name == "update_task" else None,
        )
        engine = SyncEngine(gateway)
        await engine.load()
        gateway.gate = asyncio.Event()
        gateway.gate_only = "create_task"

        pending = asyncio.create_task(engine.tasks.create("B"))
        await asyncio.sleep(0)
        with pytest.raises(ConnectivityError):
            await engine.tasks.update(a.id, {"title": "A2"})
        # the refetch ran before the store saw the create
        assert _titles(engine.tasks.items) == ["A"]

        gateway.gate.set()
        created = await pending
        assert [t.id for t in engine.tasks.items] == [a.id, created.id]
        assert list(engine.tasks.items) == container.tasks.list()


@pytest.mark.anyio
class TestUpdate:
    async def test_failed_update_matches_fresh_fetch(self, container: Container) -> None:
        a = container.tasks.create("A")
        container.tasks.create("B")
        gateway = RecordingGateway(
            container,
            fail_when=lambda name, args: ConnectivityError("down") if name == "update_task" else None,
        )
        engine = SyncEngine(gateway)
        await engine.load()

        with pytest.raises(ConnectivityError):
            await engine.tasks.update(a.id, {"title": "Changed", "completed": True})

        assert list(engine.tasks.items) == container.tasks.list()
        assert engine.tasks.state is CacheState.READY
        assert gateway.calls_to("list_tasks") == [("list_tasks",), ("list_tasks",)]

    async def test_optimistic_merge_before_answer(self, engine: SyncEngine, gateway: RecordingGateway, container: Container) -> None:
        a = container.tasks.create("A", description="keep")
        await engine.load()
        gateway.gate = asyncio.Event()

        pending = asyncio.create_task(engine.tasks.update(a.id, {"title": "A2"}))
        await asyncio.sleep(0)
        cached = engine.tasks.items[0]
        assert cached.title == "A2"
        assert cached.description == "keep"

        gateway.gate.set()
        updated = await pending
        assert engine.tasks.items[0] == updated

    async def test_toggle_complete_moves_to_completed_view(self, engine: SyncEngine, container: Container) -> None:
        a = container.tasks.create("A")
        b = container.tasks.create("B")
        await engine.load()

        done = await engine.tasks.toggle_complete(a.id)
        assert done.completed is True
        assert done.position > b.position
        assert [t.id for t in engine.tasks.active_tasks()] == [b.id]
        assert [t.id for t in engine.tasks.completed_tasks()] == [a.id]

        reopened = await engine.tasks.toggle_complete(a.id)
        assert reopened.completed is False
        assert reopened.position == done.position

    async def test_archive_hides_from_views(self, engine: SyncEngine, container: Container) -> None:
        a = container.tasks.create("A")
        await engine.load()
        await engine.tasks.archive(a.id)
        assert engine.tasks.active_tasks() == []
        assert [t.id for t in engine.tasks.active_tasks(include_archived=True)] == [a.id]
        await engine.tasks.unarchive(a.id)
        assert [t.id for t in engine.tasks.active_tasks()] == [a.id]

    async def test_unknown_task(self, engine: SyncEngine, gateway: RecordingGateway) -> None:
        await engine.load()
        with pytest.raises(NotFoundError):
            await engine.tasks.update("task-missing", {"title": "x"})
        assert gateway.calls_to("update_task") == []

    async def test_unexpected_gateway_error_still_rolls_back(self, container: Container) -> None:
        a = container.tasks.create("A")
        gateway = RecordingGateway(
            container,
            fail_when=lambda name, args: RuntimeError("bug in gateway") if name == "update_task" else None,
        )
        engine = SyncEngine(gateway)
        await engine.load()

        with pytest.raises(ConnectivityError) as info:
            await engine.tasks.update(a.id, {"title": "Optimistic"})
        assert isinstance(info.value.__cause__, RuntimeError)
        assert _titles(engine.tasks.items) == ["A"]
        assert engine.tasks.state is CacheState.READY

    async def test_timeout_is_connectivity_failure(self, container: Container) -> None:
        a = container.tasks.create("A")
        gateway = RecordingGateway(container)
        engine = SyncEngine(gateway, SyncSettings(request_timeout=0.05))
        await engine.load()
        gateway.delay = 1.0
        with pytest.raises(ConnectivityError):
            await engine.tasks.update(a.id, {"title": "slow"})
        assert engine.tasks.items[0].title == "A"


@pytest.mark.anyio
class TestDelete:
    async def test_delete(self, engine: SyncEngine, container: Container) -> None:
        a = container.tasks.create("A")
        await engine.load()
        await engine.tasks.delete(a.id)
        assert engine.tasks.items == ()
        assert container.tasks.list() == []

    async def test_failed_delete_restores_task(self, container: Container) -> None:
        a = container.tasks.create("A")
        gateway = RecordingGateway(
            container,
            fail_when=lambda name, args: ConnectivityError("down") if name == "delete_task" else None,
        )
        engine = SyncEngine(gateway)
        await engine.load()
        with pytest.raises(ConnectivityError):
            await engine.tasks.delete(a.id)
        assert [t.id for t in engine.tasks.items] == [a.id]


@pytest.mark.anyio
class TestReorder:
    async def test_move_c_before_a(self, engine: SyncEngine, gateway: RecordingGateway, container: Container) -> None:
        a = container.tasks.create("A")
        b = container.tasks.create("B")
        c = container.tasks.create("C")
        await engine.load()

        await engine.tasks.reorder([c.id, a.id, b.id])

        updates = gateway.calls_to("update_task")
        assert len(updates) == 3
        assert {call[1]: call[2] for call in updates} == {
            c.id: {"position": 1},
            a.id: {"position": 2},
            b.id: {"position": 3},
        }
        assert _titles(engine.tasks.items) == ["C", "A", "B"]
        assert _titles(container.tasks.list()) == ["C", "A", "B"]

    async def test_move_drag_event(self, engine: SyncEngine, container: Container) -> None:
        a = container.tasks.create("A")
        container.tasks.create("B")
        c = container.tasks.create("C")
        await engine.load()

        await engine.tasks.move(c.id, a.id)
        assert _titles(engine.tasks.active_tasks()) == ["C", "A", "B"]

    async def test_move_onto_itself_sends_nothing(self, engine: SyncEngine, gateway: RecordingGateway, container: Container) -> None:
        a = container.tasks.create("A")
        await engine.load()
        await engine.tasks.move(a.id, a.id)
        assert gateway.calls_to("update_task") == []

    async def test_partial_failure_aggregates_and_resyncs(self, container: Container) -> None:
        a = container.tasks.create("A")
        b = container.tasks.create("B")
        c = container.tasks.create("C")
        gateway = RecordingGateway(
            container,
            fail_when=lambda name, args: (
                ConnectivityError("down") if name == "update_task" and args[0] == b.id else None
            ),
        )
        engine = SyncEngine(gateway)
        await engine.load()

        with pytest.raises(ReorderError) as info:
            await engine.tasks.reorder([c.id, a.id, b.id])
        assert len(info.value.failures) == 1
        assert isinstance(info.value.failures[0], ConnectivityError)
        assert list(engine.tasks.items) == container.tasks.list()

    async def test_unexpected_error_in_fan_out_is_aggregated(self, container: Container) -> None:
        a = container.tasks.create("A")
        b = container.tasks.create("B")
        gateway = RecordingGateway(
            container,
            fail_when=lambda name, args: (
                ValueError("bad payload") if name == "update_task" and args[0] == a.id else None
            ),
        )
        engine = SyncEngine(gateway)
        await engine.load()

        with pytest.raises(ReorderError) as info:
            await engine.tasks.reorder([b.id, a.id])
        assert len(info.value.failures) == 1
        assert isinstance(info.value.failures[0].__cause__, ValueError)
        assert list(engine.tasks.items) == container.tasks.list()

    async def test_duplicate_ids_rejected_locally(self, engine: SyncEngine, gateway: RecordingGateway, container: Container) -> None:
        a = container.tasks.create("A")
        await engine.load()
        with pytest.raises(ValidationError):
            await engine.tasks.reorder([a.id, a.id])
        assert gateway.calls_to("update_task") == []


@pytest.mark.anyio
class TestTagSync:
    async def test_create_validates_locally(self, engine: SyncEngine, gateway: RecordingGateway) -> None:
        await engine.load()
        with pytest.raises(ValidationError):
            await engine.tags.create("Work", "#abc")
        await engine.tags.create("Work", "#3b82f6")
        with pytest.raises(ConflictError):
            await engine.tags.create("work", "#3b82f6")
        assert len(gateway.calls_to("create_tag")) == 1

    async def test_find_or_create_reuses_cached_tag(self, engine: SyncEngine, gateway: RecordingGateway, container: Container) -> None:
        work = container.tags.create("Work", "#3b82f6")
        await engine.load()
        tag = await engine.tags.find_or_create("WORK")
        assert tag.id == work.id
        assert gateway.calls_to("create_tag") == []

    async def test_find_or_create_recovers_from_store_conflict(self, engine: SyncEngine, container: Container) -> None:
        await engine.load()
        # created by another client after our load
        other = container.tags.create("Work", "#22c55e")
        tag = await engine.tags.find_or_create("work", "#3b82f6")
        assert tag.id == other.id
        assert [t.id for t in engine.tags.items] == [other.id]

    async def test_search(self, container: Container) -> None:
        for name in ("Work", "Homework", "Errands"):
            container.tags.create(name, "#3b82f6")
        sync = TagSync(RecordingGateway(container))
        await sync.load()
        homework = sync.find("homework")
        assert [t.name for t in sync.search("WORK")] == ["Homework", "Work"]
        assert [t.name for t in sync.search("work", exclude_ids=[homework.id])] == ["Work"]
        assert len(sync.search("")) == 3

    async def test_delete_tag_strips_it_from_cached_tasks(self, engine: SyncEngine, container: Container) -> None:
        work = container.tags.create("Work", "#3b82f6")
        container.tasks.create("Report", tag_ids=[work.id])
        await engine.load()
        await engine.delete_tag(work.id)
        assert engine.tags.items == ()
        assert engine.tasks.items[0].tags == []
        assert container.tags.list() == []

    async def test_tag_create_kept_after_concurrent_rollback(self, container: Container) -> None:
        old = container.tags.create("Old", "#3b82f6")
        gateway = RecordingGateway(
            container,
            fail_when=lambda name, args: ConnectivityError("down") if name == "delete_tag" else None,
        )
        engine = SyncEngine(gateway)
        await engine.load()
        gateway.gate = asyncio.Event()
        gateway.gate_only = "create_tag"

        pending = asyncio.create_task(engine.tags.create("New", "#22c55e"))
        await asyncio.sleep(0)
        with pytest.raises(ConnectivityError):
            await engine.tags.delete(old.id)
        assert [t.name for t in engine.tags.items] == ["Old"]

        gateway.gate.set()
        await pending
        assert [t.name for t in engine.tags.items] == ["New", "Old"]
        assert list(engine.tags.items) == container.tags.list()
