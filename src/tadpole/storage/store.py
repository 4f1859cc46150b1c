"""File-backed relational store with single-writer transactions.

All three logical tables (``tasks``, ``tags`` and the ``task_tags`` join table)
live in one YAML document so a single lock covers every read-modify-write.
All reads and writes go through :meth:`YamlStore.transaction`, which holds a
thread lock plus an exclusive :class:`filelock.FileLock`, and only writes the
document back when the body finished without raising.
"""

from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

import yaml
from filelock import FileLock, Timeout
from loguru import logger

from ..constants import CONNECTIVITY_HINT, DEFAULT_LOCK_TIMEOUT, SCHEMA_VERSION
from ..domain.models import Tag, Task
from ..domain.ordering import sort_tasks
from ..errors import ConnectivityError


# ---------------------------------------------------------------------------
# Low-level I/O
# ---------------------------------------------------------------------------

def _load_raw(path: Path) -> dict[str, list[dict[str, Any]]]:
    """Load the raw tables from *path*; a missing file is an empty store."""
    empty: dict[str, list[dict[str, Any]]] = {"tasks": [], "tags": [], "task_tags": []}
    if not path.exists():
        return empty
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        return empty
    for key in empty:
        rows = data.get(key)
        if isinstance(rows, list):
            empty[key] = [row for row in rows if isinstance(row, dict)]
    return empty


def _save_raw(path: Path, tables: dict[str, list[dict[str, Any]]]) -> None:
    """Atomically write *tables* to *path* (write-tmp-then-rename)."""
    payload = {"schema_version": SCHEMA_VERSION, **tables}
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(f"{path.suffix}.tmp")
    try:
        with tmp_path.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(payload, handle, sort_keys=False)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------

class StoreTx:
    """In-memory view of the store for the duration of one transaction.

    Task rows are held without tags; :meth:`resolve` attaches the tag records
    from the join table. Set ``dirty`` (the mutators do) to have the document
    written back on exit.
    """

    def __init__(self, tasks: list[Task], tags: list[Tag], links: list[tuple[str, str]]) -> None:
        self.tasks = tasks
        self.tags = tags
        self.links = links
        self.dirty = False

    # -- lookups ------------------------------------------------------------

    def get_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def get_tag(self, tag_id: str) -> Optional[Tag]:
        for tag in self.tags:
            if tag.id == tag_id:
                return tag
        return None

    def find_tag_by_name(self, name: str) -> Optional[Tag]:
        wanted = name.strip().casefold()
        for tag in self.tags:
            if tag.name.casefold() == wanted:
                return tag
        return None

    def tag_ids_for(self, task_id: str) -> list[str]:
        return [tag_id for owner, tag_id in self.links if owner == task_id]

    def resolve(self, task: Task) -> Task:
        """Return *task* with its ``tags`` list filled from the join table."""
        by_id = {tag.id: tag for tag in self.tags}
        task.tags = [by_id[tag_id] for tag_id in self.tag_ids_for(task.id) if tag_id in by_id]
        return task

    def resolved_tasks(self) -> list[Task]:
        return [self.resolve(task) for task in sort_tasks(self.tasks)]

    # -- mutations ----------------------------------------------------------

    def add_task(self, task: Task) -> Task:
        if self.get_task(task.id) is not None:
            raise ValueError(f"Task {task.id} already exists")
        self.tasks.append(task)
        self.dirty = True
        return task

    def remove_task(self, task_id: str) -> bool:
        """Hard delete; cascades the task's associations."""
        keep = [task for task in self.tasks if task.id != task_id]
        if len(keep) == len(self.tasks):
            return False
        self.tasks = keep
        self.links = [link for link in self.links if link[0] != task_id]
        self.dirty = True
        return True

    def add_tag(self, tag: Tag) -> Tag:
        if self.get_tag(tag.id) is not None:
            raise ValueError(f"Tag {tag.id} already exists")
        self.tags.append(tag)
        self.dirty = True
        return tag

    def remove_tag(self, tag_id: str) -> bool:
        """Delete a tag; cascades its associations."""
        keep = [tag for tag in self.tags if tag.id != tag_id]
        if len(keep) == len(self.tags):
            return False
        self.tags = keep
        self.links = [link for link in self.links if link[1] != tag_id]
        self.dirty = True
        return True

    def link(self, task_id: str, tag_ids: Iterable[str]) -> None:
        existing = set(self.links)
        for tag_id in tag_ids:
            pair = (task_id, tag_id)
            if pair not in existing:
                self.links.append(pair)
                existing.add(pair)
                self.dirty = True

    def unlink(self, task_id: str, tag_ids: Iterable[str]) -> None:
        drop = {(task_id, tag_id) for tag_id in tag_ids}
        if not drop:
            return
        self.links = [link for link in self.links if link not in drop]
        self.dirty = True

    # -- serialization ------------------------------------------------------

    def to_tables(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "tasks": [task.to_row() for task in self.tasks],
            "tags": [tag.to_dict() for tag in self.tags],
            "task_tags": [{"task_id": task_id, "tag_id": tag_id} for task_id, tag_id in self.links],
        }

    @classmethod
    def from_tables(cls, tables: dict[str, list[dict[str, Any]]]) -> "StoreTx":
        tasks = [Task.from_dict(row) for row in tables.get("tasks", [])]
        tags = [Tag.from_dict(row) for row in tables.get("tags", [])]
        links: list[tuple[str, str]] = []
        seen: set[tuple[str, str]] = set()
        for row in tables.get("task_tags", []):
            pair = (str(row.get("task_id") or ""), str(row.get("tag_id") or ""))
            if all(pair) and pair not in seen:
                seen.add(pair)
                links.append(pair)
        return cls(tasks, tags, links)


# ---------------------------------------------------------------------------
# YamlStore
# ---------------------------------------------------------------------------

class YamlStore:
    """Thread- and process-safe owner of the store document.

    Parameters
    ----------
    path:
        Location of the YAML document.
    lock_path:
        Lock file guarding *path*.
    lock_timeout:
        Seconds to wait for the lock before reporting the store unreachable.
    """

    def __init__(self, path: Path, lock_path: Path, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._path = path
        self._lock = FileLock(str(lock_path), timeout=lock_timeout)
        self._thread_lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def transaction(self) -> Iterator[StoreTx]:
        """Acquire the locks, load the store, yield a transaction, and save on clean exit.

        Usage::

            with store.transaction() as tx:
                task = tx.get_task("task-abc123")
                task.archived = True
                tx.dirty = True
        """
        with self._thread_lock:
            try:
                self._lock.acquire()
            except Timeout as exc:
                logger.error("Store lock timed out: {}", self._lock.lock_file)
                raise ConnectivityError(CONNECTIVITY_HINT) from exc
            try:
                tx = StoreTx.from_tables(self._read())
                yield tx
                if tx.dirty:
                    self._write(tx.to_tables())
            finally:
                self._lock.release()

    def read_snapshot(self) -> StoreTx:
        """Return a detached copy of the current store contents."""
        with self.transaction() as tx:
            return tx

    def _read(self) -> dict[str, list[dict[str, Any]]]:
        try:
            return _load_raw(self._path)
        except (OSError, yaml.YAMLError) as exc:
            logger.error("Failed to read store {}: {}", self._path, exc)
            raise ConnectivityError(CONNECTIVITY_HINT) from exc

    def _write(self, tables: dict[str, list[dict[str, Any]]]) -> None:
        try:
            _save_raw(self._path, tables)
        except OSError as exc:
            logger.error("Failed to write store {}: {}", self._path, exc)
            raise ConnectivityError(CONNECTIVITY_HINT) from exc
