from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from ..domain.models import Tag, Task


class TaskRepository(ABC):
    @abstractmethod
    def list(self) -> list[Task]:
        raise NotImplementedError

    @abstractmethod
    def get(self, task_id: str) -> Optional[Task]:
        raise NotImplementedError

    @abstractmethod
    def create(
        self,
        title: str,
        description: Optional[str] = None,
        tag_ids: Optional[Sequence[str]] = None,
    ) -> Task:
        raise NotImplementedError

    @abstractmethod
    def update(self, task_id: str, changes: dict[str, Any]) -> Task:
        raise NotImplementedError

    @abstractmethod
    def delete(self, task_id: str) -> None:
        raise NotImplementedError


class TagRepository(ABC):
    @abstractmethod
    def list(self) -> list[Tag]:
        raise NotImplementedError

    @abstractmethod
    def get(self, tag_id: str) -> Optional[Tag]:
        raise NotImplementedError

    @abstractmethod
    def find_by_name(self, name: str) -> Optional[Tag]:
        raise NotImplementedError

    @abstractmethod
    def create(self, name: str, color: str) -> Tag:
        raise NotImplementedError

    @abstractmethod
    def delete(self, tag_id: str) -> None:
        raise NotImplementedError
