"""Pydantic request / response models for the task and tag endpoints.

Wire names are camelCase (``tagIds``, ``createdAt``); Python attribute names
stay snake_case.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..domain.models import Tag, Task


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class CreateTaskRequest(ApiModel):
    title: Optional[str] = None
    description: Optional[str] = None
    tag_ids: Optional[list[str]] = None


class UpdateTaskRequest(ApiModel):
    """Partial update. Only fields present in the body are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    completed: Optional[bool] = None
    archived: Optional[bool] = None
    position: Optional[int] = None
    tag_ids: Optional[list[str]] = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class CreateTagRequest(ApiModel):
    name: Optional[str] = None
    color: Optional[str] = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class TagOut(ApiModel):
    id: str
    name: str
    color: str
    created_at: str

    @classmethod
    def from_domain(cls, tag: Tag) -> "TagOut":
        return cls(id=tag.id, name=tag.name, color=tag.color, created_at=tag.created_at)


class TaskOut(ApiModel):
    id: str
    title: str
    description: Optional[str] = None
    completed: bool = False
    archived: bool = False
    position: int
    created_at: str
    updated_at: str
    completed_at: Optional[str] = None
    tags: list[TagOut] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, task: Task) -> "TaskOut":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            completed=task.completed,
            archived=task.archived,
            position=task.position,
            created_at=task.created_at,
            updated_at=task.updated_at,
            completed_at=task.completed_at,
            tags=[TagOut.from_domain(tag) for tag in task.tags],
        )


class AckResponse(ApiModel):
    success: bool = True


class HealthResponse(ApiModel):
    status: str
    store: str
    tasks: int
    tags: int


def task_from_payload(payload: dict[str, Any]) -> Task:
    """Parse a camelCase task payload (as returned by the API) into a domain task."""
    out = TaskOut.model_validate(payload)
    return Task(
        id=out.id,
        title=out.title,
        description=out.description,
        completed=out.completed,
        archived=out.archived,
        position=out.position,
        created_at=out.created_at,
        updated_at=out.updated_at,
        completed_at=out.completed_at,
        tags=[tag_from_payload(tag.model_dump()) for tag in out.tags],
    )


def tag_from_payload(payload: dict[str, Any]) -> Tag:
    out = TagOut.model_validate(payload)
    return Tag(id=out.id, name=out.name, color=out.color, created_at=out.created_at)
