"""Task and tag API endpoints.

This module provides a FastAPI router with task CRUD (create appends, PATCH is
a partial update that also drives completion ordering and tag replacement) and
tag create / list / delete. It is mounted under ``/api`` by ``create_app``.
"""

from __future__ import annotations

from typing import Callable, NoReturn

from fastapi import APIRouter, HTTPException
from loguru import logger

from ..errors import ConnectivityError, TadpoleError
from ..storage.container import Container
from .schemas import (
    AckResponse,
    CreateTagRequest,
    CreateTaskRequest,
    HealthResponse,
    TagOut,
    TaskOut,
    UpdateTaskRequest,
)


def _raise_http(exc: TadpoleError) -> NoReturn:
    if isinstance(exc, ConnectivityError):
        logger.error("Store unavailable: {}", exc.message)
    raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


def create_router(get_container: Callable[[], Container]) -> APIRouter:
    """Create the task/tag API router.

    Parameters
    ----------
    get_container:
        A callable returning the :class:`Container` that owns the store.
    """
    router = APIRouter(prefix="/api")

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    @router.get("/tasks", response_model=list[TaskOut], tags=["tasks"])
    async def list_tasks() -> list[TaskOut]:
        try:
            tasks = get_container().tasks.list()
        except TadpoleError as exc:
            _raise_http(exc)
        return [TaskOut.from_domain(t) for t in tasks]

    @router.post("/tasks", response_model=TaskOut, status_code=201, tags=["tasks"])
    async def create_task(body: CreateTaskRequest) -> TaskOut:
        try:
            task = get_container().tasks.create(
                body.title or "",
                description=body.description,
                tag_ids=body.tag_ids,
            )
        except TadpoleError as exc:
            _raise_http(exc)
        return TaskOut.from_domain(task)

    @router.patch("/tasks/{task_id}", response_model=TaskOut, tags=["tasks"])
    async def update_task(task_id: str, body: UpdateTaskRequest) -> TaskOut:
        try:
            task = get_container().tasks.update(task_id, body.changes())
        except TadpoleError as exc:
            _raise_http(exc)
        return TaskOut.from_domain(task)

    @router.delete("/tasks/{task_id}", response_model=AckResponse, tags=["tasks"])
    async def delete_task(task_id: str) -> AckResponse:
        try:
            get_container().tasks.delete(task_id)
        except TadpoleError as exc:
            _raise_http(exc)
        return AckResponse()

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    @router.get("/tags", response_model=list[TagOut], tags=["tags"])
    async def list_tags() -> list[TagOut]:
        try:
            tags = get_container().tags.list()
        except TadpoleError as exc:
            _raise_http(exc)
        return [TagOut.from_domain(t) for t in tags]

    @router.post("/tags", response_model=TagOut, status_code=201, tags=["tags"])
    async def create_tag(body: CreateTagRequest) -> TagOut:
        try:
            tag = get_container().tags.create(body.name or "", body.color or "")
        except TadpoleError as exc:
            _raise_http(exc)
        return TagOut.from_domain(tag)

    @router.delete("/tags/{tag_id}", response_model=AckResponse, tags=["tags"])
    async def delete_tag(tag_id: str) -> AckResponse:
        try:
            get_container().tags.delete(tag_id)
        except TadpoleError as exc:
            _raise_http(exc)
        return AckResponse()

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @router.get("/health", response_model=HealthResponse, tags=["meta"])
    async def health() -> HealthResponse:
        container = get_container()
        try:
            tasks = container.tasks.list()
            tags = container.tags.list()
        except TadpoleError as exc:
            _raise_http(exc)
        return HealthResponse(status="ok", store=str(container.store.path), tasks=len(tasks), tags=len(tags))

    return router
