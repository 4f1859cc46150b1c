"""Store gateways used by the sync client.

``HttpStoreGateway`` talks to the FastAPI server over httpx and maps HTTP
failures back onto :mod:`tadpole.errors`. ``LocalStoreGateway`` calls the
repositories of a :class:`Container` directly (worker thread per call).
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Protocol, Sequence, TypeVar

import httpx
from loguru import logger
from pydantic.alias_generators import to_camel

from ..api.schemas import tag_from_payload, task_from_payload
from ..constants import CONNECTIVITY_HINT, DEFAULT_API_URL, DEFAULT_REQUEST_TIMEOUT
from ..domain.models import Tag, Task
from ..errors import STATUS_TO_ERROR, ConnectivityError, TadpoleError
from ..storage.container import Container

R = TypeVar("R")


class StoreGateway(Protocol):
    async def list_tasks(self) -> list[Task]: ...

    async def create_task(
        self,
        title: str,
        description: Optional[str] = None,
        tag_ids: Optional[Sequence[str]] = None,
    ) -> Task: ...

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> Task: ...

    async def delete_task(self, task_id: str) -> None: ...

    async def list_tags(self) -> list[Tag]: ...

    async def create_tag(self, name: str, color: str) -> Tag: ...

    async def delete_tag(self, tag_id: str) -> None: ...


def _error_for(response: httpx.Response) -> TadpoleError:
    try:
        body = response.json()
    except ValueError:
        body = None
    detail = body.get("detail") if isinstance(body, dict) else None
    message = str(detail) if detail else (response.text or response.reason_phrase)
    status = response.status_code
    if status in STATUS_TO_ERROR:
        return STATUS_TO_ERROR[status](message)
    if status >= 500:
        return ConnectivityError(message or CONNECTIVITY_HINT)
    return TadpoleError(message)


def _as_list(payload: Any) -> list[Any]:
    if not isinstance(payload, list):
        raise ConnectivityError(f"Expected a JSON list from the task server, got {type(payload).__name__}")
    return payload


def _parse(parser: Callable[[dict[str, Any]], R], payload: Any) -> R:
    try:
        return parser(payload)
    except (ValueError, TypeError) as exc:
        # pydantic's ValidationError is a ValueError
        raise ConnectivityError(f"Malformed record from the task server: {exc}") from exc


class HttpStoreGateway:
    """Store gateway backed by the ``/api`` endpoints."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpStoreGateway":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, json: Optional[dict[str, Any]] = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.RequestError as exc:
            logger.error("{} {} failed: {}", method, path, exc)
            raise ConnectivityError(f"Cannot reach task server at {self.base_url}: {exc}") from exc
        if response.status_code >= 400:
            raise _error_for(response)
        try:
            return response.json()
        except ValueError as exc:
            logger.error("{} {} returned a non-JSON body", method, path)
            raise ConnectivityError(f"Unexpected response from task server at {self.base_url}") from exc

    async def list_tasks(self) -> list[Task]:
        payload = await self._request("GET", "/api/tasks")
        return [_parse(task_from_payload, item) for item in _as_list(payload)]

    async def create_task(
        self,
        title: str,
        description: Optional[str] = None,
        tag_ids: Optional[Sequence[str]] = None,
    ) -> Task:
        body: dict[str, Any] = {"title": title, "description": description}
        if tag_ids is not None:
            body["tagIds"] = list(tag_ids)
        return _parse(task_from_payload, await self._request("POST", "/api/tasks", json=body))

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        body = {to_camel(key): value for key, value in changes.items()}
        return _parse(task_from_payload, await self._request("PATCH", f"/api/tasks/{task_id}", json=body))

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/api/tasks/{task_id}")

    async def list_tags(self) -> list[Tag]:
        payload = await self._request("GET", "/api/tags")
        return [_parse(tag_from_payload, item) for item in _as_list(payload)]

    async def create_tag(self, name: str, color: str) -> Tag:
        return _parse(tag_from_payload, await self._request("POST", "/api/tags", json={"name": name, "color": color}))

    async def delete_tag(self, tag_id: str) -> None:
        await self._request("DELETE", f"/api/tags/{tag_id}")


class LocalStoreGateway:
    """Store gateway that drives the file repositories in-process."""

    def __init__(self, container: Container) -> None:
        self.container = container

    async def list_tasks(self) -> list[Task]:
        return await asyncio.to_thread(self.container.tasks.list)

    async def create_task(
        self,
        title: str,
        description: Optional[str] = None,
        tag_ids: Optional[Sequence[str]] = None,
    ) -> Task:
        return await asyncio.to_thread(self.container.tasks.create, title, description, tag_ids)

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> Task:
        return await asyncio.to_thread(self.container.tasks.update, task_id, dict(changes))

    async def delete_task(self, task_id: str) -> None:
        await asyncio.to_thread(self.container.tasks.delete, task_id)

    async def list_tags(self) -> list[Tag]:
        return await asyncio.to_thread(self.container.tags.list)

    async def create_tag(self, name: str, color: str) -> Tag:
        return await asyncio.to_thread(self.container.tags.create, name, color)

    async def delete_tag(self, tag_id: str) -> None:
        await asyncio.to_thread(self.container.tags.delete, tag_id)
