from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from loguru import logger
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .api.schemas import TagOut, TaskOut
from .client.gateway import HttpStoreGateway, LocalStoreGateway, StoreGateway
from .client.sync import SyncEngine, SyncSettings
from .config import Settings
from .domain.colors import DEFAULT_COLOR, PRESET_COLORS, text_color_for
from .domain.models import Tag, Task
from .errors import TadpoleError
from .logging_utils import configure_logging
from .storage.container import Container
from .storage.seed import check_connectivity, seed_sample_tasks


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _settings(args: argparse.Namespace) -> Settings:
    return Settings.from_env(_resolve_project_dir(args.project_dir))


def _gateway(args: argparse.Namespace, settings: Settings) -> StoreGateway:
    if args.remote:
        return HttpStoreGateway(settings.api_url, timeout=settings.request_timeout)
    return LocalStoreGateway(Container(_resolve_project_dir(args.project_dir), settings=settings))


def _with_engine(args: argparse.Namespace, action: Callable[[SyncEngine], Awaitable[Any]]) -> Any:
    settings = _settings(args)

    async def _run() -> Any:
        engine = SyncEngine(_gateway(args, settings), SyncSettings.from_settings(settings))
        try:
            await engine.load()
            return await action(engine)
        finally:
            await engine.aclose()

    return asyncio.run(_run())


def _task_json(task: Task) -> dict[str, Any]:
    return TaskOut.from_domain(task).model_dump(by_alias=True)


def _tag_json(tag: Tag) -> dict[str, Any]:
    return TagOut.from_domain(tag).model_dump(by_alias=True)


def _emit(payload: dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload, indent=2) + "\n")


def _tag_label(tag: Tag) -> Text:
    return Text(f" {tag.name} ", style=f"{text_color_for(tag.color)} on {tag.color}")


def _print_tasks(tasks: list[Task], title: str) -> None:
    table = Table(title=title, show_header=True)
    table.add_column("Pos", justify="right")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Done")
    table.add_column("Tags")
    for task in tasks:
        tags = Text(" ").join(_tag_label(tag) for tag in task.tags)
        title_text = Text(task.title, style="dim" if task.archived else "")
        table.add_row(str(task.position), task.id, title_text, "x" if task.completed else "", tags)
    Console().print(table)


def _print_tags(tags: list[Tag]) -> None:
    table = Table(title="Tags", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Color")
    for tag in tags:
        table.add_row(tag.id, _tag_label(tag), tag.color)
    Console().print(table)


async def _tag_ids_for(engine: SyncEngine, names: Optional[list[str]], color: str) -> Optional[list[str]]:
    if names is None:
        return None
    ids: list[str] = []
    for name in names:
        tag = await engine.tags.find_or_create(name, color)
        ids.append(tag.id)
    return ids


# ---------------------------------------------------------------------------
# task
# ---------------------------------------------------------------------------

def _task_create(args: argparse.Namespace) -> int:
    async def action(engine: SyncEngine) -> Task:
        tag_ids = await _tag_ids_for(engine, args.tag, args.tag_color)
        return await engine.tasks.create(args.title, args.description, tag_ids)

    task = _with_engine(args, action)
    _emit({"task": _task_json(task)})
    return 0


def _task_list(args: argparse.Namespace) -> int:
    async def action(engine: SyncEngine) -> list[Task]:
        if args.view == "active":
            return engine.tasks.active_tasks(args.include_archived)
        if args.view == "completed":
            return engine.tasks.completed_tasks(args.include_archived)
        return [
            *engine.tasks.active_tasks(args.include_archived),
            *engine.tasks.completed_tasks(args.include_archived),
        ]

    tasks = _with_engine(args, action)
    if args.table:
        _print_tasks(tasks, title=f"Tasks ({args.view})")
    else:
        _emit({"tasks": [_task_json(task) for task in tasks]})
    return 0


def _task_update(args: argparse.Namespace) -> int:
    async def action(engine: SyncEngine) -> Task:
        changes: dict[str, Any] = {}
        if args.title is not None:
            changes["title"] = args.title
        if args.description is not None:
            changes["description"] = args.description
        if args.position is not None:
            changes["position"] = args.position
        if args.clear_tags:
            changes["tag_ids"] = []
        elif args.tag is not None:
            changes["tag_ids"] = await _tag_ids_for(engine, args.tag, args.tag_color)
        return await engine.tasks.update(args.task_id, changes)

    task = _with_engine(args, action)
    _emit({"task": _task_json(task)})
    return 0


def _task_flag(field: str, value: bool) -> Callable[[argparse.Namespace], int]:
    def handler(args: argparse.Namespace) -> int:
        task = _with_engine(args, lambda engine: engine.tasks.update(args.task_id, {field: value}))
        _emit({"task": _task_json(task)})
        return 0

    return handler


def _task_archive(args: argparse.Namespace) -> int:
    return _task_flag("archived", not args.undo)(args)


def _task_delete(args: argparse.Namespace) -> int:
    _with_engine(args, lambda engine: engine.tasks.delete(args.task_id))
    _emit({"success": True, "task_id": args.task_id})
    return 0


def _task_reorder(args: argparse.Namespace) -> int:
    async def action(engine: SyncEngine) -> list[Task]:
        await engine.tasks.reorder(args.task_ids)
        return [t for t in engine.tasks.items if t.id in set(args.task_ids)]

    tasks = _with_engine(args, action)
    _emit({"tasks": [_task_json(task) for task in sorted(tasks, key=lambda t: t.position)]})
    return 0


# ---------------------------------------------------------------------------
# tag
# ---------------------------------------------------------------------------

def _tag_create(args: argparse.Namespace) -> int:
    tag = _with_engine(args, lambda engine: engine.tags.create(args.name, args.color))
    _emit({"tag": _tag_json(tag)})
    return 0


def _tag_list(args: argparse.Namespace) -> int:
    async def action(engine: SyncEngine) -> list[Tag]:
        if args.search:
            return engine.tags.search(args.search)
        return list(engine.tags.items)

    tags = _with_engine(args, action)
    if args.table:
        _print_tags(tags)
    else:
        _emit({"tags": [_tag_json(tag) for tag in tags]})
    return 0


def _tag_delete(args: argparse.Namespace) -> int:
    _with_engine(args, lambda engine: engine.delete_tag(args.tag_id))
    _emit({"success": True, "tag_id": args.tag_id})
    return 0


# ---------------------------------------------------------------------------
# maintenance
# ---------------------------------------------------------------------------

def _seed(args: argparse.Namespace) -> int:
    settings = _settings(args)
    container = Container(_resolve_project_dir(args.project_dir), settings=settings)
    created = seed_sample_tasks(container, clear=not args.keep)
    _emit({"seeded": len(created), "store": str(container.store.path)})
    return 0


def _check_db(args: argparse.Namespace) -> int:
    settings = _settings(args)
    container = Container(_resolve_project_dir(args.project_dir), settings=settings)
    _emit(check_connectivity(container))
    return 0


def _server(args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except ImportError:
        sys.stderr.write("Install server extras: pip install 'tadpole[server]'\n")
        return 1

    from .api import create_app

    settings = _settings(args)
    configure_logging(args.log_level or settings.log_level)
    app = create_app(project_dir=_resolve_project_dir(args.project_dir), settings=settings)
    uvicorn.run(
        app,
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tadpole: ordered task list with tags")
    parser.add_argument("--project-dir", default=None, help="Project directory holding .tadpole/ (default: cwd)")
    parser.add_argument("--remote", action="store_true", help="Talk to the server at TADPOLE_API_URL instead of the local store")
    parser.add_argument("--table", action="store_true", help="Render list output as a table")
    parser.add_argument("--log-level", default=None, help="Log level (default: WARNING; server uses config)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    server = subparsers.add_parser("server", help="Start the API server")
    server.add_argument("--host", default=None)
    server.add_argument("--port", default=None, type=int)
    server.add_argument("--reload", action="store_true")
    server.set_defaults(func=_server)

    task = subparsers.add_parser("task", help="Manage tasks")
    task_sub = task.add_subparsers(dest="task_cmd", required=True)
    tcreate = task_sub.add_parser("create", help="Create a task at the end of the list")
    tcreate.add_argument("title")
    tcreate.add_argument("--description", default=None)
    tcreate.add_argument("--tag", action="append", default=None, help="Tag name (created if missing); repeatable")
    tcreate.add_argument("--tag-color", default=DEFAULT_COLOR, choices=PRESET_COLORS)
    tcreate.set_defaults(func=_task_create)
    tlist = task_sub.add_parser("list", help="List tasks in display order")
    tlist.add_argument("--view", default="all", choices=["all", "active", "completed"])
    tlist.add_argument("--include-archived", action="store_true")
    tlist.set_defaults(func=_task_list)
    tupdate = task_sub.add_parser("update", help="Edit a task")
    tupdate.add_argument("task_id")
    tupdate.add_argument("--title", default=None)
    tupdate.add_argument("--description", default=None)
    tupdate.add_argument("--position", default=None, type=int)
    tupdate.add_argument("--tag", action="append", default=None, help="Replace tags with these names; repeatable")
    tupdate.add_argument("--tag-color", default=DEFAULT_COLOR, choices=PRESET_COLORS)
    tupdate.add_argument("--clear-tags", action="store_true")
    tupdate.set_defaults(func=_task_update)
    tcomplete = task_sub.add_parser("complete", help="Mark a task completed")
    tcomplete.add_argument("task_id")
    tcomplete.set_defaults(func=_task_flag("completed", True))
    treopen = task_sub.add_parser("reopen", help="Mark a task not completed")
    treopen.add_argument("task_id")
    treopen.set_defaults(func=_task_flag("completed", False))
    tarchive = task_sub.add_parser("archive", help="Archive (or with --undo restore) a task")
    tarchive.add_argument("task_id")
    tarchive.add_argument("--undo", action="store_true")
    tarchive.set_defaults(func=_task_archive)
    tdelete = task_sub.add_parser("delete", help="Delete a task permanently")
    tdelete.add_argument("task_id")
    tdelete.set_defaults(func=_task_delete)
    treorder = task_sub.add_parser("reorder", help="Set positions 1..N in the given order")
    treorder.add_argument("task_ids", nargs="+")
    treorder.set_defaults(func=_task_reorder)

    tag = subparsers.add_parser("tag", help="Manage tags")
    tag_sub = tag.add_subparsers(dest="tag_cmd", required=True)
    gcreate = tag_sub.add_parser("create", help="Create a tag")
    gcreate.add_argument("name")
    gcreate.add_argument("--color", default=DEFAULT_COLOR)
    gcreate.set_defaults(func=_tag_create)
    glist = tag_sub.add_parser("list", help="List tags by name")
    glist.add_argument("--search", default=None)
    glist.set_defaults(func=_tag_list)
    gdelete = tag_sub.add_parser("delete", help="Delete a tag and its associations")
    gdelete.add_argument("tag_id")
    gdelete.set_defaults(func=_tag_delete)

    seed = subparsers.add_parser("seed", help="Write the sample backlog")
    seed.add_argument("--keep", action="store_true", help="Keep existing tasks")
    seed.set_defaults(func=_seed)

    check = subparsers.add_parser("check-db", help="Verify the store can be written")
    check.set_defaults(func=_check_db)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1
    if args.command != "server":
        configure_logging(args.log_level or "WARNING")
    try:
        return int(handler(args) or 0)
    except TadpoleError as exc:
        logger.debug("{} failed: {}", args.command, exc)
        sys.stderr.write(f"{type(exc).__name__}: {exc.message}\n")
        return 1


def run() -> None:
    sys.exit(main())
