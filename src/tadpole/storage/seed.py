"""Sample data and a store round-trip probe."""

from __future__ import annotations

from loguru import logger

from ..constants import CONNECTIVITY_HINT
from ..domain.models import Task
from ..errors import ConnectivityError, TadpoleError
from .container import Container

SAMPLE_TASKS: tuple[tuple[str, str], ...] = (
    ("Review project documentation", "Go through the technical implementation guide and ensure all sections are up to date"),
    ("Update dependencies", "Check for outdated packages and update to latest stable versions"),
    ("Write unit tests", "Add test coverage for API endpoints and core components"),
    ("Optimize store queries", "Review store access paths and cache hot lookups"),
    ("Implement error logging", "Set up error tracking with a hosted service"),
    ("Design mobile layout", "Create responsive designs for smaller screen sizes"),
    ("Add keyboard shortcuts", "Implement Cmd+K for search and other productivity shortcuts"),
    ("Configure CI/CD pipeline", "Set up automated testing and deployment"),
    ("Create API documentation", "Document all API endpoints with request/response examples"),
    ("Add loading states", "Show loading indicators while the task list syncs"),
    ("Implement search functionality", "Add full-text search across task titles and descriptions"),
    ("Add data export feature", "Allow users to export tasks to JSON or CSV format"),
)


def seed_sample_tasks(container: Container, *, clear: bool = True) -> list[Task]:
    """Write the sample backlog with positions ``1..N`` after the existing tasks.

    With *clear* the existing tasks (and their tag links) are removed first.
    """
    with container.store.transaction() as tx:
        if clear:
            for task in list(tx.tasks):
                tx.remove_task(task.id)
        start = max((t.position for t in tx.tasks), default=0)
        created: list[Task] = []
        for offset, (title, description) in enumerate(SAMPLE_TASKS, start=1):
            task = Task(title=title, description=description, position=start + offset)
            tx.add_task(task)
            created.append(task)
    logger.info("Seeded {} tasks (clear={})", len(created), clear)
    return created


def check_connectivity(container: Container) -> dict[str, object]:
    """Create and delete a probe task; raise :class:`ConnectivityError` on failure."""
    try:
        probe = container.tasks.create("Connectivity probe", "Created by tadpole check-db")
        container.tasks.delete(probe.id)
        total = len(container.tasks.list())
    except ConnectivityError:
        raise
    except (TadpoleError, OSError) as exc:
        logger.error("Store probe failed: {}", exc)
        raise ConnectivityError(CONNECTIVITY_HINT) from exc
    return {"status": "ok", "store": str(container.store.path), "tasks": total}
