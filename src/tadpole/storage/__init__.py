from .container import Container
from .file_repos import FileTagRepository, FileTaskRepository
from .interfaces import TagRepository, TaskRepository
from .store import StoreTx, YamlStore

__all__ = [
    "Container",
    "FileTagRepository",
    "FileTaskRepository",
    "StoreTx",
    "TagRepository",
    "TaskRepository",
    "YamlStore",
]
