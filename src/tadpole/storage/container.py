from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..config import Settings
from ..constants import STORE_FILE, STORE_LOCK_FILE
from .bootstrap import ensure_state_root
from .file_repos import FileTagRepository, FileTaskRepository
from .store import YamlStore


class Container:
    """Wire the store document and both repositories for one data directory."""

    def __init__(self, project_dir: Path, settings: Optional[Settings] = None) -> None:
        self.project_dir = project_dir.resolve()
        self.settings = settings or Settings.from_env(self.project_dir)
        self.state_root = ensure_state_root(self.settings.data_dir)

        self.store = YamlStore(
            self.state_root / STORE_FILE,
            self.state_root / STORE_LOCK_FILE,
            lock_timeout=self.settings.lock_timeout,
        )
        self.tasks = FileTaskRepository(self.store)
        self.tags = FileTagRepository(self.store)
