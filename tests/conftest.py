from __future__ import annotations

from pathlib import Path

import pytest

from tadpole.storage.container import Container

_ENV_KEYS = (
    "TADPOLE_DATA_DIR",
    "TADPOLE_LOCK_TIMEOUT",
    "TADPOLE_API_URL",
    "TADPOLE_REQUEST_TIMEOUT",
    "TADPOLE_LOG_LEVEL",
    "TADPOLE_HOST",
    "TADPOLE_PORT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def container(project_dir: Path) -> Container:
    return Container(project_dir)
