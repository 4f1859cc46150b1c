"""Load optional configuration from `.tadpole/config.yaml` and `TADPOLE_*` env vars."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from .constants import (
    CONFIG_FILE,
    DEFAULT_API_URL,
    DEFAULT_HOST,
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_PORT,
    DEFAULT_REQUEST_TIMEOUT,
    STATE_DIR_NAME,
)

ENV_PREFIX = "TADPOLE"


def load_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional config file.

    Args:
        project_dir: Directory holding the `.tadpole/` state directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    path = project_dir.resolve() / STATE_DIR_NAME / CONFIG_FILE
    if not path.exists():
        return {}, None
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        return {}, f"Failed to read {path}: {exc}"
    if data is None:
        return {}, None
    if not isinstance(data, dict):
        return {}, f"{path} must contain a mapping"
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def _env(suffix: str) -> Optional[str]:
    raw = os.getenv(f"{ENV_PREFIX}_{suffix}")
    if raw is None or raw.strip() == "":
        return None
    return raw.strip()


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    api_url: str = DEFAULT_API_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    log_level: str = "INFO"
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @staticmethod
    def from_env(project_dir: Path, config: Optional[dict[str, Any]] = None) -> "Settings":
        """Resolve settings: env vars win over the config file, which wins over defaults."""
        project_dir = project_dir.resolve()
        if config is None:
            config, _ = load_config(project_dir)

        data_dir_raw = _env("DATA_DIR") or _get_nested(config, "store", "data_dir")
        data_dir = Path(str(data_dir_raw)).expanduser() if data_dir_raw else project_dir / STATE_DIR_NAME
        if not data_dir.is_absolute():
            data_dir = project_dir / data_dir

        return Settings(
            data_dir=data_dir,
            lock_timeout=_as_float(
                _env("LOCK_TIMEOUT") or _get_nested(config, "store", "lock_timeout"),
                DEFAULT_LOCK_TIMEOUT,
            ),
            api_url=str(_env("API_URL") or _get_nested(config, "client", "api_url") or DEFAULT_API_URL),
            request_timeout=_as_float(
                _env("REQUEST_TIMEOUT") or _get_nested(config, "client", "request_timeout"),
                DEFAULT_REQUEST_TIMEOUT,
            ),
            log_level=str(_env("LOG_LEVEL") or config.get("log_level") or "INFO").upper(),
            host=str(_env("HOST") or _get_nested(config, "server", "host") or DEFAULT_HOST),
            port=_as_int(_env("PORT") or _get_nested(config, "server", "port"), DEFAULT_PORT),
        )
