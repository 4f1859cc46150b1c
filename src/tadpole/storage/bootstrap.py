from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import yaml
from loguru import logger

from ..constants import SCHEMA_VERSION, STORE_FILE


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _schema_version(path: Path) -> int | None:
    if not path.exists():
        return None
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        return None
    value = raw.get("schema_version")
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def ensure_state_root(state_root: Path) -> Path:
    """Create the data directory and an empty store document if needed.

    A store written with a different schema version is moved aside to
    ``store.legacy-<stamp>.yaml`` rather than being read with the wrong layout.
    """
    state_root.mkdir(parents=True, exist_ok=True)
    store_path = state_root / STORE_FILE

    version = _schema_version(store_path)
    if store_path.exists() and version != SCHEMA_VERSION:
        archive_target = state_root / f"store.legacy-{_utc_stamp()}.yaml"
        store_path.rename(archive_target)
        logger.warning("Archived store with schema_version={} to {}", version, archive_target)

    if not store_path.exists():
        payload = {"schema_version": SCHEMA_VERSION, "tasks": [], "tags": [], "task_tags": []}
        store_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")

    return state_root
