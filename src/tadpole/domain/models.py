from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from ..constants import TAG_ID_PREFIX, TASK_ID_PREFIX


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


def clean_text(value: Optional[str]) -> Optional[str]:
    """Trim *value*; blank strings collapse to ``None``."""
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


@dataclass
class Tag:
    id: str = field(default_factory=lambda: _id(TAG_ID_PREFIX))
    name: str = ""
    color: str = "#3b82f6"
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Tag":
        return cls(
            id=str(data.get("id") or _id(TAG_ID_PREFIX)),
            name=str(data.get("name") or ""),
            color=str(data.get("color") or "#3b82f6"),
            created_at=str(data.get("created_at") or now_iso()),
        )


@dataclass
class Task:
    """A to-do item.

    ``tags`` holds resolved :class:`Tag` records. It is never written with the
    task row; the store keeps associations in a separate join collection and
    fills this list on read.
    """

    id: str = field(default_factory=lambda: _id(TASK_ID_PREFIX))
    title: str = ""
    description: Optional[str] = None
    completed: bool = False
    archived: bool = False
    position: int = 1
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    completed_at: Optional[str] = None
    tags: list[Tag] = field(default_factory=list)

    @property
    def tag_ids(self) -> list[str]:
        return [tag.id for tag in self.tags]

    def touch(self, when: Optional[str] = None) -> None:
        self.updated_at = when or now_iso()

    def set_completed(self, completed: bool, when: Optional[str] = None) -> bool:
        """Apply a completion flag; returns True when it is a false->true transition."""
        became_complete = completed and not self.completed
        if completed != self.completed:
            self.completed_at = (when or now_iso()) if completed else None
        self.completed = completed
        return became_complete

    def to_row(self) -> dict[str, Any]:
        """Persisted form (no tags; associations live in the join collection)."""
        data = asdict(self)
        data.pop("tags", None)
        return data

    def to_dict(self) -> dict[str, Any]:
        data = self.to_row()
        data["tags"] = [tag.to_dict() for tag in self.tags]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        tags = [Tag.from_dict(t) for t in list(data.get("tags") or []) if isinstance(t, dict)]
        return cls(
            id=str(data.get("id") or _id(TASK_ID_PREFIX)),
            title=str(data.get("title") or ""),
            description=data.get("description"),
            completed=bool(data.get("completed", False)),
            archived=bool(data.get("archived", False)),
            position=int(data.get("position") or 0),
            created_at=str(data.get("created_at") or now_iso()),
            updated_at=str(data.get("updated_at") or now_iso()),
            completed_at=data.get("completed_at"),
            tags=tags,
        )
