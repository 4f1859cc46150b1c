"""Tag color helpers."""

from __future__ import annotations

import re

COLOR_RE = re.compile(r"^#[0-9A-F]{6}$", re.IGNORECASE)

PRESET_COLORS: tuple[str, ...] = (
    "#ef4444",  # red
    "#f97316",  # orange
    "#eab308",  # yellow
    "#22c55e",  # green
    "#3b82f6",  # blue
    "#8b5cf6",  # purple
    "#ec4899",  # pink
    "#06b6d4",  # cyan
)

DEFAULT_COLOR = PRESET_COLORS[0]


def is_valid_color(value: object) -> bool:
    return isinstance(value, str) and COLOR_RE.match(value) is not None


def text_color_for(background: str) -> str:
    """Pick black or white text for a ``#RRGGBB`` background by relative luminance."""
    if not is_valid_color(background):
        return "#000000"
    red = int(background[1:3], 16)
    green = int(background[3:5], 16)
    blue = int(background[5:7], 16)
    luminance = (0.299 * red + 0.587 * green + 0.114 * blue) / 255
    return "#000000" if luminance > 0.5 else "#ffffff"
