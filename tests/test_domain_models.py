from __future__ import annotations

from tadpole.domain.colors import PRESET_COLORS, is_valid_color, text_color_for
from tadpole.domain.models import Tag, Task, clean_text


def test_clean_text_trims_and_collapses_blank() -> None:
    assert clean_text("  hello ") == "hello"
    assert clean_text("   ") is None
    assert clean_text(None) is None


def test_task_ids_are_prefixed_and_unique() -> None:
    first, second = Task(title="a"), Task(title="b")
    assert first.id.startswith("task-")
    assert first.id != second.id
    assert Tag(name="x").id.startswith("tag-")


def test_set_completed_transitions() -> None:
    task = Task(title="Ship it")
    assert task.set_completed(True, "2026-03-01T10:00:00+00:00") is True
    assert task.completed_at == "2026-03-01T10:00:00+00:00"

    # already complete: not a transition, timestamp kept
    assert task.set_completed(True, "2026-03-02T10:00:00+00:00") is False
    assert task.completed_at == "2026-03-01T10:00:00+00:00"

    assert task.set_completed(False) is False
    assert task.completed is False
    assert task.completed_at is None


def test_row_excludes_tags_and_dict_includes_them() -> None:
    tag = Tag(name="Work", color="#22c55e")
    task = Task(title="Report", tags=[tag])
    assert "tags" not in task.to_row()
    assert task.to_dict()["tags"][0]["name"] == "Work"
    assert task.tag_ids == [tag.id]


def test_task_round_trip_through_dict() -> None:
    task = Task(title="Report", description="Q3", position=4, tags=[Tag(name="Work")])
    restored = Task.from_dict(task.to_dict())
    assert restored == task


class TestColors:
    def test_validation(self) -> None:
        assert is_valid_color("#AA00ff")
        assert is_valid_color("#000000")
        assert not is_valid_color("#abc")
        assert not is_valid_color("AA00ff")
        assert not is_valid_color("#GG0000")
        assert not is_valid_color(None)

    def test_presets_are_valid(self) -> None:
        assert len(PRESET_COLORS) == 8
        assert all(is_valid_color(color) for color in PRESET_COLORS)

    def test_text_color_by_luminance(self) -> None:
        assert text_color_for("#ffffff") == "#000000"
        assert text_color_for("#eab308") == "#000000"
        assert text_color_for("#000000") == "#ffffff"
        assert text_color_for("#3b82f6") == "#ffffff"
