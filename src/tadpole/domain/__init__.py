from .models import Tag, Task, clean_text, now_iso

__all__ = ["Tag", "Task", "clean_text", "now_iso"]
