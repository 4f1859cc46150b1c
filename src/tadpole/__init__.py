"""Tadpole: an ordered task list with tags and an optimistic sync client."""

__version__ = "0.1.0"
