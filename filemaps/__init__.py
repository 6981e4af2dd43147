"""File Maps backend: map registry, map document stores and directory scanning."""

__version__ = "0.2.0"
