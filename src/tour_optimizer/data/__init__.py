"""Reference data shipped with the package."""

from .category_durations import CategoryDurationTable, load_category_durations

__all__ = ["CategoryDurationTable", "load_category_durations"]
