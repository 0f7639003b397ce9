"""Category/sub-category to visit duration lookup."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

from ..config import settings
from ..models.domain import PoiMetadata

logger = logging.getLogger(__name__)

_UNIT_TO_MINUTES = {"minutes": 1.0, "minute": 1.0, "min": 1.0, "hours": 60.0, "hour": 60.0, "h": 60.0}


class CategoryDurationTable:
    """Visit durations keyed by lower-cased category and sub-category.

    Any POI without both a category and a sub-category, or with a pair that is
    not in the table, gets ``default_minutes``.
    """

    def __init__(self, table: Mapping[str, Mapping[str, Mapping]], *, default_minutes: float | None = None) -> None:
        self.default_minutes = (
            default_minutes if default_minutes is not None else settings.default_visit_duration_minutes
        )
        self._minutes: dict[tuple[str, str], float] = {}
        for category, sub_categories in table.items():
            for sub_category, entry in sub_categories.items():
                unit = str(entry.get("unit", "minutes")).lower()
                factor = _UNIT_TO_MINUTES.get(unit)
                if factor is None:
                    raise ValueError(f"Unknown duration unit '{unit}' for {category}/{sub_category}.")
                self._minutes[(category.lower(), sub_category.lower())] = float(entry["duration"]) * factor

    def visit_minutes(self, category: Optional[str] = None, sub_category: Optional[str] = None) -> float:
        if not category or not sub_category:
            return self.default_minutes
        return self._minutes.get((category.lower(), sub_category.lower()), self.default_minutes)

    def visit_seconds(self, category: Optional[str] = None, sub_category: Optional[str] = None) -> float:
        return self.visit_minutes(category, sub_category) * 60.0

    def for_metadata(self, metadata: PoiMetadata | None) -> float:
        """Visit duration in seconds for a POI's metadata."""
        if metadata is None:
            return self.visit_seconds()
        return self.visit_seconds(metadata.category, metadata.sub_category)

    def __len__(self) -> int:
        return len(self._minutes)


@lru_cache(maxsize=4)
def load_category_durations(source: Path | None = None) -> CategoryDurationTable:
    path = source or settings.category_durations_file
    if not path.exists():
        raise FileNotFoundError(f"Category duration table not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        table = json.load(handle)
    durations = CategoryDurationTable(table)
    logger.debug(f"Loaded {len(durations)} category durations from {path}")
    return durations
