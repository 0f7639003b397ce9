"""On-disk layout for persisted tour runs.

Every run gets its own directory under ``<data_root>/outputs`` holding the
route as JSON, the route as CSV, and a snapshot of the metrics log.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import settings

logger = logging.getLogger(__name__)

ROUTE_JSON = "route.json"
ROUTE_CSV = "route.csv"
METRICS_CSV = "metrics.csv"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def run_slug(label: str) -> str:
    """Directory-safe form of a run label (``epsilon=0.2`` becomes ``epsilon-0.2``)."""
    slug = _UNSAFE_CHARS.sub("_", label.replace("=", "-")).strip("._")
    return slug or "tour"


@dataclass(slots=True, frozen=True)
class TourRun:
    directory: Path

    @property
    def route_json(self) -> Path:
        return self.directory / ROUTE_JSON

    @property
    def route_csv(self) -> Path:
        return self.directory / ROUTE_CSV

    @property
    def metrics_csv(self) -> Path:
        return self.directory / METRICS_CSV


class FileStorage:
    """Writes tour runs below the configured data root."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or settings.data_root).resolve()
        self.output_root = self.root / "outputs"

    def _new_run(self, label: str) -> TourRun:
        self.output_root.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        base = f"{run_slug(label)}_{stamp}"
        directory = self.output_root / base
        attempt = 0
        while True:
            try:
                directory.mkdir()
            except FileExistsError:
                attempt += 1
                directory = self.output_root / f"{base}_{attempt}"
                continue
            return TourRun(directory)

    def save_run(self, label: str, *, route: dict[str, Any], route_csv: str, metrics_csv: str) -> TourRun:
        run = self._new_run(label)
        run.route_json.write_text(
            json.dumps(route, ensure_ascii=False, indent=2, default=str),
            encoding="utf-8",
        )
        run.route_csv.write_text(route_csv, encoding="utf-8", newline="")
        run.metrics_csv.write_text(metrics_csv, encoding="utf-8", newline="")
        logger.debug(f"Wrote tour run files to {run.directory}")
        return run

    def list_runs(self, label: str | None = None) -> list[TourRun]:
        """Persisted runs in name order, optionally only those saved under ``label``."""

        if not self.output_root.is_dir():
            return []
        prefix = f"{run_slug(label)}_" if label is not None else ""
        return [
            TourRun(path)
            for path in sorted(self.output_root.iterdir())
            if path.is_dir() and path.name.startswith(prefix)
        ]

    def load_route(self, run: TourRun) -> dict[str, Any]:
        return json.loads(run.route_json.read_text(encoding="utf-8"))
