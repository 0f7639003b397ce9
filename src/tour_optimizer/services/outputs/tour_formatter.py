"""Serializers for tour outputs."""

from __future__ import annotations

import csv
import io

from ...models.domain import Route

SECONDS_PER_MINUTE = 60.0


def _coordinate(point) -> dict:
    return {"latitude": point.latitude, "longitude": point.longitude}


def route_to_json(route: Route) -> dict:
    return {
        "algorithm": route.algorithm,
        "variant": route.variant,
        "total_distance_m": route.total_distance,
        "duration_s": route.duration,
        "visit_time_s": route.visit_time,
        "total_time_s": route.total_time,
        "total_time_min": round(route.total_time / SECONDS_PER_MINUTE, 2),
        "clustered_order": route.clustered_order,
        "points": [
            {"original_index": index, **_coordinate(point)}
            for index, point in zip(route.original_indices, route.points)
        ],
        "clusters": [
            {
                "representative": _coordinate(record.representative),
                "category": record.category,
                "sub_category": record.sub_category,
                "clustered_ids": list(record.clustered_ids),
            }
            for record in route.clusters
        ],
        "warnings": [str(warning) for warning in route.warnings],
        "metadata": route.metadata,
    }


def route_to_csv(route: Route) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "sequence",
        "original_index",
        "latitude",
        "longitude",
        "algorithm",
        "variant",
        "total_distance_km",
        "total_time_min",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames, lineterminator="\n")
    writer.writeheader()
    for sequence, (index, point) in enumerate(zip(route.original_indices, route.points), start=1):
        writer.writerow(
            {
                "sequence": sequence,
                "original_index": index,
                "latitude": point.latitude,
                "longitude": point.longitude,
                "algorithm": route.algorithm,
                "variant": route.variant or "",
                "total_distance_km": round(route.total_distance / 1000.0, 3),
                "total_time_min": round(route.total_time / SECONDS_PER_MINUTE, 2),
            }
        )
    return buffer.getvalue()
