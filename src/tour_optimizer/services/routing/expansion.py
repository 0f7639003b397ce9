"""Expansion of clustered tours back onto the original POI list."""

from __future__ import annotations

from typing import Sequence

from ...models.domain import ClusterRecord, Coordinate


def expand_route(
    clustered_order: Sequence[int],
    records: Sequence[ClusterRecord],
    original_pois: Sequence[Coordinate],
) -> tuple[list[Coordinate], list[int]]:
    """Replace each clustered stop with the original POIs its cluster absorbed.

    Stops are matched to cluster records by clustered index. Original POIs keep
    their absorption order inside a cluster and appear once, so the closing
    return to the start does not repeat it.
    """

    points: list[Coordinate] = []
    indices: list[int] = []
    seen: set[int] = set()
    for clustered_index in clustered_order:
        for original_index in records[clustered_index].clustered_ids:
            if original_index in seen:
                continue
            seen.add(original_index)
            indices.append(original_index)
            points.append(original_pois[original_index])
    return points, indices
