"""Proximity clustering of POIs before tour search."""

from __future__ import annotations

from enum import Enum
from typing import Sequence

import numpy as np
from sklearn.cluster import DBSCAN

from ..errors import ValidationError
from ..models.domain import ClusteringResult, ClusterRecord, Coordinate, PoiMetadata
from .geospatial import EARTH_RADIUS_M, distance_between


class ClusterMode(str, Enum):
    SEED = "seed"
    CONNECTED = "connected"


def _metadata_at(metadata: Sequence[PoiMetadata] | None, index: int) -> PoiMetadata:
    if metadata is None:
        return PoiMetadata()
    return metadata[index]


def _record(pois: Sequence[Coordinate], metadata: Sequence[PoiMetadata] | None, ids: Sequence[int]) -> ClusterRecord:
    seed = ids[0]
    seed_meta = _metadata_at(metadata, seed)
    return ClusterRecord(
        representative=pois[seed],
        category=seed_meta.category,
        sub_category=seed_meta.sub_category,
        clustered_ids=tuple(ids),
    )


def _seed_clusters(pois: Sequence[Coordinate], interior: list[int], max_distance_m: float) -> list[list[int]]:
    """Greedy single pass: each unvisited POI seeds a cluster and absorbs POIs near the seed."""

    clusters: list[list[int]] = []
    visited: set[int] = set()
    for seed in interior:
        if seed in visited:
            continue
        cluster = [seed]
        visited.add(seed)
        for candidate in interior:
            if candidate in visited:
                continue
            if distance_between(pois[seed], pois[candidate]) <= max_distance_m:
                cluster.append(candidate)
                visited.add(candidate)
        clusters.append(cluster)
    return clusters


def _connected_clusters(pois: Sequence[Coordinate], interior: list[int], max_distance_m: float) -> list[list[int]]:
    """Connected components of the proximity graph (transitive clustering)."""

    if max_distance_m <= 0:
        # DBSCAN needs a positive radius; with none, only identical coordinates group.
        exact: dict[Coordinate, list[int]] = {}
        for index in interior:
            exact.setdefault(pois[index], []).append(index)
        return list(exact.values())

    radians = np.radians([[pois[i].latitude, pois[i].longitude] for i in interior])
    # min_samples=1 makes every POI a core point, so DBSCAN labels are graph components.
    labels = DBSCAN(
        eps=max_distance_m / EARTH_RADIUS_M,
        min_samples=1,
        metric="haversine",
        algorithm="ball_tree",
    ).fit_predict(radians)

    grouped: dict[int, list[int]] = {}
    for original_index, label in zip(interior, labels):
        grouped.setdefault(int(label), []).append(original_index)
    return sorted(grouped.values(), key=lambda ids: ids[0])


def cluster_pois(
    pois: Sequence[Coordinate],
    max_distance_m: float = 100.0,
    metadata: Sequence[PoiMetadata] | None = None,
    *,
    mode: ClusterMode = ClusterMode.SEED,
) -> ClusteringResult:
    """Collapse nearby interior POIs into representative nodes.

    The first and last POIs (start and end) are never merged and always occupy
    the first and last clustered slots. In ``SEED`` mode a POI joins a cluster
    only when it lies within ``max_distance_m`` of that cluster's seed.
    """

    if metadata is not None and len(metadata) != len(pois):
        raise ValidationError(
            f"Metadata has {len(metadata)} entries but {len(pois)} POIs were supplied."
        )
    if max_distance_m < 0:
        raise ValidationError("max_distance_m must be >= 0")

    if len(pois) <= 2:
        records = [_record(pois, metadata, [index]) for index in range(len(pois))]
        return ClusteringResult(pois=list(pois), records=records)

    last = len(pois) - 1
    interior = list(range(1, last))
    if mode is ClusterMode.CONNECTED:
        clusters = _connected_clusters(pois, interior, max_distance_m)
    else:
        clusters = _seed_clusters(pois, interior, max_distance_m)

    records = [_record(pois, metadata, [0])]
    records.extend(_record(pois, metadata, ids) for ids in clusters)
    records.append(_record(pois, metadata, [last]))
    return ClusteringResult(pois=[record.representative for record in records], records=records)
