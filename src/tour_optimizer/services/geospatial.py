"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Mapping, Sequence

from shapely.geometry import LineString

from ..models.domain import Coordinate

EARTH_RADIUS_M = 6_371_000.0
EARTH_RADIUS_KM = EARTH_RADIUS_M / 1000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance in meters between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_m(lat1, lon1, lat2, lon2) / 1000.0


def distance_between(first: Coordinate, second: Coordinate) -> float:
    return haversine_m(first.latitude, first.longitude, second.latitude, second.longitude)


def coordinate_index(coordinates: Sequence[Coordinate]) -> dict[Coordinate, int]:
    """Map each coordinate to the first matrix row it occupies."""

    index: dict[Coordinate, int] = {}
    for position, coordinate in enumerate(coordinates):
        index.setdefault(coordinate, position)
    return index


def path_metric(order: Sequence[int], matrix: Sequence[Sequence[float]]) -> float:
    """Sum ``matrix[a][b]`` over consecutive index pairs of ``order``."""

    return sum(matrix[a][b] for a, b in zip(order, order[1:]))


def route_metric(
    points: Sequence[Coordinate],
    matrix: Sequence[Sequence[float]],
    index: Mapping[Coordinate, int] | None = None,
) -> float:
    """Sum a matrix metric along a coordinate path.

    Without ``index`` the path position is assumed to be the matrix row. Legs
    whose endpoints are missing from ``index`` contribute nothing.
    """

    if index is None:
        return sum(matrix[i][i + 1] for i in range(len(points) - 1))

    total = 0.0
    for origin, destination in zip(points, points[1:]):
        from_index = index.get(origin)
        to_index = index.get(destination)
        if from_index is not None and to_index is not None:
            total += matrix[from_index][to_index]
    return total


def centroid(coordinates: Sequence[Coordinate]) -> Coordinate:
    if not coordinates:
        raise ValueError("Cannot compute the centroid of an empty coordinate list.")
    lat = sum(c.latitude for c in coordinates) / len(coordinates)
    lon = sum(c.longitude for c in coordinates) / len(coordinates)
    return Coordinate(lat, lon)


def polar_angle(coordinate: Coordinate, center: Coordinate) -> float:
    """Counter-clockwise angle in radians of ``coordinate`` around ``center`` (east = 0)."""

    return math.atan2(coordinate.latitude - center.latitude, coordinate.longitude - center.longitude)


def radial_distance(coordinate: Coordinate, center: Coordinate) -> float:
    return distance_between(center, coordinate)


def path_is_simple(points: Sequence[Coordinate], *, closed: bool = False) -> bool:
    """Return True if the polyline through ``points`` never crosses itself.

    With ``closed`` the first point is appended so the return leg is checked too.
    """

    vertices = [(p.longitude, p.latitude) for p in points]
    if closed and vertices:
        vertices.append(vertices[0])
    if len(vertices) < 3:
        return True
    return LineString(vertices).is_simple
