"""HTTP client for the OpenRouteService matrix API."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Sequence

import httpx

from ...config import settings
from ...errors import ConfigurationError, UpstreamMatrixError
from ...models.domain import Coordinate, RouteMatrices

# ORS reports unreachable pairs as null; treat them as effectively infinite but finite.
UNREACHABLE_PENALTY = 999_999_999.0

logger = logging.getLogger(__name__)


class OpenRouteServiceClient:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        max_locations_per_request: int | None = None,
        max_parallel_requests: int | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or settings.ors_api_key
        if not self.api_key:
            raise ConfigurationError("OpenRouteService API key is not configured (TOUR_ORS_API_KEY).")
        self.base_url = (base_url or settings.ors_base_url).rstrip("/")
        self.profile = profile or settings.ors_profile
        self.timeout = timeout if timeout is not None else settings.matrix_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.matrix_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.matrix_backoff_seconds
        self.max_locations_per_request = max_locations_per_request or settings.matrix_max_locations_per_request
        self.max_parallel_requests = max_parallel_requests or settings.matrix_max_parallel_requests
        self._transport = transport

    @property
    def matrix_url(self) -> str:
        return f"{self.base_url}/v2/matrix/{self.profile}"

    def _get_client(self) -> httpx.Client:
        """Create a per-request client; chunk requests run on worker threads."""
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={
                "Authorization": self.api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            transport=self._transport,
        )

    def _matrix_single_request(
        self,
        coordinates: Sequence[Coordinate],
        sources: Sequence[int] | None = None,
        destinations: Sequence[int] | None = None,
    ) -> tuple[list[list[float]], list[list[float]]]:
        payload: dict = {
            "locations": [[coord.longitude, coord.latitude] for coord in coordinates],
            "metrics": ["distance", "duration"],
            "units": "m",
        }
        if sources is not None:
            payload["sources"] = list(sources)
        if destinations is not None:
            payload["destinations"] = list(destinations)

        expected_rows = len(sources) if sources is not None else len(coordinates)
        expected_cols = len(destinations) if destinations is not None else len(coordinates)

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.post(self.matrix_url, json=payload)
                    response.raise_for_status()
                    data = response.json()
                    return (
                        _parse_matrix(data, "distances", expected_rows, expected_cols),
                        _parse_matrix(data, "durations", expected_rows, expected_cols),
                    )
                except httpx.HTTPStatusError as e:
                    status = e.response.status_code
                    # Client errors other than rate limiting will not succeed on retry.
                    if 400 <= status < 500 and status != 429:
                        raise UpstreamMatrixError(
                            f"OpenRouteService rejected the matrix request ({status}): {e.response.text}"
                        ) from e
                    attempt += 1
                    if attempt > self.max_retries:
                        raise UpstreamMatrixError(
                            f"OpenRouteService matrix request failed with status {status} "
                            f"after {self.max_retries} retries."
                        ) from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.warning(f"ORS matrix returned {status}, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
                except (httpx.TimeoutException, httpx.NetworkError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise UpstreamMatrixError(
                            f"Failed to reach OpenRouteService at {self.base_url}: {e}"
                        ) from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"ORS network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
                except (ValueError, TypeError) as e:
                    # Undecodable JSON body or non-numeric cells.
                    raise UpstreamMatrixError(f"OpenRouteService returned an invalid response: {e}") from e
        finally:
            client.close()

    def _process_chunk_request(
        self,
        coordinates: Sequence[Coordinate],
        src_start: int,
        src_end: int,
        dst_start: int,
        dst_end: int,
    ) -> tuple[int, int, int, int, list[list[float]], list[list[float]]]:
        source_chunk = list(coordinates[src_start:src_end])
        destination_chunk = list(coordinates[dst_start:dst_end])
        chunk_coords = source_chunk + destination_chunk
        src_indices = list(range(len(source_chunk)))
        dst_indices = list(range(len(source_chunk), len(chunk_coords)))
        distances, durations = self._matrix_single_request(chunk_coords, src_indices, dst_indices)
        return src_start, src_end, dst_start, dst_end, distances, durations

    def get_route_matrices(self, coordinates: Sequence[Coordinate]) -> RouteMatrices:
        """Get distance/duration matrices, chunking large coordinate lists across parallel requests."""
        if len(coordinates) < 2:
            raise UpstreamMatrixError("At least two coordinates are required for matrix calculation.")

        if len(coordinates) <= self.max_locations_per_request:
            distances, durations = self._matrix_single_request(coordinates)
            return RouteMatrices(distance=distances, duration=durations)

        start_time = time.perf_counter()
        # A chunk pair sends both halves as locations, so each half gets half the budget.
        chunk_size = max(1, self.max_locations_per_request // 2)
        n = len(coordinates)
        ranges = [(i, min(i + chunk_size, n)) for i in range(0, n, chunk_size)]
        total_requests = len(ranges) * len(ranges)
        logger.info(
            f"Chunking ORS matrix request: {n} coordinates into {total_requests} requests "
            f"(max {self.max_parallel_requests} concurrent)"
        )

        distances = [[0.0] * n for _ in range(n)]
        durations = [[0.0] * n for _ in range(n)]

        with ThreadPoolExecutor(max_workers=self.max_parallel_requests) as executor:
            futures = [
                executor.submit(self._process_chunk_request, coordinates, src_start, src_end, dst_start, dst_end)
                for src_start, src_end in ranges
                for dst_start, dst_end in ranges
            ]
            for future in as_completed(futures):
                # Any failed chunk leaves holes in the matrix, so the whole call fails.
                src_start, src_end, dst_start, dst_end, chunk_distances, chunk_durations = future.result()
                for local_src, global_src in enumerate(range(src_start, src_end)):
                    for local_dst, global_dst in enumerate(range(dst_start, dst_end)):
                        distances[global_src][global_dst] = chunk_distances[local_src][local_dst]
                        durations[global_src][global_dst] = chunk_durations[local_src][local_dst]

        elapsed = time.perf_counter() - start_time
        logger.info(f"Completed chunked ORS matrix request: {total_requests} requests in {elapsed:.2f}s")
        return RouteMatrices(distance=distances, duration=durations)


def _parse_matrix(data: dict, key: str, rows: int, cols: int) -> list[list[float]]:
    matrix = data.get(key) if isinstance(data, dict) else None
    if not isinstance(matrix, list) or len(matrix) != rows:
        raise UpstreamMatrixError(f"OpenRouteService response has a missing or malformed '{key}' matrix.")
    parsed: list[list[float]] = []
    for row in matrix:
        if not isinstance(row, list) or len(row) != cols:
            raise UpstreamMatrixError(f"OpenRouteService '{key}' matrix is not {rows}x{cols}.")
        parsed.append([UNREACHABLE_PENALTY if value is None else float(value) for value in row])
    return parsed
