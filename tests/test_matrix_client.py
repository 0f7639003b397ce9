import json

import httpx
import pytest

from tour_optimizer.errors import ConfigurationError, UpstreamMatrixError
from tour_optimizer.models.domain import Coordinate
from tour_optimizer.services.routing.matrix_client import UNREACHABLE_PENALTY, OpenRouteServiceClient


def _coords(n: int) -> list[Coordinate]:
    return [Coordinate(0.0, float(i)) for i in range(n)]


def _matrix_handler(requests: list):
    """Answer with distance |lon_a - lon_b| * 1000 and duration distance / 10."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append(body)
        locations = body["locations"]
        sources = body.get("sources", list(range(len(locations))))
        destinations = body.get("destinations", list(range(len(locations))))
        distances = [
            [abs(locations[s][0] - locations[d][0]) * 1000.0 for d in destinations] for s in sources
        ]
        durations = [[value / 10.0 for value in row] for row in distances]
        return httpx.Response(200, json={"distances": distances, "durations": durations})

    return handler


def _client(handler, **kwargs) -> OpenRouteServiceClient:
    return OpenRouteServiceClient(
        api_key="test-key",
        base_url="https://ors.example.com/",
        backoff_seconds=0.0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def test_missing_api_key_is_a_configuration_error(monkeypatch):
    from tour_optimizer.config import settings

    monkeypatch.setattr(settings, "ors_api_key", None)
    with pytest.raises(ConfigurationError):
        OpenRouteServiceClient()


def test_single_request_payload_and_parsing():
    requests: list = []
    seen_headers: list = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_headers.append(request.headers.get("Authorization"))
        assert request.url.path == "/v2/matrix/driving-car"
        return _matrix_handler(requests)(request)

    client = _client(handler, profile="driving-car")
    matrices = client.get_route_matrices(_coords(3))

    assert seen_headers == ["test-key"]
    assert requests[0]["locations"] == [[0.0, 0.0], [1.0, 0.0], [2.0, 0.0]]
    assert requests[0]["metrics"] == ["distance", "duration"]
    assert matrices.distance[0][2] == 2000.0
    assert matrices.duration[2][0] == 200.0


def test_null_cells_become_unreachable_penalty():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"distances": [[0, None], [5, 0]], "durations": [[0, None], [1, 0]]},
        )

    matrices = _client(handler).get_route_matrices(_coords(2))
    assert matrices.distance[0][1] == UNREACHABLE_PENALTY
    assert matrices.duration[0][1] == UNREACHABLE_PENALTY


def test_server_errors_are_retried_then_succeed():
    attempts = {"count": 0}
    requests: list = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] < 3:
            return httpx.Response(503, text="busy")
        return _matrix_handler(requests)(request)

    matrices = _client(handler, max_retries=3).get_route_matrices(_coords(2))
    assert attempts["count"] == 3
    assert matrices.distance[0][1] == 1000.0


def test_server_errors_exhaust_retries():
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        return httpx.Response(500, text="boom")

    with pytest.raises(UpstreamMatrixError):
        _client(handler, max_retries=2).get_route_matrices(_coords(2))
    assert attempts["count"] == 3


def test_client_errors_are_not_retried():
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        return httpx.Response(403, text="forbidden")

    with pytest.raises(UpstreamMatrixError):
        _client(handler, max_retries=3).get_route_matrices(_coords(2))
    assert attempts["count"] == 1


def test_network_errors_are_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(UpstreamMatrixError):
        _client(handler, max_retries=1).get_route_matrices(_coords(2))


def test_malformed_body_is_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"distances": [[0, 1]], "durations": [[0, 1], [1, 0]]})

    with pytest.raises(UpstreamMatrixError):
        _client(handler).get_route_matrices(_coords(2))


def test_non_json_body_is_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(UpstreamMatrixError):
        _client(handler).get_route_matrices(_coords(2))


def test_large_requests_are_chunked_and_reassembled():
    requests: list = []
    client = _client(_matrix_handler(requests), max_locations_per_request=4, max_parallel_requests=2)

    matrices = client.get_route_matrices(_coords(6))

    # Chunks of two locations give a 3x3 grid of source/destination requests.
    assert len(requests) == 9
    for i in range(6):
        for j in range(6):
            assert matrices.distance[i][j] == abs(i - j) * 1000.0
            assert matrices.duration[i][j] == abs(i - j) * 100.0


def test_failed_chunk_fails_whole_request():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if body["locations"][0][0] == 4.0:
            return httpx.Response(400, text="bad chunk")
        return _matrix_handler([])(request)

    client = _client(handler, max_locations_per_request=4)
    with pytest.raises(UpstreamMatrixError):
        client.get_route_matrices(_coords(6))
