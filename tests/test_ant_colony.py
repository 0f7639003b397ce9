import numpy as np
import pytest

from tour_optimizer.data.category_durations import CategoryDurationTable
from tour_optimizer.errors import ValidationError
from tour_optimizer.models.domain import Coordinate
from tour_optimizer.services.metrics.recorder import MetricsRecorder
from tour_optimizer.services.routing.matrices import HaversineMatrixProvider
from tour_optimizer.services.routing.solvers.ant_colony import AntColony, AntColonySolver


def _pois() -> list[Coordinate]:
    rng = np.random.default_rng(21)
    return [Coordinate(float(lat), float(lon)) for lat, lon in rng.uniform(0.0, 0.05, size=(10, 2))]


def _solver(**kwargs) -> AntColonySolver:
    return AntColonySolver(
        provider=HaversineMatrixProvider(),
        recorder=MetricsRecorder(track_memory=False),
        durations=CategoryDurationTable({}, default_minutes=30),
        **kwargs,
    )


def test_best_distance_history_never_increases():
    route = _solver(iterations=25, seed=4).solve(_pois())

    history = route.metadata["best_distance_history"]
    assert len(history) == 25
    assert all(later <= earlier for earlier, later in zip(history, history[1:]))
    assert route.metadata["best_distance"] == history[-1]
    assert route.total_distance == pytest.approx(history[-1])


def test_same_seed_reproduces_the_tour():
    first = _solver(iterations=15, seed=99).solve(_pois())
    second = _solver(iterations=15, seed=99).solve(_pois())
    assert first.clustered_order == second.clustered_order


def test_callback_receives_every_iteration():
    calls = []

    def on_iteration(iteration, best_tour, best_distance, ant_tours, pheromones):
        calls.append((iteration, len(ant_tours), pheromones.shape))

    route = _solver(iterations=5, num_ants=3, seed=1, callback=on_iteration).solve(_pois())

    size = len(route.clusters)
    assert [call[0] for call in calls] == [0, 1, 2, 3, 4]
    assert all(call[1] == 3 for call in calls)
    assert all(call[2] == (size, size) for call in calls)


def test_colony_handles_zero_distances():
    colony = AntColony(
        np.zeros((4, 4)),
        num_ants=2,
        alpha=1.0,
        beta=5.0,
        evaporation_rate=0.5,
        iterations=3,
        seed=0,
    )

    result = colony.run()

    assert sorted(result.best_tour[:-1]) == [0, 1, 2, 3]
    assert result.best_tour[0] == result.best_tour[-1] == 0
    assert result.best_distance == 0.0
    # Evaporation only, no deposits on zero-length tours.
    assert np.allclose(colony.pheromones, 0.125)


def test_pheromones_are_deposited_symmetrically():
    distances = np.array([[0, 1, 2], [1, 0, 1], [2, 1, 0]], dtype=float)
    colony = AntColony(distances, num_ants=1, alpha=1.0, beta=1.0, evaporation_rate=0.0, iterations=1, seed=0)

    colony.run()

    assert np.allclose(colony.pheromones, colony.pheromones.T)


def test_invalid_parameters_are_rejected():
    with pytest.raises(ValidationError):
        _solver(num_ants=0)
    with pytest.raises(ValidationError):
        _solver(evaporation_rate=1.5)
