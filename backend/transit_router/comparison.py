from __future__ import annotations

from dataclasses import dataclass

from . import bfs, enhanced_dijkstra
from .graph import Graph
from .results import BFSResult, DijkstraResult
from .routing_mode import RoutingMode, parse_routing_mode
from .routing_osrm import OSRMClient


@dataclass(frozen=True)
class ComparisonMetrics:
    """Weighted-search figures minus BFS figures, plus two derived ratios."""

    time_difference: float
    path_length_difference: int
    nodes_explored_difference: int
    is_path_identical: bool
    execution_time_difference_ms: float
    operations_difference: int
    edges_processed_difference: int
    memory_usage_difference: int
    efficiency_ratio: float
    speed_ratio: float


@dataclass(frozen=True)
class ComparisonRun:
    weighted: DijkstraResult
    bfs: BFSResult
    metrics: ComparisonMetrics


def _guard(value: float) -> float:
    return value if value != 0 else 1


def _delta(a: float, b: float) -> float:
    # Both unreachable: inf - inf would be nan.
    return 0.0 if a == b else a - b


def paths_identical(a: tuple[str, ...] | list[str], b: tuple[str, ...] | list[str]) -> bool:
    return len(a) == len(b) and all(x == y for x, y in zip(a, b))


def compare(weighted: DijkstraResult, bfs_result: BFSResult) -> ComparisonMetrics:
    weighted_efficiency = len(weighted.path) / _guard(weighted.nodes_explored)
    bfs_efficiency = len(bfs_result.path) / _guard(bfs_result.nodes_explored)
    weighted_speed = weighted.operations / _guard(weighted.execution_time_ms)
    bfs_speed = bfs_result.operations / _guard(bfs_result.execution_time_ms)

    return ComparisonMetrics(
        time_difference=_delta(weighted.distance, bfs_result.distance),
        path_length_difference=len(weighted.path) - len(bfs_result.path),
        nodes_explored_difference=weighted.nodes_explored - bfs_result.nodes_explored,
        is_path_identical=paths_identical(weighted.path, bfs_result.path),
        execution_time_difference_ms=_delta(weighted.execution_time_ms, bfs_result.execution_time_ms),
        operations_difference=weighted.operations - bfs_result.operations,
        edges_processed_difference=weighted.edges_processed - bfs_result.edges_processed,
        memory_usage_difference=weighted.memory_usage_estimate - bfs_result.memory_usage_estimate,
        efficiency_ratio=weighted_efficiency / _guard(bfs_efficiency),
        speed_ratio=weighted_speed / _guard(bfs_speed),
    )


async def run_comparison(
    graph: Graph,
    start_id: str,
    end_id: str,
    routing_mode: RoutingMode | str = RoutingMode.STRAIGHT_LINE,
    *,
    client: OSRMClient | None = None,
) -> ComparisonRun:
    """Run both searches on one query and compare them."""
    mode = parse_routing_mode(routing_mode)
    weighted = await enhanced_dijkstra.search_async(
        graph,
        start_id,
        end_id,
        mode.is_realistic,
        client=client,
    )
    unweighted = bfs.search(graph, start_id, end_id)
    return ComparisonRun(weighted=weighted, bfs=unweighted, metrics=compare(weighted, unweighted))
