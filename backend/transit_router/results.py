"""Trace and result types shared by every search.

Steps are point-in-time snapshots: each one owns private copies of the algorithm state,
wrapped read-only, so later mutation of the live maps can never reach a recorded step.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal

from .graph import Edge
from .routing_mode import RoutingMode

AlgorithmName = Literal["dijkstra", "bfs", "enhanced_dijkstra"]


@dataclass(frozen=True, kw_only=True)
class AlgorithmStep:
    current_node: str
    visited_nodes: tuple[str, ...]
    distances: Mapping[str, float]
    previous_nodes: Mapping[str, str | None]
    queue_snapshot: tuple[str, ...] | None = None


def snapshot_step(
    current_node: str,
    *,
    visited: Iterable[str],
    distances: Mapping[str, float],
    previous: Mapping[str, str | None],
    queue: Iterable[str] | None = None,
) -> AlgorithmStep:
    return AlgorithmStep(
        current_node=current_node,
        visited_nodes=tuple(visited),
        distances=MappingProxyType(dict(distances)),
        previous_nodes=MappingProxyType(dict(previous)),
        queue_snapshot=None if queue is None else tuple(queue),
    )


def reconstruct_path(
    previous: Mapping[str, str | None],
    *,
    start: str,
    end: str,
    reached: bool,
) -> tuple[str, ...]:
    if not reached:
        return ()
    path: list[str] = []
    current: str | None = end
    seen: set[str] = set()
    while current is not None and current not in seen:
        seen.add(current)
        path.append(current)
        if current == start:
            break
        current = previous.get(current)
    path.reverse()
    return tuple(path)


DIJKSTRA_STEP_BYTES = 100
DIJKSTRA_QUEUE_OP_BYTES = 16
BFS_STEP_BYTES = 120
BFS_QUEUE_OP_BYTES = 8
EXTERNAL_CALL_BYTES = 1024


def estimate_memory_bytes(
    *,
    distances: int,
    previous: int,
    visited: int,
    steps: int,
    queue_operations: int,
    external_calls: int = 0,
    step_bytes: int = DIJKSTRA_STEP_BYTES,
    queue_op_bytes: int = DIJKSTRA_QUEUE_OP_BYTES,
) -> int:
    # Rough per-entry cost model; only meaningful for side-by-side comparison.
    return (
        distances * 8
        + previous * 4
        + visited * 4
        + steps * step_bytes
        + queue_operations * queue_op_bytes
        + external_calls * EXTERNAL_CALL_BYTES
    )


@dataclass(frozen=True, kw_only=True)
class SearchResult(ABC):
    path: tuple[str, ...]
    distance: float
    steps: tuple[AlgorithmStep, ...]
    nodes_explored: int
    time_complexity: str
    space_complexity: str
    execution_time_ms: float
    edges_processed: int
    memory_usage_estimate: int

    @property
    @abstractmethod
    def operations(self) -> int:
        """Queue operations performed by the search."""

    @property
    def reachable(self) -> bool:
        return bool(self.path)


@dataclass(frozen=True, kw_only=True)
class DijkstraResult(SearchResult):
    priority_queue_operations: int
    algorithm: Literal["dijkstra", "enhanced_dijkstra"] = "dijkstra"

    @property
    def operations(self) -> int:
        return self.priority_queue_operations


@dataclass(frozen=True, kw_only=True)
class BFSResult(SearchResult):
    queue_operations: int
    algorithm: Literal["bfs"] = "bfs"

    @property
    def operations(self) -> int:
        return self.queue_operations


@dataclass(frozen=True, kw_only=True)
class EnhancedDijkstraResult(DijkstraResult):
    algorithm: Literal["dijkstra", "enhanced_dijkstra"] = "enhanced_dijkstra"
    routing_mode: RoutingMode = RoutingMode.STRAIGHT_LINE
    path_edges: tuple[Edge, ...] = ()
    osrm_calls_count: int = 0
    osrm_cache_size: int = 0
    # Keyed "source-target"; carried so segment composition can reuse resolved routes.
    osrm_route_data: Mapping[str, Any] | None = field(default=None, compare=False)


def algorithm_metrics(result: SearchResult) -> dict[str, Any]:
    """Flat educational summary of a finished search."""
    return {
        "algorithm": getattr(result, "algorithm", "unknown"),
        "nodes_explored": result.nodes_explored,
        "path_length": len(result.path),
        "total_steps": len(result.steps),
        "final_distance": result.distance,
        "time_complexity": result.time_complexity,
        "space_complexity": result.space_complexity,
        "execution_time_ms": result.execution_time_ms,
        "operations": result.operations,
        "edges_processed": result.edges_processed,
        "memory_usage_estimate": result.memory_usage_estimate,
        "operations_per_ms": result.operations / (result.execution_time_ms or 1),
        "efficiency": len(result.path) / (result.nodes_explored or 1),
    }
