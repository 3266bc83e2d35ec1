from __future__ import annotations

import heapq
import itertools
import time
from math import inf

from .graph import Graph
from .logging_utils import log_event
from .results import AlgorithmStep, DijkstraResult, estimate_memory_bytes, reconstruct_path, snapshot_step

TIME_COMPLEXITY = "O((V + E) log V) where V is the number of vertices and E is the number of edges"
SPACE_COMPLEXITY = "O(V) for storing distances, previous nodes, and priority queue"


def search(graph: Graph, start_id: str, end_id: str) -> DijkstraResult:
    """Weighted shortest path with a full per-node trace.

    Stale heap entries are discarded at pop time instead of decreasing keys in place.
    Weights must be non-negative; negative weights give unspecified results.
    """
    graph.require_node(start_id, reason_code="unknown_start_node")
    graph.require_node(end_id, reason_code="unknown_end_node")

    t0 = time.perf_counter()

    distances: dict[str, float] = {node.id: inf for node in graph.nodes}
    previous: dict[str, str | None] = {node.id: None for node in graph.nodes}
    visited: dict[str, None] = {}
    steps: list[AlgorithmStep] = []

    # The counter keeps equal priorities in insertion order.
    counter = itertools.count()
    heap: list[tuple[float, int, str]] = []

    pq_operations = 0
    edges_processed = 0

    distances[start_id] = 0.0
    heapq.heappush(heap, (0.0, next(counter), start_id))
    pq_operations += 1

    while heap:
        _, _, current = heapq.heappop(heap)
        pq_operations += 1

        if current in visited:
            continue
        visited[current] = None

        steps.append(snapshot_step(current, visited=visited, distances=distances, previous=previous))

        if current == end_id:
            break

        for edge in graph.outgoing(current):
            edges_processed += 1
            neighbor = edge.target
            if neighbor in visited:
                continue
            if neighbor not in distances:
                log_event("graph_edge_skipped", source=edge.source, target=neighbor, reason="unknown_target")
                continue

            candidate = distances[current] + edge.weight
            if candidate < distances[neighbor]:
                distances[neighbor] = candidate
                previous[neighbor] = current
                heapq.heappush(heap, (candidate, next(counter), neighbor))
                pq_operations += 1

    path = reconstruct_path(previous, start=start_id, end=end_id, reached=end_id in visited)
    execution_time_ms = (time.perf_counter() - t0) * 1000.0

    return DijkstraResult(
        path=path,
        distance=distances[end_id],
        steps=tuple(steps),
        nodes_explored=len(visited),
        time_complexity=TIME_COMPLEXITY,
        space_complexity=SPACE_COMPLEXITY,
        execution_time_ms=execution_time_ms,
        priority_queue_operations=pq_operations,
        edges_processed=edges_processed,
        memory_usage_estimate=estimate_memory_bytes(
            distances=len(distances),
            previous=len(previous),
            visited=len(visited),
            steps=len(steps),
            queue_operations=pq_operations,
        ),
    )
