from __future__ import annotations

import heapq
import itertools
import logging
import time
from math import inf
from types import MappingProxyType

from .dijkstra import SPACE_COMPLEXITY, TIME_COMPLEXITY
from .errors import OSRMError
from .graph import Edge, Graph, Node
from .logging_utils import log_event
from .results import AlgorithmStep, EnhancedDijkstraResult, estimate_memory_bytes, reconstruct_path, snapshot_step
from .routing_mode import RoutingMode
from .routing_osrm import OSRMClient, OSRMRoute

OSRM_TIME_COMPLEXITY = "O((V + E) log V + E * OSRM_API_TIME) where OSRM calls add network latency"
OSRM_SPACE_COMPLEXITY = (
    "O(V + OSRM_CACHE) for storing distances, previous nodes, priority queue, and OSRM cache"
)
OSRM_PROFILE = "driving"


class EdgeWeightResolver:
    """Resolves edge weights for one search run.

    Resolved minute-weights are cached per (source, target) and reused for the reverse pair.
    A pair whose lookup fails keeps its static weight for the rest of the run.
    """

    def __init__(self, client: OSRMClient | None, *, use_external_weights: bool) -> None:
        self._client = client
        self.use_external_weights = use_external_weights
        self.weights: dict[tuple[str, str], float] = {}
        self.routes: dict[str, OSRMRoute] = {}
        self.calls = 0

    async def resolve(self, edge: Edge, source: Node, target: Node) -> float:
        if not self.use_external_weights or self._client is None:
            return edge.weight

        key = (edge.source, edge.target)
        if key in self.weights:
            return self.weights[key]
        reverse = (edge.target, edge.source)
        if reverse in self.weights:
            return self.weights[reverse]

        self.calls += 1
        try:
            route = await self._client.get_route(
                source.latitude,
                source.longitude,
                target.latitude,
                target.longitude,
                OSRM_PROFILE,
            )
        except OSRMError as e:
            log_event(
                "osrm_weight_error",
                level=logging.WARNING,
                source=edge.source,
                target=edge.target,
                error=str(e),
            )
            route = None

        if route is None:
            log_event("osrm_weight_fallback", source=edge.source, target=edge.target, weight=edge.weight)
            self.weights[key] = edge.weight
            return edge.weight

        weight = route.duration_s / 60.0
        self.weights[key] = weight
        self.routes[f"{edge.source}-{edge.target}"] = route
        return weight


async def search_async(
    graph: Graph,
    start_id: str,
    end_id: str,
    use_external_weights: bool = False,
    *,
    client: OSRMClient | None = None,
) -> EnhancedDijkstraResult:
    """Weighted shortest path whose edge weights may come from OSRM travel times.

    Each relaxation awaits its weight before touching the heap or the distance map, so the
    traversal stays sequential even while it waits on the network.
    """
    graph.require_node(start_id, reason_code="unknown_start_node")
    graph.require_node(end_id, reason_code="unknown_end_node")

    owns_client = use_external_weights and client is None
    if owns_client:
        client = OSRMClient()

    try:
        return await _run(graph, start_id, end_id, use_external_weights, client)
    finally:
        if owns_client and client is not None:
            await client.aclose()


async def _run(
    graph: Graph,
    start_id: str,
    end_id: str,
    use_external_weights: bool,
    client: OSRMClient | None,
) -> EnhancedDijkstraResult:
    t0 = time.perf_counter()
    resolver = EdgeWeightResolver(client, use_external_weights=use_external_weights)

    distances: dict[str, float] = {node.id: inf for node in graph.nodes}
    previous: dict[str, str | None] = {node.id: None for node in graph.nodes}
    visited: dict[str, None] = {}
    steps: list[AlgorithmStep] = []

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

            source_node = graph.node(edge.source)
            target_node = graph.node(neighbor)
            if source_node is None or target_node is None:
                log_event(
                    "graph_edge_skipped",
                    level=logging.WARNING,
                    source=edge.source,
                    target=neighbor,
                    reason="missing_node",
                )
                continue

            weight = await resolver.resolve(edge, source_node, target_node)

            candidate = distances[current] + weight
            if candidate < distances[neighbor]:
                distances[neighbor] = candidate
                previous[neighbor] = current
                heapq.heappush(heap, (candidate, next(counter), neighbor))
                pq_operations += 1

    path = reconstruct_path(previous, start=start_id, end=end_id, reached=end_id in visited)
    path_edges = tuple(
        edge for edge in (graph.find_edge(a, b) for a, b in zip(path, path[1:])) if edge is not None
    )
    execution_time_ms = (time.perf_counter() - t0) * 1000.0

    log_event(
        "enhanced_dijkstra_completed",
        start=start_id,
        end=end_id,
        use_external_weights=use_external_weights,
        path_length=len(path),
        total_distance=None if distances[end_id] == inf else distances[end_id],
        nodes_explored=len(visited),
        osrm_calls=resolver.calls,
        duration_ms=round(execution_time_ms, 2),
    )

    return EnhancedDijkstraResult(
        path=path,
        distance=distances[end_id],
        steps=tuple(steps),
        nodes_explored=len(visited),
        time_complexity=OSRM_TIME_COMPLEXITY if use_external_weights else TIME_COMPLEXITY,
        space_complexity=OSRM_SPACE_COMPLEXITY if use_external_weights else SPACE_COMPLEXITY,
        execution_time_ms=execution_time_ms,
        priority_queue_operations=pq_operations,
        edges_processed=edges_processed,
        memory_usage_estimate=estimate_memory_bytes(
            distances=len(distances),
            previous=len(previous),
            visited=len(visited),
            steps=len(steps),
            queue_operations=pq_operations,
            external_calls=resolver.calls,
        ),
        routing_mode=RoutingMode.OSRM_REALISTIC if use_external_weights else RoutingMode.STRAIGHT_LINE,
        path_edges=path_edges,
        osrm_calls_count=resolver.calls,
        osrm_cache_size=len(resolver.weights),
        osrm_route_data=MappingProxyType(dict(resolver.routes)) if use_external_weights else None,
    )
