from __future__ import annotations

import time
from collections import deque
from math import inf

from .graph import Graph
from .logging_utils import log_event
from .results import (
    BFS_QUEUE_OP_BYTES,
    BFS_STEP_BYTES,
    AlgorithmStep,
    BFSResult,
    estimate_memory_bytes,
    reconstruct_path,
    snapshot_step,
)

TIME_COMPLEXITY = "O(V + E) where V is the number of vertices and E is the number of edges"
SPACE_COMPLEXITY = "O(V) for storing distances, previous nodes, and the queue"


def search(graph: Graph, start_id: str, end_id: str) -> BFSResult:
    """Fewest-edges search in strict FIFO discovery order.

    `distance` accumulates edge weights along the discovery path so it can be shown next to
    the weighted search; it is neither a hop count nor a minimum weight.
    """
    graph.require_node(start_id, reason_code="unknown_start_node")
    graph.require_node(end_id, reason_code="unknown_end_node")

    t0 = time.perf_counter()

    distances: dict[str, float] = {node.id: inf for node in graph.nodes}
    previous: dict[str, str | None] = {node.id: None for node in graph.nodes}
    visited: dict[str, None] = {}
    steps: list[AlgorithmStep] = []
    queue: deque[str] = deque()

    queue_operations = 0
    edges_processed = 0

    distances[start_id] = 0.0
    # Marked at discovery so nothing is ever enqueued twice.
    visited[start_id] = None
    queue.append(start_id)
    queue_operations += 1

    reached = False
    while queue:
        current = queue.popleft()
        queue_operations += 1

        steps.append(
            snapshot_step(current, visited=visited, distances=distances, previous=previous, queue=queue)
        )

        if current == end_id:
            reached = True
            break

        for edge in graph.outgoing(current):
            edges_processed += 1
            neighbor = edge.target
            if neighbor in visited:
                continue
            if neighbor not in distances:
                log_event("graph_edge_skipped", source=edge.source, target=neighbor, reason="unknown_target")
                continue

            visited[neighbor] = None
            distances[neighbor] = distances[current] + edge.weight
            previous[neighbor] = current
            queue.append(neighbor)
            queue_operations += 1

    path = reconstruct_path(previous, start=start_id, end=end_id, reached=reached)
    execution_time_ms = (time.perf_counter() - t0) * 1000.0

    return BFSResult(
        path=path,
        distance=distances[end_id] if reached else inf,
        steps=tuple(steps),
        nodes_explored=len(visited),
        time_complexity=TIME_COMPLEXITY,
        space_complexity=SPACE_COMPLEXITY,
        execution_time_ms=execution_time_ms,
        queue_operations=queue_operations,
        edges_processed=edges_processed,
        memory_usage_estimate=estimate_memory_bytes(
            distances=len(distances),
            previous=len(previous),
            visited=len(visited),
            steps=len(steps),
            queue_operations=queue_operations,
            step_bytes=BFS_STEP_BYTES,
            queue_op_bytes=BFS_QUEUE_OP_BYTES,
        ),
    )
