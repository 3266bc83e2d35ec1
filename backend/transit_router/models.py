from __future__ import annotations

import math
from types import MappingProxyType
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .graph import Edge, Graph, Node
from .results import AlgorithmStep
from .routing_mode import RoutingMode

AlgorithmChoice = Literal["dijkstra", "bfs", "enhanced_dijkstra"]


def finite_or_none(value: float) -> float | None:
    return value if math.isfinite(value) else None


class NodeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(..., min_length=1)
    name: str = ""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    transport_modes: list[str] = Field(default_factory=list, alias="transportModes")
    corridor: str | None = None
    station_type: str | None = Field(default=None, alias="stationType")

    def to_node(self) -> Node:
        return Node(
            id=self.id,
            name=self.name or self.id,
            latitude=self.latitude,
            longitude=self.longitude,
            transport_modes=frozenset(self.transport_modes),
            corridor=self.corridor,
            station_type=self.station_type,
            attributes=MappingProxyType(dict(self.model_extra or {})),
        )


class EdgeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: str
    target: str
    weight: float = Field(..., ge=0)
    distance: float = Field(default=0.0, ge=0)
    transport_mode: str | None = Field(default=None, alias="transportMode")
    color: str | None = None
    corridor: str | None = None
    route_number: str | None = Field(default=None, alias="routeNumber")

    @field_validator("weight", "distance")
    @classmethod
    def finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("must be finite")
        return v

    def to_edge(self) -> Edge:
        return Edge(
            source=self.source,
            target=self.target,
            weight=self.weight,
            distance=self.distance,
            transport_mode=self.transport_mode,
            color=self.color,
            corridor=self.corridor,
            route_number=self.route_number,
        )


class GraphModel(BaseModel):
    nodes: list[NodeModel] = Field(default_factory=list)
    edges: list[EdgeModel] = Field(default_factory=list)

    def to_graph(self) -> Graph:
        return Graph((n.to_node() for n in self.nodes), (e.to_edge() for e in self.edges))


class SearchRequest(BaseModel):
    graph: GraphModel
    start_id: str
    end_id: str
    algorithm: AlgorithmChoice = "dijkstra"
    routing_mode: RoutingMode = RoutingMode.STRAIGHT_LINE
    include_steps: bool = True


class CompareRequest(BaseModel):
    graph: GraphModel
    start_id: str
    end_id: str
    routing_mode: RoutingMode = RoutingMode.STRAIGHT_LINE


class SegmentsRequest(BaseModel):
    graph: GraphModel
    path: list[str]
    routing_mode: RoutingMode = RoutingMode.STRAIGHT_LINE


class StepOut(BaseModel):
    current_node: str
    visited_nodes: list[str]
    # None stands for "not reached yet" (JSON has no infinity).
    distances: dict[str, float | None]
    previous_nodes: dict[str, str | None]
    queue_snapshot: list[str] | None = None


class SearchResponse(BaseModel):
    algorithm: str
    path: list[str]
    distance: float | None
    reachable: bool
    steps: list[StepOut] = Field(default_factory=list)
    nodes_explored: int
    time_complexity: str
    space_complexity: str
    execution_time_ms: float
    edges_processed: int
    memory_usage_estimate: int
    priority_queue_operations: int | None = None
    queue_operations: int | None = None
    routing_mode: RoutingMode | None = None
    osrm_calls_count: int | None = None
    osrm_cache_size: int | None = None


class ComparisonMetricsOut(BaseModel):
    time_difference: float | None
    path_length_difference: int
    nodes_explored_difference: int
    is_path_identical: bool
    execution_time_difference_ms: float
    operations_difference: int
    edges_processed_difference: int
    memory_usage_difference: int
    efficiency_ratio: float
    speed_ratio: float


class CompareResponse(BaseModel):
    weighted: SearchResponse
    bfs: SearchResponse
    metrics: ComparisonMetricsOut


class RouteInfoOut(BaseModel):
    name: str
    color: str
    route_number: str | None = None
    corridor: str | None = None


class RouteSegmentOut(BaseModel):
    from_id: str
    to_id: str
    coordinates: list[tuple[float, float]]
    transport_mode: str
    route_info: RouteInfoOut
    duration: float
    distance: float
    instructions: list[str] = Field(default_factory=list)
    is_fallback: bool = False


class RouteMetricsOut(BaseModel):
    total_duration: float
    total_distance: float
    segment_count: int
    transport_modes: list[str]
    routing_mode: RoutingMode
    is_realistic: bool
    fallback_segment_count: int


class SegmentsResponse(BaseModel):
    segments: list[RouteSegmentOut]
    metrics: RouteMetricsOut


class CacheStatsResponse(BaseModel):
    osrm: dict[str, int]
    segments: int


def step_payload(step: AlgorithmStep) -> dict[str, Any]:
    return {
        "current_node": step.current_node,
        "visited_nodes": list(step.visited_nodes),
        "distances": {k: finite_or_none(v) for k, v in step.distances.items()},
        "previous_nodes": dict(step.previous_nodes),
        "queue_snapshot": None if step.queue_snapshot is None else list(step.queue_snapshot),
    }
