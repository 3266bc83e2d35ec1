from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace

from .graph import Edge, Graph, Node
from .logging_utils import log_event
from .routing_mode import RoutingMode, parse_routing_mode
from .routing_osrm import LatLng, OSRMClient
from .settings import settings


@dataclass(frozen=True)
class RouteInfo:
    name: str
    color: str
    route_number: str | None = None
    corridor: str | None = None


@dataclass(frozen=True)
class RouteSegment:
    from_id: str
    to_id: str
    coordinates: tuple[LatLng, ...]
    transport_mode: str
    route_info: RouteInfo
    duration: float  # minutes
    distance: float  # kilometres
    instructions: tuple[str, ...] = ()
    is_fallback: bool = False


@dataclass(frozen=True)
class RouteMetrics:
    total_duration: float
    total_distance: float
    segment_count: int
    transport_modes: tuple[str, ...]
    routing_mode: RoutingMode
    is_realistic: bool
    fallback_segment_count: int


@dataclass(frozen=True)
class RoutingModeComparison:
    straight_line: RouteMetrics
    realistic: RouteMetrics
    duration_diff: float  # realistic - straight-line
    distance_diff: float
    percentage_duration_increase: float
    percentage_distance_increase: float


def _route_info(edge: Edge) -> tuple[str, RouteInfo]:
    mode = edge.transport_mode or settings.default_transport_mode
    return mode, RouteInfo(
        name=f"{mode} {edge.corridor or edge.route_number or ''}".strip(),
        color=edge.color or settings.default_route_color,
        route_number=edge.route_number,
        corridor=edge.corridor,
    )


def straight_line_segments(path: Sequence[str], graph: Graph) -> tuple[RouteSegment, ...]:
    segments: list[RouteSegment] = []
    for source_id, target_id in zip(path, path[1:]):
        source = graph.node(source_id)
        target = graph.node(target_id)
        edge = graph.find_edge(source_id, target_id)
        if source is None or target is None or edge is None:
            log_event("route_segment_skipped", source=source_id, target=target_id, reason="missing_node_or_edge")
            continue

        mode, info = _route_info(edge)
        segments.append(
            RouteSegment(
                from_id=source_id,
                to_id=target_id,
                coordinates=((source.latitude, source.longitude), (target.latitude, target.longitude)),
                transport_mode=mode,
                route_info=info,
                duration=edge.weight,
                distance=edge.distance,
                instructions=(f"Travel from {source.name} to {target.name}",),
            )
        )
    return tuple(segments)


def _as_fallback(segments: tuple[RouteSegment, ...]) -> tuple[RouteSegment, ...]:
    return tuple(replace(s, is_fallback=True) for s in segments)


class RouteSegmentService:
    """Turns a node-id path into renderable segments and caches them per (mode, path)."""

    def __init__(
        self,
        client: OSRMClient | None = None,
        *,
        default_mode: RoutingMode | str = RoutingMode.STRAIGHT_LINE,
    ) -> None:
        self._client = client
        self._owns_client = False
        self.routing_mode = parse_routing_mode(default_mode)
        self._cache: dict[tuple[RoutingMode, tuple[str, ...]], tuple[RouteSegment, ...]] = {}

    @property
    def client(self) -> OSRMClient:
        if self._client is None:
            self._client = OSRMClient()
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    def set_routing_mode(self, mode: RoutingMode | str) -> None:
        self.routing_mode = parse_routing_mode(mode)

    async def get_route_segments(
        self,
        path: Sequence[str],
        graph: Graph,
        mode: RoutingMode | str | None = None,
    ) -> tuple[RouteSegment, ...]:
        routing_mode = self.routing_mode if mode is None else parse_routing_mode(mode)
        if len(path) < 2:
            return ()

        key = (routing_mode, tuple(path))
        cached = self._cache.get(key)
        if cached is not None:
            log_event("route_segments_cache_hit", routing_mode=routing_mode.value, path_length=len(path))
            return cached

        if routing_mode.is_realistic:
            segments = await self._realistic_segments(key[1], graph)
        else:
            segments = straight_line_segments(key[1], graph)

        self._cache[key] = segments
        return segments

    async def _realistic_segments(self, path: tuple[str, ...], graph: Graph) -> tuple[RouteSegment, ...]:
        stations: list[Node] = []
        for node_id in path:
            node = graph.node(node_id)
            if node is None:
                log_event("route_segments_fallback", reason="missing_node", node_id=node_id)
                return _as_fallback(straight_line_segments(path, graph))
            stations.append(node)

        realistic = await self.client.get_realistic_route_for_path(stations)
        if realistic is None:
            log_event("route_segments_fallback", reason="osrm_unavailable", path_length=len(path))
            return _as_fallback(straight_line_segments(path, graph))

        segments: list[RouteSegment] = []
        for index, piece in enumerate(realistic.segments):
            edge = graph.find_edge(piece.from_id, piece.to_id)
            if edge is None:
                log_event("route_segment_skipped", source=piece.from_id, target=piece.to_id, reason="missing_edge", index=index)
                continue
            mode, info = _route_info(edge)
            segments.append(
                RouteSegment(
                    from_id=piece.from_id,
                    to_id=piece.to_id,
                    coordinates=piece.geometry,
                    transport_mode=mode,
                    route_info=info,
                    duration=piece.duration_min,
                    distance=piece.distance_km,
                    instructions=piece.instructions,
                    is_fallback=piece.is_fallback,
                )
            )
        return tuple(segments)

    async def get_route_metrics(
        self,
        path: Sequence[str],
        graph: Graph,
        mode: RoutingMode | str | None = None,
    ) -> RouteMetrics:
        routing_mode = self.routing_mode if mode is None else parse_routing_mode(mode)
        segments = await self.get_route_segments(path, graph, routing_mode)
        return RouteMetrics(
            total_duration=sum(s.duration for s in segments),
            total_distance=sum(s.distance for s in segments),
            segment_count=len(segments),
            transport_modes=tuple(dict.fromkeys(s.transport_mode for s in segments)),
            routing_mode=routing_mode,
            is_realistic=routing_mode.is_realistic,
            fallback_segment_count=sum(1 for s in segments if s.is_fallback),
        )

    async def get_route_instructions(
        self,
        path: Sequence[str],
        graph: Graph,
        mode: RoutingMode | str | None = None,
    ) -> list[str]:
        routing_mode = self.routing_mode if mode is None else parse_routing_mode(mode)
        segments = await self.get_route_segments(path, graph, routing_mode)

        lines: list[str] = []
        for index, segment in enumerate(segments):
            source = graph.node(segment.from_id)
            target = graph.node(segment.to_id)
            if source is None or target is None:
                continue
            lines.append(f"{index + 1}. Take {segment.route_info.name} from {source.name} to {target.name}")
            if routing_mode.is_realistic:
                lines.extend(f"   • {text}" for text in segment.instructions)
            lines.append(f"   Duration: {segment.duration:.1f} minutes, Distance: {segment.distance:.2f} km")
        return lines

    async def compare_routing_modes(self, path: Sequence[str], graph: Graph) -> RoutingModeComparison:
        straight = await self.get_route_metrics(path, graph, RoutingMode.STRAIGHT_LINE)
        realistic = await self.get_route_metrics(path, graph, RoutingMode.OSRM_REALISTIC)

        duration_diff = realistic.total_duration - straight.total_duration
        distance_diff = realistic.total_distance - straight.total_distance
        return RoutingModeComparison(
            straight_line=straight,
            realistic=realistic,
            duration_diff=duration_diff,
            distance_diff=distance_diff,
            percentage_duration_increase=(
                duration_diff / straight.total_duration * 100.0 if straight.total_duration > 0 else 0.0
            ),
            percentage_distance_increase=(
                distance_diff / straight.total_distance * 100.0 if straight.total_distance > 0 else 0.0
            ),
        )

    def clear_cache(self) -> int:
        cleared = len(self._cache)
        self._cache.clear()
        return cleared

    def cache_stats(self) -> dict[str, object]:
        return {
            "size": len(self._cache),
            "keys": [f"{mode.value}-{'-'.join(path)}" for mode, path in self._cache],
        }
