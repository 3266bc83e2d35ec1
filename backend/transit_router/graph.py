from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .errors import RoutingError
from .geo import haversine_km
from .settings import settings

TRANSFER_MODE = "transfer"
TRANSFER_COLOR = "#757575"


@dataclass(frozen=True)
class Node:
    id: str
    name: str
    latitude: float
    longitude: float
    transport_modes: frozenset[str] = frozenset()
    corridor: str | None = None
    station_type: str | None = None
    attributes: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({}), compare=False, hash=False
    )


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    weight: float  # minutes
    distance: float  # kilometres
    transport_mode: str | None = None
    color: str | None = None
    corridor: str | None = None
    route_number: str | None = None


class Graph:
    """Read-only station graph.

    Nodes and edges keep their input order. Parallel edges between the same pair are
    all retained; the outgoing index lists them in the order they were supplied.
    """

    __slots__ = ("nodes", "edges", "_node_index", "_outgoing")

    def __init__(self, nodes: Iterable[Node], edges: Iterable[Edge]) -> None:
        self.nodes: tuple[Node, ...] = tuple(nodes)
        self.edges: tuple[Edge, ...] = tuple(edges)

        node_index: dict[str, Node] = {}
        for node in self.nodes:
            if node.id in node_index:
                raise RoutingError(
                    reason_code="invalid_graph",
                    message=f"duplicate node id {node.id!r}",
                    details={"node_id": node.id},
                )
            node_index[node.id] = node

        outgoing: dict[str, list[Edge]] = {}
        for edge in self.edges:
            outgoing.setdefault(edge.source, []).append(edge)

        self._node_index = node_index
        self._outgoing = {key: tuple(value) for key, value in outgoing.items()}

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._node_index

    def __len__(self) -> int:
        return len(self.nodes)

    def node(self, node_id: str) -> Node | None:
        return self._node_index.get(node_id)

    def outgoing(self, node_id: str) -> tuple[Edge, ...]:
        return self._outgoing.get(node_id, ())

    def find_edge(self, a: str, b: str) -> Edge | None:
        """First edge joining `a` and `b` in either direction, in input order."""
        for edge in self._outgoing.get(a, ()):
            if edge.target == b:
                return edge
        for edge in self._outgoing.get(b, ()):
            if edge.target == a:
                return edge
        return None

    def require_node(self, node_id: str, *, reason_code: str) -> Node:
        node = self._node_index.get(node_id)
        if node is None:
            raise RoutingError(
                reason_code=reason_code,
                message=f"node {node_id!r} is not in the graph",
                details={"node_id": node_id},
            )
        return node

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Graph:
        """Build a graph from the UI-shaped mapping ({"nodes": [...], "edges": [...]})."""
        nodes = [_node_from_dict(raw) for raw in payload.get("nodes", ())]
        edges = [_edge_from_dict(raw) for raw in payload.get("edges", ())]
        return cls(nodes, edges)


_NODE_KEYS = {"id", "name", "latitude", "longitude", "transportModes", "corridor", "stationType"}


def _node_from_dict(raw: Mapping[str, Any]) -> Node:
    try:
        return Node(
            id=str(raw["id"]),
            name=str(raw.get("name") or raw["id"]),
            latitude=float(raw["latitude"]),
            longitude=float(raw["longitude"]),
            transport_modes=frozenset(str(m) for m in raw.get("transportModes") or ()),
            corridor=raw.get("corridor"),
            station_type=raw.get("stationType"),
            attributes=MappingProxyType({k: v for k, v in raw.items() if k not in _NODE_KEYS}),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise RoutingError(
            reason_code="invalid_graph",
            message=f"malformed node: {e}",
            details={"node": dict(raw)},
        ) from e


def _edge_from_dict(raw: Mapping[str, Any]) -> Edge:
    try:
        return Edge(
            source=str(raw["source"]),
            target=str(raw["target"]),
            weight=float(raw["weight"]),
            distance=float(raw.get("distance", 0.0)),
            transport_mode=raw.get("transportMode"),
            color=raw.get("color"),
            corridor=raw.get("corridor"),
            route_number=raw.get("routeNumber"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise RoutingError(
            reason_code="invalid_graph",
            message=f"malformed edge: {e}",
            details={"edge": dict(raw)},
        ) from e


def build_transfer_edges(
    nodes: Sequence[Node],
    *,
    radius_km: float | None = None,
    weight: float | None = None,
) -> list[Edge]:
    """Synthesize walking transfers between multi-mode stations.

    Two stations are linked when both serve more than one mode, they share a name or lie
    within `radius_km`, and the second serves a mode the first does not.
    """
    radius = settings.transfer_radius_km if radius_km is None else float(radius_km)
    transfer_weight = settings.transfer_weight_min if weight is None else float(weight)

    candidates = [n for n in nodes if len(n.transport_modes) > 1]
    edges: list[Edge] = []
    for i, a in enumerate(candidates):
        for b in candidates[i + 1 :]:
            distance = haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)
            if a.name != b.name and distance > radius:
                continue
            if not (b.transport_modes - a.transport_modes):
                continue
            for source, target in ((a.id, b.id), (b.id, a.id)):
                edges.append(
                    Edge(
                        source=source,
                        target=target,
                        weight=transfer_weight,
                        distance=distance,
                        transport_mode=TRANSFER_MODE,
                        color=TRANSFER_COLOR,
                        route_number="Transfer",
                    )
                )
    return edges


def merge_graphs(*graphs: Graph, with_transfers: bool = True) -> Graph:
    nodes: list[Node] = []
    edges: list[Edge] = []
    for g in graphs:
        nodes.extend(g.nodes)
        edges.extend(g.edges)
    if with_transfers:
        edges.extend(build_transfer_edges(nodes))
    return Graph(nodes, edges)
