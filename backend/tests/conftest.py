from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from typing import Any

import httpx
import polyline
import pytest

from transit_router.graph import Edge, Graph, Node

OSRM_SAMPLE_POLYLINE = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"
OSRM_SAMPLE_COORDS = [(38.5, -120.2), (40.7, -120.95), (43.252, -126.453)]


def node(node_id: str, lat: float = 0.0, lon: float = 0.0, **kw: Any) -> Node:
    return Node(id=node_id, name=kw.pop("name", f"Station {node_id}"), latitude=lat, longitude=lon, **kw)


def edge(source: str, target: str, weight: float, distance: float | None = None, **kw: Any) -> Edge:
    return Edge(source=source, target=target, weight=weight, distance=weight if distance is None else distance, **kw)


def simple_graph(node_ids: Sequence[str], edges: Sequence[tuple[str, str, float]]) -> Graph:
    nodes = [node(nid, lat=-6.2 + i * 0.01, lon=106.8 + i * 0.01) for i, nid in enumerate(node_ids)]
    return Graph(nodes, [edge(s, t, w) for s, t, w in edges])


def osrm_route_payload(
    coords: Sequence[tuple[float, float]],
    *,
    duration_s: float,
    distance_m: float,
    steps: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    return {
        "code": "Ok",
        "routes": [
            {
                "geometry": polyline.encode(list(coords), 5),
                "duration": duration_s,
                "distance": distance_m,
                "legs": [{"steps": steps or [], "duration": duration_s, "distance": distance_m}],
            }
        ],
    }


class RecordingHandler:
    """httpx.MockTransport handler that records requests and answers from a callable."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []
        self._respond = respond

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._respond(request)

    @property
    def calls(self) -> int:
        return len(self.requests)


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(payload), headers={"content-type": "application/json"})


def straight_route_responder(*, seconds_per_degree: float = 6000.0) -> Callable[[httpx.Request], httpx.Response]:
    """Answers every /route call with a two-point route whose duration scales with span."""

    def _respond(request: httpx.Request) -> httpx.Response:
        coords_part = request.url.path.rsplit("/", 1)[-1]
        points = []
        for pair in coords_part.split(";"):
            lng, lat = (float(x) for x in pair.split(","))
            points.append((lat, lng))
        span = sum(abs(a[0] - b[0]) + abs(a[1] - b[1]) for a, b in zip(points, points[1:]))
        return json_response(
            osrm_route_payload(
                points,
                duration_s=span * seconds_per_degree,
                distance_m=span * 100_000.0,
                steps=[{"maneuver": {"type": "depart", "location": [points[0][1], points[0][0]]}, "name": "Jalan Sudirman"}],
            )
        )

    return _respond


@pytest.fixture
def abc_graph() -> Graph:
    return simple_graph(["A", "B", "C"], [("A", "B", 2.0), ("B", "C", 3.0), ("A", "C", 10.0)])
