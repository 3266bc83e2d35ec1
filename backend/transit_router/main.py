from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, NoReturn

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from . import bfs, dijkstra, enhanced_dijkstra
from .comparison import run_comparison
from .errors import RoutingError
from .graph import Graph
from .logging_utils import log_event
from .models import (
    CacheStatsResponse,
    CompareRequest,
    CompareResponse,
    ComparisonMetricsOut,
    GraphModel,
    RouteInfoOut,
    RouteMetricsOut,
    RouteSegmentOut,
    SearchRequest,
    SearchResponse,
    SegmentsRequest,
    SegmentsResponse,
    finite_or_none,
    step_payload,
)
from .results import BFSResult, DijkstraResult, EnhancedDijkstraResult, SearchResult
from .route_segments import RouteMetrics, RouteSegment, RouteSegmentService
from .routing_osrm import OSRMClient
from .settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.osrm = OSRMClient(base_url=settings.osrm_base_url, profile=settings.osrm_profile)
    app.state.segments = RouteSegmentService(app.state.osrm)
    yield
    await app.state.osrm.aclose()


app = FastAPI(title="Transit Pathfinding Engine", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def osrm_client(request: Request) -> OSRMClient:
    osrm: OSRMClient | None = getattr(request.app.state, "osrm", None)  # type: ignore[attr-defined]
    if osrm is None:
        raise HTTPException(status_code=503, detail="OSRM client not initialised")
    return osrm


OSRMDep = Annotated[OSRMClient, Depends(osrm_client)]


def segment_service(request: Request, osrm: OSRMDep) -> RouteSegmentService:
    service: RouteSegmentService | None = getattr(request.app.state, "segments", None)
    # Rebuild when the client was swapped (dependency overrides in tests).
    if service is None or service.client is not osrm:
        service = RouteSegmentService(osrm)
        request.app.state.segments = service
    return service


SegmentsDep = Annotated[RouteSegmentService, Depends(segment_service)]


def _raise_http(e: RoutingError) -> NoReturn:
    status = 404 if e.reason_code in {"unknown_start_node", "unknown_end_node"} else 422
    raise HTTPException(status_code=status, detail={"reason_code": e.reason_code, "message": e.message}) from e


def _build_graph(payload: GraphModel) -> Graph:
    try:
        return payload.to_graph()
    except RoutingError as e:
        _raise_http(e)


def _search_response(result: SearchResult, *, include_steps: bool = True) -> SearchResponse:
    body = SearchResponse(
        algorithm=getattr(result, "algorithm", "unknown"),
        path=list(result.path),
        distance=finite_or_none(result.distance),
        reachable=result.reachable,
        steps=[step_payload(s) for s in result.steps] if include_steps else [],
        nodes_explored=result.nodes_explored,
        time_complexity=result.time_complexity,
        space_complexity=result.space_complexity,
        execution_time_ms=result.execution_time_ms,
        edges_processed=result.edges_processed,
        memory_usage_estimate=result.memory_usage_estimate,
    )
    if isinstance(result, DijkstraResult):
        body.priority_queue_operations = result.priority_queue_operations
    if isinstance(result, BFSResult):
        body.queue_operations = result.queue_operations
    if isinstance(result, EnhancedDijkstraResult):
        body.routing_mode = result.routing_mode
        body.osrm_calls_count = result.osrm_calls_count
        body.osrm_cache_size = result.osrm_cache_size
    return body


def _segment_out(segment: RouteSegment) -> RouteSegmentOut:
    info = segment.route_info
    return RouteSegmentOut(
        from_id=segment.from_id,
        to_id=segment.to_id,
        coordinates=list(segment.coordinates),
        transport_mode=segment.transport_mode,
        route_info=RouteInfoOut(
            name=info.name,
            color=info.color,
            route_number=info.route_number,
            corridor=info.corridor,
        ),
        duration=segment.duration,
        distance=segment.distance,
        instructions=list(segment.instructions),
        is_fallback=segment.is_fallback,
    )


def _metrics_out(metrics: RouteMetrics) -> RouteMetricsOut:
    return RouteMetricsOut(
        total_duration=metrics.total_duration,
        total_distance=metrics.total_distance,
        segment_count=metrics.segment_count,
        transport_modes=list(metrics.transport_modes),
        routing_mode=metrics.routing_mode,
        is_realistic=metrics.is_realistic,
        fallback_segment_count=metrics.fallback_segment_count,
    )


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/search", response_model=SearchResponse)
async def search(req: SearchRequest, osrm: OSRMDep) -> SearchResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    graph = _build_graph(req.graph)

    try:
        if req.algorithm == "bfs":
            result: SearchResult = bfs.search(graph, req.start_id, req.end_id)
        elif req.algorithm == "enhanced_dijkstra" or req.routing_mode.is_realistic:
            result = await enhanced_dijkstra.search_async(
                graph,
                req.start_id,
                req.end_id,
                req.routing_mode.is_realistic,
                client=osrm,
            )
        else:
            result = dijkstra.search(graph, req.start_id, req.end_id)
    except RoutingError as e:
        _raise_http(e)

    log_event(
        "search_request",
        request_id=request_id,
        algorithm=req.algorithm,
        routing_mode=req.routing_mode.value,
        start=req.start_id,
        end=req.end_id,
        path_length=len(result.path),
        nodes_explored=result.nodes_explored,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return _search_response(result, include_steps=req.include_steps)


@app.post("/compare", response_model=CompareResponse)
async def compare_algorithms(req: CompareRequest, osrm: OSRMDep) -> CompareResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    graph = _build_graph(req.graph)

    try:
        run = await run_comparison(graph, req.start_id, req.end_id, req.routing_mode, client=osrm)
    except RoutingError as e:
        _raise_http(e)

    m = run.metrics
    log_event(
        "compare_request",
        request_id=request_id,
        routing_mode=req.routing_mode.value,
        start=req.start_id,
        end=req.end_id,
        is_path_identical=m.is_path_identical,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return CompareResponse(
        weighted=_search_response(run.weighted),
        bfs=_search_response(run.bfs),
        metrics=ComparisonMetricsOut(
            time_difference=finite_or_none(m.time_difference),
            path_length_difference=m.path_length_difference,
            nodes_explored_difference=m.nodes_explored_difference,
            is_path_identical=m.is_path_identical,
            execution_time_difference_ms=m.execution_time_difference_ms,
            operations_difference=m.operations_difference,
            edges_processed_difference=m.edges_processed_difference,
            memory_usage_difference=m.memory_usage_difference,
            efficiency_ratio=m.efficiency_ratio,
            speed_ratio=m.speed_ratio,
        ),
    )


@app.post("/segments", response_model=SegmentsResponse)
async def route_segments(req: SegmentsRequest, service: SegmentsDep) -> SegmentsResponse:
    graph = _build_graph(req.graph)
    segments = await service.get_route_segments(req.path, graph, req.routing_mode)
    metrics = await service.get_route_metrics(req.path, graph, req.routing_mode)
    return SegmentsResponse(segments=[_segment_out(s) for s in segments], metrics=_metrics_out(metrics))


@app.post("/metrics", response_model=RouteMetricsOut)
async def route_metrics(req: SegmentsRequest, service: SegmentsDep) -> RouteMetricsOut:
    graph = _build_graph(req.graph)
    return _metrics_out(await service.get_route_metrics(req.path, graph, req.routing_mode))


@app.get("/cache/stats", response_model=CacheStatsResponse)
async def cache_stats(osrm: OSRMDep, service: SegmentsDep) -> CacheStatsResponse:
    return CacheStatsResponse(osrm=osrm.cache.snapshot(), segments=len(service.cache_stats()["keys"]))


@app.delete("/cache")
async def clear_cache(osrm: OSRMDep, service: SegmentsDep) -> dict[str, int]:
    return {"osrm_cleared": osrm.cache.clear(), "segments_cleared": service.clear_cache()}
